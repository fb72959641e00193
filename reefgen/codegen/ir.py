"""Intermediate representation shared by all generation stages.

Canonical schemas are a closed set of frozen dataclasses. Every consumer
dispatches with ``match`` and ends in ``assert_never`` so a new variant is
flagged everywhere it must be handled. Structural equality ignores source
metadata (pointer, description), which makes a canonical schema usable as its
own shape key.

Named schemas are never nested inside each other: a reference is kept as
``Ref(path)``, an index into the resolver's table keyed by normalized
reference path. Cycles therefore need no special representation.
"""

import ast
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal, assert_never

from reefgen.codegen.diagnostics import Diagnostic
from reefgen.codegen.document import DocumentNode
from reefgen.runtime import BodyEncoding, SerializationStrategy

__all__ = [
    # Canonical schemas
    'PrimitiveKind',
    'Primitive',
    'Array',
    'Map',
    'Object',
    'ObjectField',
    'Enum',
    'Union',
    'Discriminator',
    'Unknown',
    'Ref',
    'CanonicalSchema',
    'Slot',
    'SchemaRef',
    'NO_DEFAULT',
    'iter_refs',
    'describe',
    # Type descriptors
    'Generated',
    'Existing',
    'Container',
    'Nullable',
    'Indirect',
    'TypeDescriptor',
    'iter_generated',
    # Operations
    'ParameterLocation',
    'ContentKind',
    'StatusPattern',
    'Parameter',
    'RequestBody',
    'ResponseVariant',
    'Operation',
    'BodyEncoding',
    'SerializationStrategy',
    # Declarations and output
    'DeclarationKind',
    'BoundField',
    'Declaration',
    'TypeDeclaration',
    'OperationBinding',
    'ClientClass',
    'GeneratedModule',
]


class _NoDefault:
    def __repr__(self) -> str:
        return 'NO_DEFAULT'


NO_DEFAULT: Any = _NoDefault()


class PrimitiveKind(StrEnum):
    STRING = 'string'
    INTEGER = 'integer'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    NULL = 'null'
    ANY = 'any'


@dataclass(frozen=True)
class _Schema:
    pointer: str = field(default='', compare=False, repr=False, kw_only=True)
    description: str | None = field(default=None, compare=False, repr=False, kw_only=True)


@dataclass(frozen=True)
class Primitive(_Schema):
    kind: PrimitiveKind
    format: str | None = None


@dataclass(frozen=True)
class Slot:
    """A canonical schema together with its optional marker."""

    schema: 'CanonicalSchema'
    nullable: bool = False

    def as_nullable(self, nullable: bool = True) -> 'Slot':
        if nullable == self.nullable:
            return self
        return Slot(self.schema, nullable)


@dataclass(frozen=True)
class Array(_Schema):
    element: Slot


@dataclass(frozen=True)
class Map(_Schema):
    value: Slot


@dataclass(frozen=True)
class ObjectField:
    name: str
    slot: Slot
    required: bool = False
    default: Any = field(default=NO_DEFAULT, compare=False)
    description: str | None = field(default=None, compare=False)

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


@dataclass(frozen=True)
class Object(_Schema):
    fields: tuple[ObjectField, ...] = ()
    extra: Literal['ignore', 'allow', 'forbid'] = 'ignore'
    title: str | None = field(default=None, compare=False)

    def field_named(self, name: str) -> ObjectField | None:
        for item in self.fields:
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class Enum(_Schema):
    values: tuple[str | int, ...]
    kind: PrimitiveKind = PrimitiveKind.STRING


@dataclass(frozen=True)
class Discriminator:
    property_name: str
    # (tag value, normalized reference path)
    mapping: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class Union(_Schema):
    alternatives: tuple[Slot, ...]
    discriminator: Discriminator | None = None


@dataclass(frozen=True)
class Unknown(_Schema):
    reason: str = field(default='', compare=False)
    diagnostic: Diagnostic | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Ref(_Schema):
    path: str


CanonicalSchema = Primitive | Array | Map | Object | Enum | Union | Unknown | Ref


@dataclass(frozen=True)
class SchemaRef:
    """Either an inline schema node or a named reference path."""

    path: str | None = None
    node: DocumentNode | None = field(default=None, compare=False)

    @classmethod
    def inline(cls, node: DocumentNode) -> 'SchemaRef':
        return cls(node=node)

    @classmethod
    def named(cls, path: str) -> 'SchemaRef':
        return cls(path=path)

    @property
    def is_named(self) -> bool:
        return self.path is not None


def iter_refs(schema: CanonicalSchema) -> Iterator[Ref]:
    """Yield every reference reachable from ``schema`` without crossing a reference."""
    match schema:
        case Primitive() | Enum() | Unknown():
            return
        case Array(element=element):
            yield from iter_refs(element.schema)
        case Map(value=value):
            yield from iter_refs(value.schema)
        case Object(fields=fields):
            for item in fields:
                yield from iter_refs(item.slot.schema)
        case Union(alternatives=alternatives):
            for alternative in alternatives:
                yield from iter_refs(alternative.schema)
        case Ref():
            yield schema
        case _:
            assert_never(schema)


def describe(slot: Slot | CanonicalSchema) -> str:
    """Short human readable rendering of a shape, used in messages."""
    if isinstance(slot, Slot):
        text = describe(slot.schema)
        return f'{text}?' if slot.nullable else text

    schema = slot
    match schema:
        case Primitive(kind=kind, format=fmt):
            return f'{kind}({fmt})' if fmt else str(kind)
        case Array(element=element):
            return f'array<{describe(element)}>'
        case Map(value=value):
            return f'map<{describe(value)}>'
        case Object(fields=fields):
            return 'object{' + ', '.join(item.name for item in fields) + '}'
        case Enum(values=values):
            return 'enum[' + ', '.join(repr(v) for v in values) + ']'
        case Union(alternatives=alternatives):
            return 'oneOf[' + ' | '.join(describe(a) for a in alternatives) + ']'
        case Unknown():
            return 'unknown'
        case Ref(path=path):
            return path
        case _:
            assert_never(schema)


# =============================================================================
# Type descriptors
# =============================================================================


@dataclass(frozen=True)
class Generated:
    """A type the generator declares in ``module``."""

    name: str
    module: str


@dataclass(frozen=True)
class Existing:
    """A type that already exists, e.g. ``builtins.str`` or ``shared.ids.Base64Uuid``."""

    qualified_name: str

    @property
    def module(self) -> str:
        return self.qualified_name.rpartition('.')[0] or 'builtins'

    @property
    def name(self) -> str:
        return self.qualified_name.rpartition('.')[2]


@dataclass(frozen=True)
class Container:
    origin: Literal['list', 'dict']
    args: tuple['TypeDescriptor', ...]


@dataclass(frozen=True)
class Nullable:
    inner: 'TypeDescriptor'


@dataclass(frozen=True)
class Indirect:
    """A reference that closes a cycle; rendered as a forward reference."""

    target: Generated


TypeDescriptor = Generated | Existing | Container | Nullable | Indirect


def iter_generated(descriptor: TypeDescriptor) -> Iterator[Generated]:
    match descriptor:
        case Generated():
            yield descriptor
        case Existing():
            return
        case Container(args=args):
            for arg in args:
                yield from iter_generated(arg)
        case Nullable(inner=inner):
            yield from iter_generated(inner)
        case Indirect(target=target):
            yield target
        case _:
            assert_never(descriptor)


# =============================================================================
# Operations
# =============================================================================


class ParameterLocation(StrEnum):
    PATH = 'path'
    QUERY = 'query'
    HEADER = 'header'
    COOKIE = 'cookie'


class ContentKind(StrEnum):
    JSON = 'json'
    TEXT = 'text'
    BINARY = 'binary'
    EMPTY = 'empty'


@dataclass(frozen=True)
class StatusPattern:
    """A response key: an exact code, a class such as ``2XX``, or ``default``."""

    kind: Literal['exact', 'range', 'default']
    value: int = 0

    @classmethod
    def parse(cls, text: str | int) -> 'StatusPattern':
        text = str(text).strip()
        if text == 'default':
            return cls('default')
        if len(text) == 3 and text[0] in '12345':
            if text[1:].upper() == 'XX':
                return cls('range', int(text[0]))
            if text.isdigit():
                return cls('exact', int(text))
        raise ValueError(f'Invalid response status {text!r}')

    def matches(self, status_code: int) -> bool:
        if self.kind == 'exact':
            return status_code == self.value
        if self.kind == 'range':
            return status_code // 100 == self.value
        return True

    @property
    def precedence(self) -> int:
        return {'exact': 0, 'range': 1, 'default': 2}[self.kind]

    def __str__(self) -> str:
        if self.kind == 'exact':
            return str(self.value)
        if self.kind == 'range':
            return f'{self.value}XX'
        return 'default'


@dataclass(frozen=True)
class Parameter:
    name: str
    python_name: str
    location: ParameterLocation
    descriptor: TypeDescriptor
    required: bool
    strategy: SerializationStrategy
    description: str | None = None


@dataclass(frozen=True)
class RequestBody:
    descriptor: TypeDescriptor
    encoding: BodyEncoding
    media_type: str
    required: bool = False
    description: str | None = None


@dataclass(frozen=True)
class ResponseVariant:
    status: StatusPattern
    content: ContentKind
    descriptor: TypeDescriptor | None = None
    media_type: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Operation:
    operation_id: str
    method_name: str
    method: str
    path: str
    parameters: tuple[Parameter, ...] = ()
    body: RequestBody | None = None
    responses: tuple[ResponseVariant, ...] = ()
    summary: str | None = None
    description: str | None = None
    deprecated: bool = False
    pointer: str = ''


# =============================================================================
# Declarations and generated output
# =============================================================================


class DeclarationKind(StrEnum):
    MODEL = 'model'
    ENUM = 'enum'
    UNION = 'union'
    ALIAS = 'alias'


@dataclass(frozen=True)
class BoundField:
    name: str
    python_name: str
    descriptor: TypeDescriptor
    required: bool
    default: Any = NO_DEFAULT
    description: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


@dataclass
class Declaration:
    """A mapped, declaration-worthy schema awaiting code generation."""

    descriptor: Generated
    kind: DeclarationKind
    pointer: str = ''
    description: str | None = None
    fields: list[BoundField] = field(default_factory=list)
    extra: str = 'ignore'
    values: tuple[str | int, ...] = ()
    value_kind: PrimitiveKind = PrimitiveKind.STRING
    alternatives: list[TypeDescriptor] = field(default_factory=list)
    discriminator: str | None = None
    tags: list[tuple[str, TypeDescriptor]] = field(default_factory=list)
    root: TypeDescriptor | None = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    def references(self) -> list[TypeDescriptor]:
        """Descriptors this declaration refers to, in declaration order."""
        match self.kind:
            case DeclarationKind.MODEL:
                return [item.descriptor for item in self.fields]
            case DeclarationKind.ENUM:
                return []
            case DeclarationKind.UNION:
                return list(self.alternatives) + [d for _, d in self.tags]
            case DeclarationKind.ALIAS:
                return [self.root] if self.root is not None else []
            case _:
                assert_never(self.kind)


@dataclass
class TypeDeclaration:
    name: str
    node: ast.stmt
    imports: dict[str, set[str]] = field(default_factory=dict)
    rebuild: bool = False


@dataclass
class OperationBinding:
    name: str
    node: ast.FunctionDef
    operation: Operation


@dataclass
class ClientClass:
    name: str
    docstring: str | None
    init: ast.FunctionDef


@dataclass
class GeneratedModule:
    """One output module. Populated by the generator, read by the emitter."""

    name: str
    docstring: str | None = None
    imports: dict[str, set[str]] = field(default_factory=dict)
    declarations: list[TypeDeclaration] = field(default_factory=list)
    client: ClientClass | None = None
    operations: list[OperationBinding] = field(default_factory=list)
    trailer: list[ast.stmt] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
