"""Mapping of canonical schemas to type descriptors.

The mapper is where a schema becomes either a reference to an existing type
(built-in, standard library, or a shared type routed by an override) or a
``Generated`` type that the code generator has to declare. It also owns
naming: components keep their (sanitized) names, anonymous schemas get a
name synthesized from the structural path where they were first met.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import assert_never

from reefgen.codegen.cache import WriteOnceCache
from reefgen.codegen.diagnostics import Diagnostic, DiagnosticKind
from reefgen.codegen.document import component_name
from reefgen.codegen.ir import (
    Array,
    BoundField,
    CanonicalSchema,
    Container,
    Declaration,
    DeclarationKind,
    Enum,
    Existing,
    Generated,
    Indirect,
    Map,
    Nullable,
    Object,
    Primitive,
    PrimitiveKind,
    Ref,
    Slot,
    TypeDescriptor,
    Union,
    Unknown,
)
from reefgen.codegen.overrides import OverrideTable
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.codegen.utils import (
    sanitize_identifier,
    sanitize_name_python_keywords,
    sanitize_parameter_field_name,
)
from reefgen.config import GeneratorConfig
from reefgen.exceptions import NameCollision

logger = logging.getLogger(__name__)

ANY = Existing('typing.Any')
STR = Existing('builtins.str')

_DEFAULT_TYPES: dict[PrimitiveKind, Existing] = {
    PrimitiveKind.STRING: STR,
    PrimitiveKind.INTEGER: Existing('builtins.int'),
    PrimitiveKind.NUMBER: Existing('builtins.float'),
    PrimitiveKind.BOOLEAN: Existing('builtins.bool'),
    PrimitiveKind.NULL: Existing('builtins.None'),
    PrimitiveKind.ANY: ANY,
}

_FORMAT_TYPES: dict[tuple[PrimitiveKind, str], Existing] = {
    (PrimitiveKind.STRING, 'date-time'): Existing('datetime.datetime'),
    (PrimitiveKind.STRING, 'date'): Existing('datetime.date'),
    (PrimitiveKind.STRING, 'time'): Existing('datetime.time'),
    (PrimitiveKind.STRING, 'uuid'): Existing('uuid.UUID'),
    (PrimitiveKind.STRING, 'byte'): Existing('pydantic.Base64Bytes'),
    (PrimitiveKind.STRING, 'binary'): Existing('builtins.bytes'),
    (PrimitiveKind.STRING, 'password'): Existing('pydantic.SecretStr'),
    (PrimitiveKind.STRING, 'email'): STR,
    (PrimitiveKind.STRING, 'uri'): STR,
    (PrimitiveKind.STRING, 'uri-reference'): STR,
    (PrimitiveKind.STRING, 'hostname'): STR,
    (PrimitiveKind.STRING, 'ipv4'): Existing('ipaddress.IPv4Address'),
    (PrimitiveKind.STRING, 'ipv6'): Existing('ipaddress.IPv6Address'),
    (PrimitiveKind.INTEGER, 'int32'): Existing('builtins.int'),
    (PrimitiveKind.INTEGER, 'int64'): Existing('builtins.int'),
    (PrimitiveKind.NUMBER, 'float'): Existing('builtins.float'),
    (PrimitiveKind.NUMBER, 'double'): Existing('builtins.float'),
    (PrimitiveKind.NUMBER, 'decimal'): Existing('decimal.Decimal'),
}

# Attribute names a pydantic model must not use for a field
_RESERVED_FIELD_NAMES = frozenset(
    {'model_config', 'model_fields', 'model_computed_fields', 'schema', 'json', 'dict', 'copy', 'construct', 'validate'}
)


@dataclass(frozen=True)
class FieldContext:
    """Where a schema is being mapped.

    Attributes:
        name_parts: Structural path used to synthesize a name for an
            anonymous schema, e.g. ``('ListPets', 'Response', '200')``.
        pointer: JSON pointer of the schema, for diagnostics.
        owner: Reference path of the component whose body is being mapped,
            used to detect references that close a cycle.
    """

    name_parts: tuple[str, ...]
    pointer: str = ''
    owner: str | None = None

    def child(self, *parts: str, pointer: str | None = None) -> 'FieldContext':
        return FieldContext(self.name_parts + parts, pointer if pointer is not None else self.pointer, self.owner)

    @property
    def type_name(self) -> str:
        return sanitize_identifier('_'.join(self.name_parts))


def field_python_name(name: str) -> str:
    # Keywords are checked after stripping, since '_from' strips to 'from'
    python_name = (sanitize_parameter_field_name(name) if name else '').lstrip('_') or 'field'
    if python_name[0].isdigit():
        python_name = f'field_{python_name}'
    python_name = sanitize_name_python_keywords(python_name)
    if python_name in _RESERVED_FIELD_NAMES or python_name.startswith('model_'):
        python_name = f'{python_name}_'
    return python_name


class TypeMapper:
    """Maps slots to type descriptors and records the declarations they need.

    Mapping runs on one thread in document order, so synthesized names never
    depend on scheduling. Component bodies are mapped from a work queue
    rather than recursively, which keeps self-referencing components finite.

    Example:
        >>> mapper = TypeMapper(resolver, overrides, config)
        >>> mapper.map(slot, FieldContext(('ListPets', 'Response', '200')))
        Container(origin='list', args=(Generated(name='Pet', module='models'),))
    """

    def __init__(self, resolver: ReferenceResolver, overrides: OverrideTable, config: GeneratorConfig):
        self.resolver = resolver
        self.overrides = overrides
        self.config = config
        self.diagnostics: list[Diagnostic] = []
        self.declarations: dict[str, Declaration] = {}
        self._components: WriteOnceCache[str, Generated] = WriteOnceCache('components')
        self._anonymous: dict[CanonicalSchema, Generated] = {}
        self._names: dict[str, tuple[object, str]] = {}
        self._pending: deque[tuple[str, Generated]] = deque()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def map(self, slot: Slot, context: FieldContext) -> TypeDescriptor:
        """Map a slot to a type descriptor, checking overrides first."""
        override = self.overrides.match(slot)
        if override is not None:
            return override

        descriptor = self._map_schema(slot.schema, context)
        if slot.nullable and not isinstance(descriptor, Nullable) and descriptor != ANY:
            return Nullable(descriptor)
        return descriptor

    def map_component(self, path: str) -> TypeDescriptor:
        """Map a component schema as if it were referenced from outside any cycle."""
        return self.map(Slot(Ref(path, pointer=path)), FieldContext((component_name(path),), path))

    def drain(self) -> None:
        """Map the bodies of all components discovered so far.

        A body that cannot be mapped is reported and skipped; the others
        are still mapped.
        """
        while self._pending:
            path, descriptor = self._pending.popleft()
            _, outcome = self.resolver.follow(path)
            self.diagnostics.extend(outcome.diagnostics)
            context = FieldContext((descriptor.name,), path, owner=path)
            try:
                self._declare(descriptor, outcome.value.schema, context)
            except NameCollision as e:
                self.diagnostics.append(Diagnostic.from_exception(DiagnosticKind.NAME_COLLISION, e, path))

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def _map_schema(self, schema: CanonicalSchema, context: FieldContext) -> TypeDescriptor:
        match schema:
            case Primitive():
                return self._primitive(schema, context)
            case Array(element=element):
                return Container('list', (self.map(element, context.child('Item')),))
            case Map(value=value):
                return Container('dict', (STR, self.map(value, context.child('Value'))))
            case Object() | Enum() | Union():
                return self._anonymous_type(schema, context)
            case Unknown():
                return ANY
            case Ref(path=path):
                return self._reference(path, context)
            case _:
                assert_never(schema)

    def _primitive(self, schema: Primitive, context: FieldContext) -> TypeDescriptor:
        if schema.format is None:
            return _DEFAULT_TYPES[schema.kind]
        mapped = _FORMAT_TYPES.get((schema.kind, schema.format))
        if mapped is not None:
            return mapped
        fallback = _DEFAULT_TYPES[schema.kind]
        self.diagnostics.append(
            Diagnostic.warning(
                DiagnosticKind.UNKNOWN_FORMAT,
                f"Unknown {schema.kind} format '{schema.format}'; using {fallback.name}",
                schema.pointer or context.pointer,
            )
        )
        return fallback

    def _declarable(self, schema: CanonicalSchema) -> bool:
        return isinstance(schema, Object | Enum | Union)

    def _reference(self, path: str, context: FieldContext) -> TypeDescriptor:
        final_path, outcome = self.resolver.follow(path)
        self.diagnostics.extend(outcome.diagnostics)
        target = outcome.value

        override = self.overrides.match(target)
        if override is not None:
            return override

        if self._declarable(target.schema) or self.resolver.is_recursive(final_path):
            descriptor = self._component(final_path)
            reference: TypeDescriptor = descriptor
            if context.owner is not None and self.resolver.in_same_cycle(context.owner, final_path):
                reference = Indirect(descriptor)
            return Nullable(reference) if target.nullable else reference

        # Aliases of primitives and containers are mapped in place, named after the component
        alias_context = FieldContext((sanitize_identifier(component_name(final_path)),), final_path, final_path)
        return self.map(target, alias_context)

    def _component(self, path: str) -> Generated:
        return self._components.get_or_compute(path, lambda: self._register_component(path))

    def _register_component(self, path: str) -> Generated:
        name = sanitize_identifier(component_name(path))
        self._claim(name, ('component', path), path)
        descriptor = Generated(name, self.config.module_name)
        self._pending.append((path, descriptor))
        logger.debug(f'Component {path} -> {name}')
        return descriptor

    def _anonymous_type(self, schema: Object | Enum | Union, context: FieldContext) -> Generated:
        existing = self._anonymous.get(schema)
        if existing is not None:
            return existing
        name = context.type_name
        self._claim(name, ('inline', schema), schema.pointer or context.pointer)
        descriptor = Generated(name, self.config.module_name)
        self._anonymous[schema] = descriptor
        self._declare(descriptor, schema, context.child(pointer=schema.pointer or context.pointer))
        return descriptor

    def _claim(self, name: str, key: object, where: str) -> None:
        claimed = self._names.get(name)
        if claimed is None:
            self._names[name] = (key, where)
        elif claimed[0] != key:
            raise NameCollision(name, claimed[1], where)

    # -------------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------------

    def _declare(self, descriptor: Generated, schema: CanonicalSchema, context: FieldContext) -> None:
        match schema:
            case Object(fields=fields, extra=extra):
                bound = []
                seen: set[str] = set()
                for item in fields:
                    python_name = field_python_name(item.name)
                    while python_name in seen:
                        python_name = f'{python_name}_'
                    seen.add(python_name)
                    field_context = context.child(item.name, pointer=item.slot.schema.pointer or context.pointer)
                    bound.append(
                        BoundField(
                            name=item.name,
                            python_name=python_name,
                            descriptor=self.map(item.slot, field_context),
                            required=item.required,
                            default=item.default,
                            description=item.description,
                        )
                    )
                declaration = Declaration(
                    descriptor,
                    DeclarationKind.MODEL,
                    context.pointer,
                    schema.description,
                    fields=bound,
                    extra=extra,
                )
            case Enum(values=values, kind=kind):
                declaration = Declaration(
                    descriptor, DeclarationKind.ENUM, context.pointer, schema.description, values=values, value_kind=kind
                )
            case Union(alternatives=alternatives, discriminator=discriminator):
                mapped = [
                    self.map(alternative, context.child(f'Option{index}'))
                    for index, alternative in enumerate(alternatives, 1)
                ]
                tags = []
                if discriminator is not None:
                    for tag, path in discriminator.mapping:
                        tags.append((tag, self.map(Slot(Ref(path)), context.child(sanitize_identifier(tag)))))
                declaration = Declaration(
                    descriptor,
                    DeclarationKind.UNION,
                    context.pointer,
                    schema.description,
                    alternatives=mapped,
                    discriminator=discriminator.property_name if discriminator else None,
                    tags=tags,
                )
            case Primitive() | Array() | Map() | Unknown() | Ref():
                # Only recursive components get here, as a root model
                root = self._map_schema(schema, context)
                declaration = Declaration(descriptor, DeclarationKind.ALIAS, context.pointer, schema.description, root=root)
            case _:
                assert_never(schema)
        self._record(declaration)

    def _record(self, declaration: Declaration) -> None:
        self.declarations[declaration.name] = declaration

    def take_diagnostics(self) -> list[Diagnostic]:
        diagnostics, self.diagnostics = self.diagnostics, []
        return diagnostics
