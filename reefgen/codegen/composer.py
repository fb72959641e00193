"""Normalization of raw schema nodes into canonical schemas.

Composition keywords are flattened away here: ``allOf`` becomes one merged
``Object``, ``oneOf``/``anyOf`` become a ``Union``. Constructs the engine
does not model degrade to ``Unknown`` with a diagnostic instead of aborting
the run.
"""

import logging
from typing import TYPE_CHECKING, Any

from reefgen.codegen.diagnostics import Diagnostic, DiagnosticKind, Outcome, Severity
from reefgen.codegen.document import DocumentNode, component_name, normalize_ref
from reefgen.codegen.ir import (
    NO_DEFAULT,
    Array,
    Discriminator,
    Enum,
    Map,
    Object,
    ObjectField,
    Primitive,
    PrimitiveKind,
    Ref,
    Slot,
    Union,
    Unknown,
    describe,
)
from reefgen.config import GeneratorConfig, OnUnsupported
from reefgen.exceptions import CompositionConflict, CycleDetected, ResolutionError

if TYPE_CHECKING:
    from reefgen.codegen.schema_resolver import ReferenceResolver

logger = logging.getLogger(__name__)

_PRIMITIVE_KINDS = {
    'string': PrimitiveKind.STRING,
    'integer': PrimitiveKind.INTEGER,
    'number': PrimitiveKind.NUMBER,
    'boolean': PrimitiveKind.BOOLEAN,
    'null': PrimitiveKind.NULL,
}

ANY = Primitive(PrimitiveKind.ANY)


def _value_kind(value: Any) -> PrimitiveKind | None:
    if isinstance(value, bool):
        return PrimitiveKind.BOOLEAN
    if isinstance(value, int):
        return PrimitiveKind.INTEGER
    if isinstance(value, float):
        return PrimitiveKind.NUMBER
    if isinstance(value, str):
        return PrimitiveKind.STRING
    return None


class SchemaComposer:
    """Turns one raw schema node into one canonical ``Slot``.

    References inside the node are kept as ``Ref`` values; only ``allOf``
    branches are looked through, because merging needs their fields.
    """

    def __init__(self, resolver: 'ReferenceResolver', config: GeneratorConfig):
        self.resolver = resolver
        self.config = config

    def compose(self, node: DocumentNode, depth: int = 0) -> Outcome[Slot]:
        diagnostics: list[Diagnostic] = []
        slot = self._compose(node, depth, diagnostics)
        return Outcome(slot, tuple(diagnostics))

    def _compose(self, node: DocumentNode, depth: int, diagnostics: list[Diagnostic]) -> Slot:
        if node.value is True:
            return Slot(Primitive(PrimitiveKind.ANY, pointer=node.pointer))
        if not node.is_mapping:
            return self._unsupported(f'schema of type {type(node.value).__name__}', node, diagnostics)

        ref = node.ref
        if ref is not None:
            # Siblings of $ref are ignored in OpenAPI 3.0, except the common nullable extension
            return Slot(
                Ref(normalize_ref(ref), pointer=node.pointer),
                nullable=node.scalar('nullable') is True,
            )

        if depth > self.config.max_composition_depth:
            return self._unsupported(
                f'composition nested deeper than {self.config.max_composition_depth} levels',
                node,
                diagnostics,
            )

        nullable = node.scalar('nullable') is True
        declared_type = node.scalar('type')

        if 'not' in node:
            return self._unsupported("'not'", node, diagnostics)
        if isinstance(declared_type, list):
            return self._unsupported('type arrays', node, diagnostics)

        if 'allOf' in node:
            slot = self._all_of(node, depth, diagnostics)
        elif 'oneOf' in node or 'anyOf' in node:
            slot = self._union(node, depth, diagnostics)
        elif 'enum' in node:
            slot = self._enum(node, diagnostics)
        elif declared_type == 'object' or (
            declared_type is None and ('properties' in node or 'additionalProperties' in node)
        ):
            slot = Slot(self._object(node, depth, diagnostics))
        elif declared_type == 'array':
            items = node.get('items')
            element = self._compose(items, depth + 1, diagnostics) if items is not None else Slot(ANY)
            slot = Slot(Array(element, pointer=node.pointer, description=node.scalar('description')))
        elif declared_type in _PRIMITIVE_KINDS:
            fmt = node.scalar('format')
            slot = Slot(
                Primitive(
                    _PRIMITIVE_KINDS[declared_type],
                    str(fmt) if fmt is not None else None,
                    pointer=node.pointer,
                    description=node.scalar('description'),
                )
            )
        elif declared_type is None:
            slot = Slot(Primitive(PrimitiveKind.ANY, pointer=node.pointer))
        else:
            return self._unsupported(f"type '{declared_type}'", node, diagnostics)

        return slot.as_nullable(slot.nullable or nullable)

    # -------------------------------------------------------------------------
    # Objects and maps
    # -------------------------------------------------------------------------

    def _fields(self, node: DocumentNode, depth: int, diagnostics: list[Diagnostic]) -> list[ObjectField]:
        required = node.scalar('required') or []
        fields = []
        properties = node.get('properties')
        if properties is None:
            return fields
        for name, child in properties.items():
            fields.append(
                ObjectField(
                    name=name,
                    slot=self._compose(child, depth + 1, diagnostics),
                    required=name in required,
                    default=child.scalar('default', NO_DEFAULT),
                    description=child.scalar('description'),
                )
            )
        return fields

    def _object(self, node: DocumentNode, depth: int, diagnostics: list[Diagnostic]) -> Object | Map:
        fields = self._fields(node, depth, diagnostics)
        additional = node.get('additionalProperties')
        description = node.scalar('description')

        if not fields:
            if additional is None or additional.value is True or additional.value == {}:
                return Map(Slot(ANY), pointer=node.pointer, description=description)
            if additional.value is False:
                return Object((), extra='forbid', pointer=node.pointer, description=description)
            return Map(
                self._compose(additional, depth + 1, diagnostics),
                pointer=node.pointer,
                description=description,
            )

        if additional is None:
            extra = 'ignore'
        elif additional.value is False:
            extra = 'forbid'
        else:
            extra = 'allow'
        return Object(
            tuple(fields),
            extra=extra,
            title=node.scalar('title'),
            pointer=node.pointer,
            description=description,
        )

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def _all_of(self, node: DocumentNode, depth: int, diagnostics: list[Diagnostic]) -> Slot:
        branches = list(node['allOf'].elements())
        has_siblings = 'properties' in node or 'additionalProperties' in node
        if len(branches) == 1 and not has_siblings:
            # A single-branch allOf is the usual way to attach metadata to a reference
            return self._compose(branches[0], depth + 1, diagnostics)

        merged: dict[str, ObjectField] = {}
        required: set[str] = set(node.scalar('required') or [])
        extra = 'ignore'

        parts: list[tuple[DocumentNode, Object]] = []
        for branch in branches:
            obj = self._branch_object(branch, depth, diagnostics)
            if isinstance(obj, Slot):
                return obj
            required.update(branch.scalar('required') or [])
            parts.append((branch, obj))
        if has_siblings:
            sibling = self._object(node, depth, diagnostics)
            if isinstance(sibling, Object):
                parts.append((node, sibling))

        try:
            for branch, obj in parts:
                if obj.extra == 'allow':
                    extra = 'allow'
                for item in obj.fields:
                    merged[item.name] = self._merge_field(merged.get(item.name), item, branch)
        except CompositionConflict as e:
            logger.debug(f'Composition conflict at {node.pointer}: {e}')
            diagnostics.append(Diagnostic.from_exception(DiagnosticKind.COMPOSITION_CONFLICT, e, node.pointer))
            return Slot(Unknown(reason=str(e), pointer=node.pointer))

        fields = tuple(
            ObjectField(
                name=item.name,
                slot=item.slot,
                required=item.required or item.name in required,
                default=item.default,
                description=item.description,
            )
            for item in merged.values()
        )
        return Slot(
            Object(
                fields,
                extra=extra,
                title=node.scalar('title'),
                pointer=node.pointer,
                description=node.scalar('description'),
            )
        )

    def _merge_field(self, existing: ObjectField | None, item: ObjectField, branch: DocumentNode) -> ObjectField:
        if existing is None:
            return item
        if existing.slot != item.slot:
            raise CompositionConflict(item.name, describe(existing.slot), describe(item.slot), branch.pointer)
        return ObjectField(
            name=existing.name,
            slot=existing.slot,
            required=existing.required or item.required,
            default=existing.default if existing.has_default else item.default,
            description=existing.description or item.description,
        )

    def _branch_object(self, branch: DocumentNode, depth: int, diagnostics: list[Diagnostic]) -> Object | Slot:
        """Return the fields a branch contributes, or the degraded slot replacing the whole merge."""
        slot = self._compose(branch, depth + 1, diagnostics)
        schema = slot.schema
        if isinstance(schema, Ref):
            try:
                _, outcome = self.resolver.follow(schema.path)
            except CycleDetected:
                return self._unsupported(f'recursive allOf through {schema.path}', branch, diagnostics)
            except ResolutionError as e:
                diagnostics.append(Diagnostic.from_exception(DiagnosticKind.UNRESOLVED, e, branch.pointer))
                return Slot(Unknown(reason=str(e), pointer=branch.pointer))
            diagnostics.extend(outcome.diagnostics)
            schema = outcome.value.schema

        if isinstance(schema, Object):
            return schema
        if isinstance(schema, Map) and schema.value.schema == ANY:
            return Object((), extra='allow', pointer=schema.pointer)
        if isinstance(schema, Primitive) and schema.kind is PrimitiveKind.ANY:
            # e.g. a branch that only adds `required` or a description
            return Object((), pointer=schema.pointer)
        return self._unsupported('allOf branch that is not an object schema', branch, diagnostics)

    def _union(self, node: DocumentNode, depth: int, diagnostics: list[Diagnostic]) -> Slot:
        keyword = 'oneOf' if 'oneOf' in node else 'anyOf'
        if 'properties' in node:
            return self._unsupported(f'{keyword} combined with sibling properties', node, diagnostics)

        alternatives: list[Slot] = []
        nullable = False
        for branch in node[keyword].elements():
            slot = self._compose(branch, depth + 1, diagnostics)
            if isinstance(slot.schema, Primitive) and slot.schema.kind is PrimitiveKind.NULL:
                nullable = True
                continue
            if slot not in alternatives:
                alternatives.append(slot)

        if not alternatives:
            return Slot(Primitive(PrimitiveKind.NULL, pointer=node.pointer), nullable=True)
        if len(alternatives) == 1:
            return alternatives[0].as_nullable(alternatives[0].nullable or nullable)

        discriminator = self._discriminator(node, alternatives)
        return Slot(
            Union(
                tuple(alternatives),
                discriminator,
                pointer=node.pointer,
                description=node.scalar('description'),
            ),
            nullable=nullable,
        )

    def _discriminator(self, node: DocumentNode, alternatives: list[Slot]) -> Discriminator | None:
        spec = node.scalar('discriminator')
        if not isinstance(spec, dict) or not spec.get('propertyName'):
            return None

        explicit = spec.get('mapping') or {}
        mapping: list[tuple[str, str]] = []
        for tag, target in explicit.items():
            # Bare names in a mapping refer to component schemas
            path = target if target.startswith('#') else f'#/components/schemas/{target}'
            mapping.append((str(tag), normalize_ref(path)))

        mapped_paths = {path for _, path in mapping}
        for slot in alternatives:
            if isinstance(slot.schema, Ref) and slot.schema.path not in mapped_paths:
                mapping.append((component_name(slot.schema.path), slot.schema.path))

        return Discriminator(str(spec['propertyName']), tuple(mapping))

    # -------------------------------------------------------------------------
    # Enums and unsupported constructs
    # -------------------------------------------------------------------------

    def _enum(self, node: DocumentNode, diagnostics: list[Diagnostic]) -> Slot:
        raw = node.scalar('enum')
        if not isinstance(raw, list):
            return self._unsupported('enum that is not a list', node, diagnostics)

        nullable = None in raw
        values = [value for value in raw if value is not None]
        declared = _PRIMITIVE_KINDS.get(node.scalar('type'))
        kinds = {_value_kind(value) for value in values}

        if not values:
            return Slot(Primitive(PrimitiveKind.NULL, pointer=node.pointer), nullable=True)
        if None in kinds or len(kinds) > 1:
            return self._unsupported('enum with mixed or non-scalar values', node, diagnostics)

        kind = kinds.pop()
        if declared is PrimitiveKind.NUMBER:
            kind = declared
        if kind not in (PrimitiveKind.STRING, PrimitiveKind.INTEGER):
            fmt = node.scalar('format')
            return Slot(Primitive(kind, fmt, pointer=node.pointer), nullable=nullable)

        unique = tuple(dict.fromkeys(values))
        return Slot(
            Enum(unique, kind, pointer=node.pointer, description=node.scalar('description')),
            nullable=nullable,
        )

    def _unsupported(self, construct: str, node: DocumentNode, diagnostics: list[Diagnostic]) -> Slot:
        severity = Severity.ERROR if self.config.on_unsupported is OnUnsupported.ERROR else Severity.WARNING
        diagnostic = Diagnostic(
            severity,
            DiagnosticKind.UNSUPPORTED_CONSTRUCT,
            f'Unsupported construct: {construct}; using an opaque type',
            node.pointer,
        )
        diagnostics.append(diagnostic)
        return Slot(Unknown(reason=construct, diagnostic=diagnostic, pointer=node.pointer))
