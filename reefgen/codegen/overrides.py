"""Shape fingerprints and the override table.

An override routes every schema with a given structure to an existing type.
Matching is structural: references are looked through, field order is
irrelevant and documentation metadata is ignored, so an unnamed inline
schema matches an override declared through a named component and vice
versa.
"""

import logging
from typing import assert_never

from reefgen.codegen.document import DocumentNode
from reefgen.codegen.ir import (
    Array,
    CanonicalSchema,
    Enum,
    Existing,
    Map,
    Nullable,
    Object,
    Primitive,
    Ref,
    Slot,
    TypeDescriptor,
    Union,
    Unknown,
)
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.config import GeneratorConfig
from reefgen.exceptions import ConfigurationError, ResolutionError

logger = logging.getLogger(__name__)

Fingerprint = tuple


class Fingerprinter:
    """Computes structural fingerprints that see through references."""

    def __init__(self, resolver: ReferenceResolver):
        self.resolver = resolver
        self._by_path: dict[str, Fingerprint] = {}
        self._active: list[str] = []

    def of_slot(self, slot: Slot) -> Fingerprint:
        inner = self.of(slot.schema)
        return ('nullable', inner) if slot.nullable else inner

    def of(self, schema: CanonicalSchema) -> Fingerprint:
        match schema:
            case Primitive(kind=kind, format=fmt):
                return ('primitive', str(kind), fmt)
            case Array(element=element):
                return ('array', self.of_slot(element))
            case Map(value=value):
                return ('map', self.of_slot(value))
            case Object(fields=fields, extra=extra):
                members = sorted(
                    ((item.name, item.required, self.of_slot(item.slot)) for item in fields),
                    key=repr,
                )
                return ('object', extra, tuple(members))
            case Enum(values=values, kind=kind):
                return ('enum', str(kind), tuple(sorted(values, key=repr)))
            case Union(alternatives=alternatives, discriminator=discriminator):
                return (
                    'union',
                    tuple(self.of_slot(a) for a in alternatives),
                    discriminator.property_name if discriminator else None,
                )
            case Unknown():
                return ('unknown',)
            case Ref(path=path):
                return self._of_ref(path)
            case _:
                assert_never(schema)

    def _of_ref(self, path: str) -> Fingerprint:
        cached = self._by_path.get(path)
        if cached is not None:
            return cached
        if path in self._active:
            # Depth of the back edge keeps cycles of different lengths apart
            return ('cycle', len(self._active) - self._active.index(path))

        self._active.append(path)
        try:
            _, outcome = self.resolver.follow(path)
            fingerprint = self.of_slot(outcome.value)
        finally:
            self._active.pop()
        if not self.resolver.is_recursive(path):
            self._by_path[path] = fingerprint
        return fingerprint


class OverrideTable:
    """Compiled override configuration: fingerprint -> existing type.

    Example:
        >>> table = OverrideTable.compile(config, resolver)
        >>> table.match(Slot(Primitive(PrimitiveKind.STRING, 'date-time')))
        Existing(qualified_name='shared.time.Timestamp')
    """

    def __init__(self, fingerprinter: Fingerprinter, entries: dict[Fingerprint, Existing] | None = None):
        self.fingerprinter = fingerprinter
        self._entries: dict[Fingerprint, Existing] = dict(entries or {})

    @classmethod
    def compile(cls, config: GeneratorConfig, resolver: ReferenceResolver) -> 'OverrideTable':
        """Fingerprint every configured override.

        Raises:
            ConfigurationError: If an override target cannot be resolved, or
                two overrides share a shape but name different types.
        """
        fingerprinter = Fingerprinter(resolver)
        entries: dict[Fingerprint, Existing] = {}
        origins: dict[Fingerprint, int] = {}

        for index, override in enumerate(config.overrides):
            field = f'overrides[{index}]'
            if override.component is not None:
                slot = Slot(Ref(f'#/components/schemas/{override.component}'))
                try:
                    resolver.resolve_path(slot.schema.path)
                except ResolutionError as e:
                    raise ConfigurationError(
                        f"Override component '{override.component}' does not exist: {e}", field=field
                    )
            else:
                outcome = resolver.composer.compose(DocumentNode(override.schema_, f'/overrides/{index}/schema'))
                slot = outcome.value
                if outcome.has_errors or isinstance(slot.schema, Unknown):
                    raise ConfigurationError('Override schema is not supported', field=field)

            try:
                fingerprint = fingerprinter.of_slot(slot)
            except ResolutionError as e:
                raise ConfigurationError(f'Override schema cannot be resolved: {e}', field=field)

            target = Existing(override.type)
            existing = entries.get(fingerprint)
            if existing is not None and existing != target:
                raise ConfigurationError(
                    f"Ambiguous override set: '{existing.qualified_name}' "
                    f"(overrides[{origins[fingerprint]}]) and '{target.qualified_name}' "
                    'match the same schema shape',
                    field=field,
                )
            entries[fingerprint] = target
            origins.setdefault(fingerprint, index)
            logger.debug(f'Override {field}: {fingerprint!r} -> {override.type}')

        return cls(fingerprinter, entries)

    def match(self, slot: Slot) -> TypeDescriptor | None:
        """Return the existing type for a slot's shape, if one is configured."""
        if not self._entries:
            return None
        fingerprint = self.fingerprinter.of_slot(slot)
        target = self._entries.get(fingerprint)
        if target is not None:
            return target
        if slot.nullable:
            target = self._entries.get(fingerprint[1])
            if target is not None:
                return Nullable(target)
        return None

    def __len__(self) -> int:
        return len(self._entries)
