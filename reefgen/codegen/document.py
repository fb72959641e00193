"""Generic, read-only view of a parsed OpenAPI document.

The engine never depends on how a document was obtained: ``Document`` wraps
any JSON-compatible tree (as produced by ``json.loads`` or
``yaml.safe_load``) and offers object/array/scalar access plus reference
lookup. Every node knows its JSON pointer, so diagnostics can point back
into the source.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

from reefgen.exceptions import ResolutionError, Unresolved

__all__ = [
    'DocumentNode',
    'Document',
    'escape_pointer_token',
    'unescape_pointer_token',
    'normalize_ref',
    'component_name',
]


def escape_pointer_token(token: str | int) -> str:
    return str(token).replace('~', '~0').replace('/', '~1')


def unescape_pointer_token(token: str) -> str:
    return token.replace('~1', '/').replace('~0', '~')


def normalize_ref(ref: str) -> str:
    """Normalize a local reference to its canonical ``#/a/b`` form.

    Percent-encoding is decoded and a trailing slash dropped, so that two
    spellings of one location share a cache entry.

    Raises:
        ResolutionError: If the reference points outside the document.
    """
    if not ref.startswith('#'):
        raise ResolutionError(
            ref,
            'External references are not supported. '
            'Consider bundling the document into a single file.',
        )
    pointer = unquote(ref[1:])
    if pointer and not pointer.startswith('/'):
        raise ResolutionError(ref, 'Local reference must start with #/')
    if len(pointer) > 1:
        pointer = pointer.rstrip('/')
    return f'#{pointer}'


def component_name(ref: str) -> str:
    """Return the last token of a reference, e.g. ``Pet`` for ``#/components/schemas/Pet``."""
    token = ref.rsplit('/', 1)[-1]
    return unescape_pointer_token(token)


@dataclass(frozen=True, eq=False)
class DocumentNode:
    """One node of the document tree together with its JSON pointer."""

    value: Any
    pointer: str = ''

    def child(self, key: str | int) -> 'DocumentNode':
        return DocumentNode(self.value[key], f'{self.pointer}/{escape_pointer_token(key)}')

    def get(self, key: str) -> 'DocumentNode | None':
        if isinstance(self.value, Mapping) and key in self.value:
            return self.child(key)
        return None

    def __getitem__(self, key: str | int) -> 'DocumentNode':
        return self.child(key)

    def __contains__(self, key: str) -> bool:
        return isinstance(self.value, Mapping) and key in self.value

    def scalar(self, key: str, default: Any = None) -> Any:
        """Return the raw value stored under ``key`` in a mapping node."""
        if isinstance(self.value, Mapping):
            return self.value.get(key, default)
        return default

    def items(self) -> Iterator[tuple[str, 'DocumentNode']]:
        if isinstance(self.value, Mapping):
            for key in self.value:
                yield key, self.child(key)

    def elements(self) -> Iterator['DocumentNode']:
        if isinstance(self.value, list):
            for index in range(len(self.value)):
                yield self.child(index)

    @property
    def is_mapping(self) -> bool:
        return isinstance(self.value, Mapping)

    @property
    def is_sequence(self) -> bool:
        return isinstance(self.value, list)

    @property
    def ref(self) -> str | None:
        """The ``$ref`` string of a reference object, if this node is one."""
        ref = self.scalar('$ref')
        return ref if isinstance(ref, str) else None

    def __repr__(self) -> str:
        return f'DocumentNode(pointer={self.pointer!r})'


class Document:
    """A parsed OpenAPI document with reference-path lookup.

    Example:
        >>> document = Document.from_mapping({'openapi': '3.0.3', 'paths': {}})
        >>> document.lookup('#/paths').value
        {}
    """

    def __init__(self, root: Mapping[str, Any], source: str = '<memory>'):
        if not isinstance(root, Mapping):
            raise TypeError('Document root must be a mapping')
        self.root = DocumentNode(root, '')
        self.source = source

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source: str = '<memory>') -> 'Document':
        return cls(data, source)

    def lookup(self, ref: str) -> DocumentNode:
        """Return the node a local reference points to.

        Raises:
            Unresolved: If no node exists at the referenced path.
            ResolutionError: If the reference is not a local reference.
        """
        path = normalize_ref(ref)
        node = self.root
        if path == '#':
            return node
        for token in path[2:].split('/'):
            token = unescape_pointer_token(token)
            value = node.value
            if isinstance(value, Mapping) and token in value:
                node = node.child(token)
            elif isinstance(value, list) and token.isdigit() and int(token) < len(value):
                node = node.child(int(token))
            else:
                raise Unresolved(path)
        return node

    def section(self, *keys: str) -> DocumentNode | None:
        node: DocumentNode | None = self.root
        for key in keys:
            if node is None:
                return None
            node = node.get(key)
        return node

    @property
    def openapi_version(self) -> str:
        return str(self.root.scalar('openapi', ''))

    @property
    def title(self) -> str:
        info = self.root.scalar('info') or {}
        return str(info.get('title') or 'Api')

    @property
    def version(self) -> str | None:
        info = self.root.scalar('info') or {}
        version = info.get('version')
        return str(version) if version is not None else None

    def component_schema_paths(self) -> list[str]:
        schemas = self.section('components', 'schemas')
        if schemas is None:
            return []
        return [f'#/components/schemas/{escape_pointer_token(name)}' for name, _ in schemas.items()]

    def __repr__(self) -> str:
        return f'Document(source={self.source!r}, openapi={self.openapi_version!r})'
