"""Operation extraction for OpenAPI documents.

This module provides the OperationBuilder class. Building an operation runs
in two steps: ``collect`` reads the document and composes every schema the
operation mentions (safe to run on worker threads), ``bind`` maps those
schemas to type descriptors (run in document order on one thread, so that
synthesized names are deterministic).
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import assert_never

from reefgen.codegen.diagnostics import Diagnostic, DiagnosticKind, Outcome
from reefgen.codegen.document import Document, DocumentNode
from reefgen.codegen.ir import (
    Array,
    ContentKind,
    Enum,
    Existing,
    Map,
    Object,
    Operation,
    Parameter,
    ParameterLocation,
    Primitive,
    PrimitiveKind,
    Ref,
    RequestBody,
    ResponseVariant,
    SchemaRef,
    Slot,
    StatusPattern,
    iter_refs,
)
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.codegen.type_mapper import FieldContext, TypeMapper
from reefgen.codegen.utils import sanitize_identifier, to_snake_case
from reefgen.config import GeneratorConfig
from reefgen.exceptions import NameCollision, SerializationStrategyUnresolvable, UnsupportedConstruct
from reefgen.runtime import BodyEncoding, SerializationStrategy

__all__ = [
    'HTTP_METHODS',
    'BODYLESS_METHODS',
    'ParameterDraft',
    'BodyDraft',
    'ResponseDraft',
    'OperationDraft',
    'OperationBuilder',
    'resolve_strategy',
]

logger = logging.getLogger(__name__)

HTTP_METHODS = ('get', 'put', 'post', 'delete', 'options', 'head', 'patch', 'trace')
BODYLESS_METHODS = frozenset({'get', 'head', 'options', 'trace'})

_PATH_TEMPLATE = re.compile(r'\{([^{}]+)\}')

# Local names used by generated client methods
_RESERVED_ARGUMENTS = frozenset(
    {
        'self',
        'body',
        'path',
        'params',
        'headers',
        'cookies',
        'response',
        'encode_body',
        'decode_json',
        'serialize_path',
        'serialize_query',
        'serialize_header',
        'serialize_cookie',
    }
)

_DEFAULT_STYLES = {
    ParameterLocation.PATH: 'simple',
    ParameterLocation.QUERY: 'form',
    ParameterLocation.HEADER: 'simple',
    ParameterLocation.COOKIE: 'form',
}

_ALLOWED_STYLES = {
    ParameterLocation.PATH: ('simple', 'label', 'matrix'),
    ParameterLocation.QUERY: ('form', 'spaceDelimited', 'pipeDelimited', 'deepObject'),
    ParameterLocation.HEADER: ('simple',),
    ParameterLocation.COOKIE: ('form',),
}

# style -> (explode=false, explode=true)
_EXPLODABLE = {
    'form': (SerializationStrategy.FORM, SerializationStrategy.FORM_EXPLODED),
    'simple': (SerializationStrategy.SIMPLE, SerializationStrategy.SIMPLE_EXPLODED),
    'label': (SerializationStrategy.LABEL, SerializationStrategy.LABEL_EXPLODED),
    'matrix': (SerializationStrategy.MATRIX, SerializationStrategy.MATRIX_EXPLODED),
}

_DELIMITED = {
    'spaceDelimited': SerializationStrategy.SPACE_DELIMITED,
    'pipeDelimited': SerializationStrategy.PIPE_DELIMITED,
}

_BYTES = Existing('builtins.bytes')
_TEXT = Existing('builtins.str')
_NONE = Existing('builtins.None')


def resolve_strategy(
    name: str,
    location: ParameterLocation,
    style: str | None,
    explode: bool | None,
    shape: str = 'unknown',
    pointer: str | None = None,
) -> SerializationStrategy:
    """Pick the serialization strategy of a parameter.

    Args:
        name: Parameter name, for error messages.
        location: Where the parameter is sent.
        style: Declared style, or None for the location's default.
        explode: Declared explode flag, or None for the style's default.
        shape: ``scalar``, ``array``, ``object`` or ``unknown``.
        pointer: JSON pointer of the parameter, for error messages.

    Raises:
        SerializationStrategyUnresolvable: If the combination has no strategy.
    """
    style = style or _DEFAULT_STYLES[location]
    if explode is None:
        explode = style == 'form'

    def unresolvable(reason: str) -> SerializationStrategyUnresolvable:
        return SerializationStrategyUnresolvable(name, str(location), style, explode, reason, pointer)

    if style not in _ALLOWED_STYLES[location]:
        raise unresolvable(f"style '{style}' is not defined for {location} parameters")

    if style in _EXPLODABLE:
        plain, exploded = _EXPLODABLE[style]
        return exploded if explode else plain

    if style == 'deepObject':
        if not explode:
            raise unresolvable('deepObject is only defined with explode=true')
        if shape not in ('object', 'unknown'):
            raise unresolvable('deepObject applies to objects only')
        return SerializationStrategy.DEEP_OBJECT

    if explode:
        raise unresolvable(f'{style} is only defined with explode=false')
    if shape == 'scalar':
        raise unresolvable(f'{style} applies to arrays and objects only')
    return _DELIMITED[style]


def _media_base(media_type: str) -> str:
    return media_type.split(';', 1)[0].strip().lower()


def _is_json(media_type: str) -> bool:
    base = _media_base(media_type)
    return base == 'application/json' or base.endswith('+json')


def _body_encoding(media_type: str) -> BodyEncoding | None:
    base = _media_base(media_type)
    if _is_json(base):
        return BodyEncoding.JSON
    if base == 'application/x-www-form-urlencoded':
        return BodyEncoding.FORM
    if base == 'multipart/form-data':
        return BodyEncoding.MULTIPART
    if base == 'application/octet-stream':
        return BodyEncoding.BINARY
    if base.startswith('text/'):
        return BodyEncoding.TEXT
    return None


# Preferred body encodings, best first
_BODY_PREFERENCE = (
    BodyEncoding.JSON,
    BodyEncoding.FORM,
    BodyEncoding.MULTIPART,
    BodyEncoding.BINARY,
    BodyEncoding.TEXT,
)


@dataclass(frozen=True)
class ParameterDraft:
    name: str
    location: ParameterLocation
    slot: Slot
    required: bool
    strategy: SerializationStrategy
    description: str | None = None
    pointer: str = ''


@dataclass(frozen=True)
class BodyDraft:
    slot: Slot
    encoding: BodyEncoding
    media_type: str
    required: bool = False
    description: str | None = None
    pointer: str = ''


@dataclass(frozen=True)
class ResponseDraft:
    status: StatusPattern
    content: ContentKind
    slot: Slot | None = None
    media_type: str | None = None
    description: str | None = None
    pointer: str = ''


@dataclass(frozen=True)
class OperationDraft:
    """An operation whose schemas are composed but not yet mapped to types."""

    operation_id: str
    method: str
    path: str
    parameters: tuple[ParameterDraft, ...] = ()
    body: BodyDraft | None = None
    responses: tuple[ResponseDraft, ...] = ()
    summary: str | None = None
    description: str | None = None
    deprecated: bool = False
    pointer: str = ''

    @property
    def type_prefix(self) -> str:
        return sanitize_identifier(self.operation_id)

    def slots(self) -> Iterator[tuple[Slot, str]]:
        for parameter in self.parameters:
            yield parameter.slot, parameter.pointer
        if self.body is not None:
            yield self.body.slot, self.body.pointer
        for response in self.responses:
            if response.slot is not None:
                yield response.slot, response.pointer

    def references(self) -> Iterator[tuple[str, str]]:
        """``(path, pointer)`` of every reference the operation's schemas make."""
        for slot, pointer in self.slots():
            for ref in iter_refs(slot.schema):
                yield ref.path, ref.pointer or pointer


class OperationBuilder:
    """Builds ``Operation`` values from the ``paths`` section of a document.

    Example:
        >>> builder = OperationBuilder(document, resolver, config)
        >>> drafts = [builder.collect(*item) for item in builder.operations()]
        >>> operation = builder.bind(drafts[0].value, mapper)
        >>> operation.method_name
        'list_pets'
    """

    def __init__(self, document: Document, resolver: ReferenceResolver, config: GeneratorConfig):
        self.document = document
        self.resolver = resolver
        self.config = config
        self._method_names: dict[str, str] = {}

    def operations(self) -> Iterator[tuple[str, str, DocumentNode, DocumentNode]]:
        """Yield ``(path, method, operation node, path item node)`` in document order."""
        paths = self.document.section('paths')
        if paths is None:
            return
        for path, path_item in paths.items():
            path_item = self.resolver.deref(path_item)
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if operation is not None and operation.is_mapping:
                    yield path, method, operation, path_item

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    def collect(
        self, path: str, method: str, node: DocumentNode, path_item: DocumentNode
    ) -> Outcome[OperationDraft]:
        """Compose everything one operation needs.

        Raises:
            SerializationStrategyUnresolvable: If a parameter has no strategy.
            UnsupportedConstruct: If a parameter cannot be modelled at all.
            ResolutionError: If a parameter, body or response reference is broken.
        """
        diagnostics: list[Diagnostic] = []
        operation_id = node.scalar('operationId') or f'{method}_{path}'
        operation_id = str(operation_id)

        parameters = self._parameters(path, node, path_item, diagnostics)
        body = self._body(method, node, diagnostics)
        responses = self._responses(node, diagnostics)

        draft = OperationDraft(
            operation_id=operation_id,
            method=method,
            path=path,
            parameters=tuple(parameters),
            body=body,
            responses=tuple(responses),
            summary=node.scalar('summary'),
            description=node.scalar('description'),
            deprecated=node.scalar('deprecated') is True,
            pointer=node.pointer,
        )
        logger.debug(f'Collected {method.upper()} {path} as {operation_id}')
        return Outcome(draft, tuple(diagnostics))

    def _compose(self, node: DocumentNode | None, diagnostics: list[Diagnostic]) -> Slot:
        if node is None:
            return Slot(Primitive(PrimitiveKind.ANY))
        outcome = self.resolver.resolve(SchemaRef.inline(node))
        diagnostics.extend(outcome.diagnostics)
        return outcome.value

    def _shape(self, slot: Slot) -> str:
        schema = slot.schema
        if isinstance(schema, Ref):
            _, outcome = self.resolver.follow(schema.path)
            schema = outcome.value.schema
        if isinstance(schema, Array):
            return 'array'
        if isinstance(schema, Object | Map):
            return 'object'
        if isinstance(schema, Primitive | Enum):
            return 'scalar' if schema != Primitive(PrimitiveKind.ANY) else 'unknown'
        return 'unknown'

    def _parameters(
        self, path: str, node: DocumentNode, path_item: DocumentNode, diagnostics: list[Diagnostic]
    ) -> list[ParameterDraft]:
        merged: dict[tuple[str, str], DocumentNode] = {}
        for owner in (path_item, node):
            declared = owner.get('parameters')
            if declared is None:
                continue
            for element in declared.elements():
                parameter = self.resolver.deref(element)
                key = (str(parameter.scalar('name')), str(parameter.scalar('in')))
                # Operation parameters replace path item parameters with the same key
                merged.pop(key, None)
                merged[key] = parameter

        drafts = [self._parameter(parameter, diagnostics) for parameter in merged.values()]

        declared_path_names = {d.name for d in drafts if d.location is ParameterLocation.PATH}
        for variable in _PATH_TEMPLATE.findall(path):
            if variable not in declared_path_names:
                diagnostics.append(
                    Diagnostic.warning(
                        DiagnosticKind.INVALID_DOCUMENT,
                        f"Path variable '{variable}' has no path parameter; treating it as a string",
                        node.pointer,
                    )
                )
                drafts.append(
                    ParameterDraft(
                        variable,
                        ParameterLocation.PATH,
                        Slot(Primitive(PrimitiveKind.STRING)),
                        True,
                        SerializationStrategy.SIMPLE,
                        pointer=node.pointer,
                    )
                )
                declared_path_names.add(variable)
        return drafts

    def _parameter(self, node: DocumentNode, diagnostics: list[Diagnostic]) -> ParameterDraft:
        name = node.scalar('name')
        raw_location = node.scalar('in')
        try:
            location = ParameterLocation(raw_location)
        except ValueError:
            raise UnsupportedConstruct(f"parameter location '{raw_location}'", node.pointer)
        if not isinstance(name, str) or not name:
            raise UnsupportedConstruct('parameter without a name', node.pointer)

        content = node.get('content')
        if content is not None and content.is_mapping:
            media = next((child for _, child in content.items()), None)
            slot = self._compose(media.get('schema') if media is not None else None, diagnostics)
            strategy = SerializationStrategy.JSON
        else:
            slot = self._compose(node.get('schema'), diagnostics)
            strategy = resolve_strategy(
                name,
                location,
                node.scalar('style'),
                node.scalar('explode'),
                self._shape(slot),
                node.pointer,
            )

        # Path parameters are always required
        required = location is ParameterLocation.PATH or node.scalar('required') is True
        return ParameterDraft(
            name=name,
            location=location,
            slot=slot,
            required=required,
            strategy=strategy,
            description=node.scalar('description'),
            pointer=node.pointer,
        )

    def _body(self, method: str, node: DocumentNode, diagnostics: list[Diagnostic]) -> BodyDraft | None:
        body_node = node.get('requestBody')
        if body_node is None:
            return None
        body_node = self.resolver.deref(body_node)
        content = body_node.get('content')
        if content is None or not list(content.items()):
            return None

        if method in BODYLESS_METHODS:
            diagnostics.append(
                Diagnostic.warning(
                    DiagnosticKind.REQUEST_BODY_NOT_EXPECTED,
                    f'{method.upper()} operations are not expected to have a request body',
                    body_node.pointer,
                )
            )

        candidates = [(media_type, media, _body_encoding(media_type)) for media_type, media in content.items()]
        selected = None
        for preferred in _BODY_PREFERENCE:
            selected = next((c for c in candidates if c[2] is preferred), None)
            if selected is not None:
                break
        if selected is None:
            media_type, media, _ = candidates[0]
            diagnostics.append(
                Diagnostic.warning(
                    DiagnosticKind.UNSUPPORTED_MEDIA_TYPE,
                    f"Request body media type '{media_type}' is not supported; sending raw bytes",
                    media.pointer,
                )
            )
            selected = (media_type, media, BodyEncoding.BINARY)

        media_type, media, encoding = selected
        if encoding is BodyEncoding.BINARY:
            slot = Slot(Primitive(PrimitiveKind.STRING, 'binary'))
        elif encoding is BodyEncoding.TEXT:
            slot = Slot(Primitive(PrimitiveKind.STRING))
        else:
            slot = self._compose(media.get('schema'), diagnostics)

        return BodyDraft(
            slot=slot,
            encoding=encoding,
            media_type=media_type,
            required=body_node.scalar('required') is True,
            description=body_node.scalar('description'),
            pointer=media.pointer,
        )

    def _responses(self, node: DocumentNode, diagnostics: list[Diagnostic]) -> list[ResponseDraft]:
        responses = node.get('responses')
        if responses is None:
            return []

        drafts = []
        for status, response in responses.items():
            try:
                pattern = StatusPattern.parse(status)
            except ValueError as e:
                diagnostics.append(Diagnostic.warning(DiagnosticKind.INVALID_DOCUMENT, str(e), response.pointer))
                continue
            response = self.resolver.deref(response)
            drafts.append(self._response(pattern, response, diagnostics))
        return drafts

    def _response(self, status: StatusPattern, node: DocumentNode, diagnostics: list[Diagnostic]) -> ResponseDraft:
        description = node.scalar('description')
        content = node.get('content')
        media = list(content.items()) if content is not None else []
        if not media:
            return ResponseDraft(status, ContentKind.EMPTY, description=description, pointer=node.pointer)

        for media_type, media_node in media:
            if _is_json(media_type):
                slot = self._compose(media_node.get('schema'), diagnostics)
                return ResponseDraft(status, ContentKind.JSON, slot, media_type, description, media_node.pointer)
        for media_type, media_node in media:
            if _media_base(media_type).startswith('text/'):
                return ResponseDraft(status, ContentKind.TEXT, None, media_type, description, media_node.pointer)
        media_type, media_node = media[0]
        return ResponseDraft(status, ContentKind.BINARY, None, media_type, description, media_node.pointer)

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    def method_name(self, draft: OperationDraft) -> str:
        return to_snake_case(draft.operation_id) or f'{draft.method}_operation'

    def bind(self, draft: OperationDraft, mapper: TypeMapper) -> Operation:
        """Map a draft's schemas to type descriptors.

        Must be called in document order from a single thread.

        Raises:
            NameCollision: If two operations produce the same method name.
        """
        method_name = self.method_name(draft)
        claimed = self._method_names.get(method_name)
        if claimed is not None and claimed != draft.pointer:
            raise NameCollision(method_name, claimed, draft.pointer)
        self._method_names[method_name] = draft.pointer

        prefix = draft.type_prefix
        parameters = []
        taken: set[str] = set()
        for parameter in draft.parameters:
            python_name = self._argument_name(parameter, taken)
            taken.add(python_name)
            context = FieldContext((prefix, parameter.name), parameter.pointer)
            parameters.append(
                Parameter(
                    name=parameter.name,
                    python_name=python_name,
                    location=parameter.location,
                    descriptor=mapper.map(parameter.slot, context),
                    required=parameter.required,
                    strategy=parameter.strategy,
                    description=parameter.description,
                )
            )

        body = None
        if draft.body is not None:
            context = FieldContext((prefix, 'Body'), draft.body.pointer)
            body = RequestBody(
                descriptor=mapper.map(draft.body.slot, context),
                encoding=draft.body.encoding,
                media_type=draft.body.media_type,
                required=draft.body.required,
                description=draft.body.description,
            )

        responses = []
        for response in draft.responses:
            match response.content:
                case ContentKind.JSON:
                    context = FieldContext((prefix, 'Response', str(response.status)), response.pointer)
                    descriptor = mapper.map(response.slot, context)
                case ContentKind.TEXT:
                    descriptor = _TEXT
                case ContentKind.BINARY:
                    descriptor = _BYTES
                case ContentKind.EMPTY:
                    descriptor = _NONE
                case _:
                    assert_never(response.content)
            responses.append(
                ResponseVariant(
                    status=response.status,
                    content=response.content,
                    descriptor=descriptor,
                    media_type=response.media_type,
                    description=response.description,
                )
            )

        return Operation(
            operation_id=draft.operation_id,
            method_name=method_name,
            method=draft.method,
            path=draft.path,
            parameters=tuple(parameters),
            body=body,
            responses=tuple(responses),
            summary=draft.summary,
            description=draft.description,
            deprecated=draft.deprecated,
            pointer=draft.pointer,
        )

    def _argument_name(self, parameter: ParameterDraft, taken: set[str]) -> str:
        base = to_snake_case(parameter.name) or 'param'
        python_name = base
        if python_name in taken or python_name in _RESERVED_ARGUMENTS:
            python_name = f'{base}_{parameter.location}'
        while python_name in taken:
            python_name = f'{python_name}_'
        return python_name
