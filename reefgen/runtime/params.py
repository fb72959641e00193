"""Parameter serialization for generated clients.

Every parameter of a generated operation carries one member of
``SerializationStrategy``, resolved at generation time from the document's
``style``/``explode`` flags. The functions below turn a Python value into the
wire representation for that strategy.

Example:
    >>> serialize_query(SerializationStrategy.FORM, 'ids', [1, 2, 3])
    [('ids', '1,2,3')]
    >>> serialize_query(SerializationStrategy.FORM_EXPLODED, 'ids', [1, 2, 3])
    [('ids', '1'), ('ids', '2'), ('ids', '3')]
"""

import datetime
import json
from enum import Enum, StrEnum
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, TypeAdapter

__all__ = [
    'SerializationStrategy',
    'serialize_query',
    'serialize_path',
    'serialize_header',
    'serialize_cookie',
    'to_text',
    'to_jsonable',
]

_ANY_ADAPTER = TypeAdapter(Any)


class SerializationStrategy(StrEnum):
    FORM = 'form'
    FORM_EXPLODED = 'form-exploded'
    SPACE_DELIMITED = 'space-delimited'
    PIPE_DELIMITED = 'pipe-delimited'
    DEEP_OBJECT = 'deep-object'
    SIMPLE = 'simple'
    SIMPLE_EXPLODED = 'simple-exploded'
    LABEL = 'label'
    LABEL_EXPLODED = 'label-exploded'
    MATRIX = 'matrix'
    MATRIX_EXPLODED = 'matrix-exploded'
    JSON = 'json'


_DELIMITERS = {
    SerializationStrategy.FORM: ',',
    SerializationStrategy.SPACE_DELIMITED: ' ',
    SerializationStrategy.PIPE_DELIMITED: '|',
}


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode='json', by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple | set | frozenset):
        return list(value)
    return value


def to_text(value: Any) -> str:
    """Render a scalar the way OpenAPI parameter styles expect it."""
    value = _plain(value)
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


def _pairs(value: dict) -> list[str]:
    flat = []
    for key, item in value.items():
        if item is None:
            continue
        flat.extend([str(key), to_text(item)])
    return flat


def serialize_query(strategy: SerializationStrategy, name: str, value: Any) -> list[tuple[str, str]]:
    """Serialize a query parameter into key/value pairs.

    ``None`` values are omitted entirely.
    """
    if value is None:
        return []
    if strategy is SerializationStrategy.JSON:
        return [(name, json.dumps(to_jsonable(value), separators=(',', ':')))]
    value = _plain(value)

    match strategy:
        case SerializationStrategy.FORM_EXPLODED:
            if isinstance(value, list):
                return [(name, to_text(item)) for item in value]
            if isinstance(value, dict):
                return [(str(key), to_text(item)) for key, item in value.items() if item is not None]
            return [(name, to_text(value))]
        case (
            SerializationStrategy.FORM
            | SerializationStrategy.SPACE_DELIMITED
            | SerializationStrategy.PIPE_DELIMITED
        ):
            delimiter = _DELIMITERS[strategy]
            if isinstance(value, list):
                return [(name, delimiter.join(to_text(item) for item in value))]
            if isinstance(value, dict):
                return [(name, delimiter.join(_pairs(value)))]
            return [(name, to_text(value))]
        case SerializationStrategy.DEEP_OBJECT:
            if not isinstance(value, dict):
                raise TypeError(f'deepObject parameter {name!r} requires a mapping value')
            return [(f'{name}[{key}]', to_text(item)) for key, item in value.items() if item is not None]
        case _:
            raise ValueError(f'{strategy} is not a query serialization strategy')


def _simple(value: Any, explode: bool, encode) -> str:
    if isinstance(value, list):
        return ','.join(encode(to_text(item)) for item in value)
    if isinstance(value, dict):
        if explode:
            return ','.join(
                f'{encode(str(key))}={encode(to_text(item))}'
                for key, item in value.items()
                if item is not None
            )
        return ','.join(encode(part) for part in _pairs(value))
    return encode(to_text(value))


def _quote(text: str) -> str:
    return quote(text, safe='')


def _verbatim(text: str) -> str:
    return text


def serialize_path(strategy: SerializationStrategy, name: str, value: Any) -> str:
    """Serialize a path parameter, percent-encoding every reserved character."""
    if strategy is SerializationStrategy.JSON:
        return _quote(json.dumps(to_jsonable(value), separators=(',', ':')))
    value = _plain(value)

    match strategy:
        case SerializationStrategy.SIMPLE:
            return _simple(value, False, _quote)
        case SerializationStrategy.SIMPLE_EXPLODED:
            return _simple(value, True, _quote)
        case SerializationStrategy.LABEL:
            return '.' + _simple(value, False, _quote)
        case SerializationStrategy.LABEL_EXPLODED:
            if isinstance(value, list):
                return ''.join(f'.{_quote(to_text(item))}' for item in value)
            if isinstance(value, dict):
                return ''.join(
                    f'.{_quote(str(key))}={_quote(to_text(item))}'
                    for key, item in value.items()
                    if item is not None
                )
            return '.' + _quote(to_text(value))
        case SerializationStrategy.MATRIX:
            return f';{name}=' + _simple(value, False, _quote)
        case SerializationStrategy.MATRIX_EXPLODED:
            if isinstance(value, list):
                return ''.join(f';{name}={_quote(to_text(item))}' for item in value)
            if isinstance(value, dict):
                return ''.join(
                    f';{_quote(str(key))}={_quote(to_text(item))}'
                    for key, item in value.items()
                    if item is not None
                )
            return f';{name}={_quote(to_text(value))}'
        case _:
            raise ValueError(f'{strategy} is not a path serialization strategy')


def serialize_header(strategy: SerializationStrategy, value: Any) -> str:
    if strategy is SerializationStrategy.JSON:
        return json.dumps(to_jsonable(value), separators=(',', ':'))
    value = _plain(value)
    if strategy is SerializationStrategy.SIMPLE:
        return _simple(value, False, _verbatim)
    if strategy is SerializationStrategy.SIMPLE_EXPLODED:
        return _simple(value, True, _verbatim)
    raise ValueError(f'{strategy} is not a header serialization strategy')


def serialize_cookie(strategy: SerializationStrategy, value: Any) -> str:
    if strategy is SerializationStrategy.JSON:
        return json.dumps(to_jsonable(value), separators=(',', ':'))
    value = _plain(value)
    if strategy in (SerializationStrategy.FORM, SerializationStrategy.FORM_EXPLODED):
        return _simple(value, strategy is SerializationStrategy.FORM_EXPLODED, _verbatim)
    raise ValueError(f'{strategy} is not a cookie serialization strategy')


def to_jsonable(value: Any) -> Any:
    """Dump models, enums and dates into plain JSON-compatible data."""
    return _ANY_ADAPTER.dump_python(value, mode='json', by_alias=True, exclude_none=True)
