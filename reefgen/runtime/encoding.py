"""Request body encoding and response decoding for generated clients."""

from enum import StrEnum
from functools import lru_cache
from typing import Any

import httpx
from pydantic import BaseModel, RootModel, TypeAdapter, ValidationError

from reefgen.runtime.params import to_jsonable, to_text

__all__ = [
    'BodyEncoding',
    'NoMatchingAlternative',
    'UnrecognizedStatus',
    'to_jsonable',
    'encode_body',
    'decode_json',
    'decode_first_match',
    'decode_tagged',
]


class BodyEncoding(StrEnum):
    JSON = 'json'
    FORM = 'form'
    MULTIPART = 'multipart'
    BINARY = 'binary'
    TEXT = 'text'


class NoMatchingAlternative(ValueError):
    """No alternative of a union accepted the value."""

    def __init__(self, message: str, value: Any = None):
        self.value = value
        super().__init__(message)


class UnrecognizedStatus:
    """Returned when a response status matches none of the declared responses.

    Attributes:
        status_code: The HTTP status code of the response.
        response: The raw ``httpx.Response``.
    """

    def __init__(self, response: httpx.Response):
        self.response = response
        self.status_code = response.status_code

    @property
    def content(self) -> bytes:
        return self.response.content

    def __repr__(self) -> str:
        return f'UnrecognizedStatus(status_code={self.status_code})'


def _form_fields(value: Any) -> dict[str, Any]:
    data = to_jsonable(value)
    if not isinstance(data, dict):
        raise TypeError('Form bodies must serialize to a mapping')
    fields: dict[str, Any] = {}
    for key, item in data.items():
        if isinstance(item, list):
            fields[key] = [to_text(element) for element in item]
        else:
            fields[key] = to_text(item)
    return fields


def encode_body(encoding: BodyEncoding, value: Any) -> dict[str, Any]:
    """Return the ``httpx`` request keyword arguments carrying ``value``."""
    if value is None:
        return {}

    match encoding:
        case BodyEncoding.JSON:
            return {'json': to_jsonable(value)}
        case BodyEncoding.FORM:
            return {'data': _form_fields(value)}
        case BodyEncoding.MULTIPART:
            source = value.__dict__ if isinstance(value, BaseModel) else value
            if not isinstance(source, dict):
                raise TypeError('Multipart bodies must be a model or a mapping')
            aliases = {}
            if isinstance(value, BaseModel):
                aliases = {
                    name: info.alias or name
                    for name, info in type(value).model_fields.items()
                }
            data: dict[str, Any] = {}
            files: dict[str, Any] = {}
            for key, item in source.items():
                if item is None:
                    continue
                wire_name = aliases.get(key, key)
                if isinstance(item, bytes | bytearray):
                    files[wire_name] = (wire_name, bytes(item))
                else:
                    jsonable = to_jsonable(item)
                    data[wire_name] = (
                        [to_text(element) for element in jsonable]
                        if isinstance(jsonable, list)
                        else to_text(jsonable)
                    )
            return {'data': data, 'files': files}
        case BodyEncoding.BINARY:
            return {'content': value}
        case BodyEncoding.TEXT:
            return {'content': value.encode() if isinstance(value, str) else value}
        case _:
            raise ValueError(f'Unknown body encoding {encoding!r}')


@lru_cache(maxsize=512)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def decode_json(type_: Any, response: httpx.Response) -> Any:
    """Validate a JSON response body against ``type_``."""
    return _adapter(type_).validate_python(response.json())


def _structurally_matches(alternative: Any, value: Any) -> bool:
    if not (isinstance(alternative, type) and issubclass(alternative, BaseModel)):
        return True
    if issubclass(alternative, RootModel):
        return True
    if isinstance(value, BaseModel):
        return isinstance(value, alternative)
    if not isinstance(value, dict):
        return False

    known: set[str] = set()
    required: set[str] = set()
    for name, info in alternative.model_fields.items():
        wire_name = info.alias or name
        known.update((name, wire_name))
        if info.is_required():
            required.add(wire_name)

    if alternative.model_config.get('extra') != 'allow' and not set(value) <= known:
        return False
    return required <= set(value)


def decode_first_match(alternatives: tuple[Any, ...], value: Any) -> Any:
    """Decode ``value`` as the first alternative that structurally accepts it.

    Alternatives are tried in declared order. An object alternative is only
    tried when the value carries all of its required keys and no key it
    does not declare (unless the model allows extra keys).

    Raises:
        NoMatchingAlternative: If no alternative accepts the value.
    """
    failures = []
    for alternative in alternatives:
        if not _structurally_matches(alternative, value):
            continue
        try:
            return _adapter(alternative).validate_python(value)
        except ValidationError as e:
            failures.append(f'{getattr(alternative, "__name__", alternative)}: {e.error_count()} error(s)')
    detail = '; '.join(failures) if failures else 'no structural match'
    raise NoMatchingAlternative(f'Value matches none of the union alternatives ({detail})', value)


def decode_tagged(property_name: str, mapping: dict[str, Any], value: Any) -> Any:
    """Decode ``value`` as the alternative selected by its discriminator property.

    Raises:
        NoMatchingAlternative: If the tag is missing or unknown.
    """
    if isinstance(value, BaseModel) and type(value) in mapping.values():
        return value
    if not isinstance(value, dict) or property_name not in value:
        raise NoMatchingAlternative(f'Discriminator {property_name!r} is missing', value)
    tag = value[property_name]
    target = mapping.get(str(tag))
    if target is None:
        raise NoMatchingAlternative(
            f'Unknown {property_name!r} value {tag!r}; expected one of {sorted(mapping)}', value
        )
    return _adapter(target).validate_python(value)
