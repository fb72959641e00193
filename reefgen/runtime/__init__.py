"""Runtime support imported by generated clients.

Generated modules depend on this package only: an ``ApiClient`` to dispatch
requests, parameter serializers keyed by ``SerializationStrategy``, and body
encoding and union decoding helpers.
"""

from reefgen.runtime.client import ApiClient
from reefgen.runtime.encoding import (
    BodyEncoding,
    NoMatchingAlternative,
    UnrecognizedStatus,
    decode_first_match,
    decode_json,
    decode_tagged,
    encode_body,
)
from reefgen.runtime.params import (
    SerializationStrategy,
    serialize_cookie,
    serialize_header,
    serialize_path,
    serialize_query,
    to_jsonable,
    to_text,
)

__all__ = [
    # Client
    'ApiClient',
    # Parameters
    'SerializationStrategy',
    'serialize_query',
    'serialize_path',
    'serialize_header',
    'serialize_cookie',
    'to_text',
    'to_jsonable',
    # Bodies and responses
    'BodyEncoding',
    'encode_body',
    'decode_json',
    'decode_first_match',
    'decode_tagged',
    'NoMatchingAlternative',
    'UnrecognizedStatus',
]
