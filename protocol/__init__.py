"""Local socket protocol: payload model, handlers and server."""

from .payloads import (
    PayloadError,
    PayloadType,
    BasicPayload,
    ListRequest,
    ListResponse,
    ListItem,
    ErrorPayload,
    read_envelope,
    decode_payload,
    parse_payload,
)
from .handlers import Success, Failure, ListHandler, default_handlers
from .server import Connection, PayloadServer


__all__ = [
    'PayloadError',
    'PayloadType',
    'BasicPayload',
    'ListRequest',
    'ListResponse',
    'ListItem',
    'ErrorPayload',
    'read_envelope',
    'decode_payload',
    'parse_payload',
    'Success',
    'Failure',
    'ListHandler',
    'default_handlers',
    'Connection',
    'PayloadServer',
]
