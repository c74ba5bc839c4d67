"""Wire payloads exchanged with socket clients.

Every payload is one JSON object on one line. The envelope fields are
``code``, ``message``, ``type`` and ``state``; each payload type adds its
own fields. A code below 1 marks a failed or invalid message.

Decoding happens in two steps on a single json.loads result: the envelope
header is read first (read_envelope), then the variant selected by ``type``
is built from the same fields (decode_payload).
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type


class PayloadError(Exception):
    """Raised when a line can't be decoded into a payload.

    Attributes:
        state: Correlation token of the offending message, if it was readable
    """

    def __init__(self, message: str, state: Optional[str] = None) -> None:
        super().__init__(message)
        self.state = state


class PayloadType(Enum):
    """Payload discriminator. The value is the name used on the wire."""
    LIST_REQUEST = "LIST_REQUEST"
    LIST_RESPONSE = "LIST_RESPONSE"
    ERROR = "ERROR"

    @property
    def receivable(self) -> bool:
        """Whether a client may send this type to the server."""
        return self in RECEIVABLE_TYPES

    @classmethod
    def from_wire(cls, name: Any, state: Optional[str] = None) -> "PayloadType":
        """Look up a type by its wire name; unknown names are an error."""
        if isinstance(name, str):
            try:
                return cls(name)
            except ValueError:
                pass
        raise PayloadError(f"Unknown payload type: {name!r}", state)


RECEIVABLE_TYPES = frozenset({PayloadType.LIST_REQUEST})


@dataclass
class Envelope:
    """Envelope header of a received line, before the variant is decoded."""
    code: int
    message: str
    type_name: Any
    state: Optional[str]
    fields: Dict[str, Any]


def read_envelope(line: str) -> Envelope:
    """Parse a line and read its envelope header.

    Raises:
        PayloadError: If the line is not a JSON object or ``code`` is missing
            or not an integer
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise PayloadError(f"Malformed JSON payload: {e.msg} at column {e.colno}") from e

    if not isinstance(data, dict):
        raise PayloadError(f"Payload must be a JSON object, got {type(data).__name__}")

    state = data.get('state')
    code = data.get('code')
    # bool is an int subclass but never a valid code
    if not isinstance(code, int) or isinstance(code, bool):
        raise PayloadError(f"Payload code must be an integer, got {code!r}", state)

    message = data.get('message')
    return Envelope(
        code=code,
        message=message if isinstance(message, str) else "",
        type_name=data.get('type'),
        state=state,
        fields=data,
    )


@dataclass
class BasicPayload:
    """Fields shared by every payload."""
    code: int = 1
    message: str = ""
    state: Optional[str] = None

    TYPE: ClassVar[PayloadType]

    @property
    def type(self) -> PayloadType:
        return self.TYPE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'type': self.TYPE.value,
            'state': self.state,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_envelope(cls, envelope: Envelope) -> "BasicPayload":
        return cls(code=envelope.code, message=envelope.message, state=envelope.state,
                   **cls._variant_fields(envelope))

    @classmethod
    def _variant_fields(cls, envelope: Envelope) -> Dict[str, Any]:
        """Decode the fields this variant adds to the envelope."""
        return {}


def _get_str(envelope: Envelope, key: str, default: str = "") -> str:
    value = envelope.fields.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise PayloadError(f"Field {key!r} must be a string, got {value!r}", envelope.state)
    return value


@dataclass
class ListRequest(BasicPayload):
    """Client request to list uploads. ``query`` is a virtual path."""
    query: str = ""

    TYPE: ClassVar[PayloadType] = PayloadType.LIST_REQUEST

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['query'] = self.query
        return data

    @classmethod
    def _variant_fields(cls, envelope: Envelope) -> Dict[str, Any]:
        return {'query': _get_str(envelope, 'query')}


@dataclass
class ListItem:
    """Summary of one listed upload."""
    name: str
    size: int
    kind_code: int
    modified_at_millis: int
    content_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'size': self.size,
            'kindCode': self.kind_code,
            'modifiedAtMillis': self.modified_at_millis,
            'contentHash': self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListItem":
        return cls(
            name=data['name'],
            size=int(data['size']),
            kind_code=int(data['kindCode']),
            modified_at_millis=int(data['modifiedAtMillis']),
            content_hash=data['contentHash'],
        )


@dataclass
class ListResponse(BasicPayload):
    """Listing result, in catalog order."""
    items: List[ListItem] = field(default_factory=list)

    TYPE: ClassVar[PayloadType] = PayloadType.LIST_RESPONSE

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['items'] = [item.to_dict() for item in self.items]
        return data

    @classmethod
    def _variant_fields(cls, envelope: Envelope) -> Dict[str, Any]:
        raw = envelope.fields.get('items') or []
        try:
            return {'items': [ListItem.from_dict(item) for item in raw]}
        except (KeyError, TypeError, ValueError) as e:
            raise PayloadError(f"Invalid list item: {e}", envelope.state) from e


@dataclass
class ErrorPayload(BasicPayload):
    """Failure report sent back to the client."""
    code: int = 0
    stack_trace: str = ""

    TYPE: ClassVar[PayloadType] = PayloadType.ERROR

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['stackTrace'] = self.stack_trace
        return data

    @classmethod
    def _variant_fields(cls, envelope: Envelope) -> Dict[str, Any]:
        return {'stack_trace': _get_str(envelope, 'stackTrace')}


PAYLOAD_CLASSES: Dict[PayloadType, Type[BasicPayload]] = {
    PayloadType.LIST_REQUEST: ListRequest,
    PayloadType.LIST_RESPONSE: ListResponse,
    PayloadType.ERROR: ErrorPayload,
}


def decode_payload(envelope: Envelope) -> BasicPayload:
    """Build the payload variant named by the envelope's ``type``.

    Raises:
        PayloadError: If the type is unknown or a variant field is invalid
    """
    payload_type = PayloadType.from_wire(envelope.type_name, envelope.state)
    return PAYLOAD_CLASSES[payload_type].from_envelope(envelope)


def parse_payload(line: str) -> BasicPayload:
    """Decode a full line into its payload variant."""
    return decode_payload(read_envelope(line))
