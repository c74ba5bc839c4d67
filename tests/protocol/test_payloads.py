"""Tests for payload encoding and decoding."""

import json

import pytest

from protocol import (
    ErrorPayload,
    ListItem,
    ListRequest,
    ListResponse,
    PayloadError,
    PayloadType,
    decode_payload,
    parse_payload,
    read_envelope,
)


class TestPayloadType:

    def test_receivable(self):
        assert PayloadType.LIST_REQUEST.receivable
        assert not PayloadType.LIST_RESPONSE.receivable
        assert not PayloadType.ERROR.receivable

    def test_from_wire(self):
        assert PayloadType.from_wire("LIST_REQUEST") is PayloadType.LIST_REQUEST

    @pytest.mark.parametrize("name", ["list_request", "PING", "", None, 3])
    def test_unknown_names_fail(self, name):
        with pytest.raises(PayloadError) as exc_info:
            PayloadType.from_wire(name, "s1")
        assert exc_info.value.state == "s1"


class TestReadEnvelope:

    def test_header_fields(self):
        envelope = read_envelope('{"code": 1, "message": "hi", "type": "LIST_REQUEST", "state": "abc"}')
        assert envelope.code == 1
        assert envelope.message == "hi"
        assert envelope.type_name == "LIST_REQUEST"
        assert envelope.state == "abc"

    def test_missing_message(self):
        assert read_envelope('{"code": 1, "type": "ERROR"}').message == ""

    def test_invalid_json(self):
        with pytest.raises(PayloadError, match="Malformed JSON"):
            read_envelope("{not json")

    def test_not_an_object(self):
        with pytest.raises(PayloadError, match="JSON object"):
            read_envelope("[1, 2]")

    @pytest.mark.parametrize("code", ['"1"', "true", "null", "1.5"])
    def test_code_must_be_int(self, code):
        with pytest.raises(PayloadError) as exc_info:
            read_envelope(f'{{"code": {code}, "type": "LIST_REQUEST", "state": "x"}}')
        assert exc_info.value.state == "x"

    def test_unknown_type_is_read(self):
        # The type is only resolved when the variant is decoded
        envelope = read_envelope('{"code": 0, "type": "BOGUS"}')
        assert envelope.type_name == "BOGUS"
        with pytest.raises(PayloadError, match="Unknown payload type"):
            decode_payload(envelope)


class TestVariants:

    def test_list_request(self):
        payload = parse_payload('{"code": 1, "type": "LIST_REQUEST", "state": "abc", "query": "/docs/"}')
        assert isinstance(payload, ListRequest)
        assert payload.type is PayloadType.LIST_REQUEST
        assert payload.query == "/docs/"
        assert payload.state == "abc"

    def test_list_request_without_query(self):
        assert parse_payload('{"code": 1, "type": "LIST_REQUEST"}').query == ""

    def test_list_request_bad_query(self):
        with pytest.raises(PayloadError, match="query"):
            parse_payload('{"code": 1, "type": "LIST_REQUEST", "query": 5}')

    def test_list_response_wire_format(self):
        response = ListResponse(code=1, message="Success", state="abc", items=[
            ListItem("test.txt", 123, 1, 1700000000000, "abcdefg"),
        ])
        assert json.loads(response.to_json()) == {
            'code': 1,
            'message': "Success",
            'type': "LIST_RESPONSE",
            'state': "abc",
            'items': [{
                'name': "test.txt",
                'size': 123,
                'kindCode': 1,
                'modifiedAtMillis': 1700000000000,
                'contentHash': "abcdefg",
            }],
        }

    def test_list_response_decodes(self):
        response = ListResponse(state="s", items=[ListItem("a", 1, 2, 3, "h")])
        decoded = parse_payload(response.to_json())
        assert decoded == response

    def test_list_response_bad_item(self):
        with pytest.raises(PayloadError, match="Invalid list item"):
            parse_payload('{"code": 1, "type": "LIST_RESPONSE", "items": [{"name": "a"}]}')

    def test_error_payload(self):
        error = ErrorPayload(message="boom", state="s", stack_trace="trace")
        data = json.loads(error.to_json())
        assert data == {'code': 0, 'message': "boom", 'type': "ERROR",
                        'state': "s", 'stackTrace': "trace"}
        assert parse_payload(error.to_json()) == error
