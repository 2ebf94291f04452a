"""
Unit tests for JSON message encoding and the decode fallback chain
"""

import json

import pytest

from pyddp.errors import SerializationError
from pyddp.message import (
    Color,
    Config,
    ConfigRoot,
    Control,
    ControlRoot,
    ParsedMessage,
    Port,
    Status,
    StatusRoot,
    UnparsedMessage,
    decode_message,
    encode_message,
    message_id,
)
from pyddp.protocol import ID, CustomID

CONFIG_JSON = b"""{
    "config":
    {
        "gw": "a.b.c.d",
        "ip": "a.b.c.d",
        "nm": "a.b.c.d",
        "ports":
        [
            {"l": 3, "port": 1, "ss": 4, "ts": 2},
            {"l": 7, "port": 5, "ss": 8, "ts": 6}
        ]
    }
}"""


class TestMessageId:
    """Tests for deriving the header id from a message"""

    def test_typed_messages(self):
        assert message_id(ControlRoot(control=Control())) == ID.CONTROL
        assert message_id(ConfigRoot(config=Config(ports=[]))) == ID.CONFIG
        assert message_id(StatusRoot(status=Status())) == ID.STATUS

    def test_tagged_messages(self):
        assert message_id(ParsedMessage(ID.CONFIG, None)) == ID.CONFIG
        assert message_id(UnparsedMessage(CustomID(7), "hi")) == CustomID(7)

    def test_not_a_message(self):
        with pytest.raises(TypeError):
            message_id({"control": {}})


class TestEncodeMessage:
    """Tests for outbound serialization"""

    def test_untyped_null(self):
        assert encode_message(ParsedMessage(ID.CONFIG, None)) == b"null"

    def test_control_uses_wire_names_and_omits_unset(self):
        message = ControlRoot(
            control=Control(fx="rainbow", intensity=128, colors=[Color(r=255, g=0, b=0)])
        )
        assert json.loads(encode_message(message)) == {
            "control": {"fx": "rainbow", "int": 128, "colors": [{"r": 255, "g": 0, "b": 0}]}
        }

    def test_status_model_alias(self):
        message = StatusRoot(status=Status(model="X1"))
        assert json.loads(encode_message(message)) == {"status": {"mod": "X1"}}

    def test_unparsed_is_raw_text(self):
        assert encode_message(UnparsedMessage(ID.CONTROL, "héllo")) == "héllo".encode("utf-8")

    def test_unserializable_value_raises(self):
        with pytest.raises(SerializationError):
            encode_message(ParsedMessage(ID.CONTROL, {1, 2, 3}))

    def test_nan_raises(self):
        with pytest.raises(SerializationError):
            encode_message(ParsedMessage(ID.CONTROL, float("nan")))


class TestDecodeMessage:
    """Tests for the inbound decode fallback chain"""

    def test_typed_config(self):
        message = decode_message(ID.CONFIG, CONFIG_JSON)
        assert isinstance(message, ConfigRoot)
        assert message.config.gw == "a.b.c.d"
        assert message.config.nm == "a.b.c.d"
        assert message.config.ports == [
            Port(port=1, ts=2, l=3, ss=4),
            Port(port=5, ts=6, l=7, ss=8),
        ]

    def test_typed_status(self):
        body = b'{"status": {"man": "3waylabs", "mod": "X1", "ver": "1.0", "push": true}}'
        message = decode_message(ID.STATUS, body)
        assert isinstance(message, StatusRoot)
        assert message.status.model == "X1"
        assert message.status.push is True

    def test_typed_control(self):
        message = decode_message(ID.CONTROL, b'{"control": {"fx": "fire", "int": 50}}')
        assert isinstance(message, ControlRoot)
        assert message.control.intensity == 50

    def test_untyped_json(self):
        message = decode_message(ID.CONFIG, b'{"hello": "ok"}')
        assert message == ParsedMessage(ID.CONFIG, {"hello": "ok"})

    def test_schema_belongs_to_id(self):
        # a valid config body sent on the status id is not a config
        message = decode_message(ID.STATUS, CONFIG_JSON)
        assert isinstance(message, ParsedMessage)
        assert message.id == ID.STATUS

    @pytest.mark.parametrize(
        "body",
        [
            b'{"config": {"ports": [{"port": "1", "ts": 0, "l": 2, "ss": 1}]}}',
            b'{"config": {"ports": [{"port": 1, "ts": -5, "l": 2, "ss": 1}]}}',
            b'{"config": {"ports": [{"port": 1, "ts": 0, "l": 2.0, "ss": "1"}]}}',
            b'{"config": {"ports": [{"port": 4294967296, "ts": 0, "l": 2, "ss": 1}]}}',
        ],
    )
    def test_config_needing_coercion_is_untyped(self, body):
        message = decode_message(ID.CONFIG, body)
        assert isinstance(message, ParsedMessage)
        assert message.value == json.loads(body)

    def test_status_bool_not_coerced(self):
        message = decode_message(ID.STATUS, b'{"status": {"push": "yes"}}')
        assert message == ParsedMessage(ID.STATUS, {"status": {"push": "yes"}})

    def test_control_negative_intensity_is_untyped(self):
        message = decode_message(ID.CONTROL, b'{"control": {"int": -1}}')
        assert isinstance(message, ParsedMessage)

    def test_u32_upper_bound_is_typed(self):
        message = decode_message(ID.CONTROL, b'{"control": {"spd": 4294967295}}')
        assert isinstance(message, ControlRoot)
        assert message.control.spd == 0xFFFFFFFF

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_non_json_constants_are_text(self, constant):
        body = f'{{"v": {constant}}}'
        message = decode_message(ID.CONFIG, body.encode())
        assert message == UnparsedMessage(ID.CONFIG, body)

    def test_plain_text(self):
        message = decode_message(ID.CONFIG, b"SLICKDENIS4000")
        assert message == UnparsedMessage(ID.CONFIG, "SLICKDENIS4000")

    def test_binary_gives_none(self):
        assert decode_message(ID.CONFIG, b"\xff\xfe\x00\x80") is None

    def test_non_json_ids_give_none(self):
        assert decode_message(ID.DEFAULT, b'{"hello": "ok"}') is None
        assert decode_message(CustomID(5), b"text") is None
