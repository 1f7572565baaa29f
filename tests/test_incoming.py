import pytest

from src.envelope import wrap
from src.errors import FrameError, MalformedMessageError
from src.incoming import Message, decode_message, parse_incoming
from tests.test_template import TestTemplate


def _settings_data(length: int, brightness: int = 70, channel: int = 1) -> bytes:
    data = bytearray(length)
    data[6] = brightness
    if length > 20:
        data[20] = channel
    return bytes(data)


class TestDecodeMessage(TestTemplate):
    def test_brightness(self):
        message = decode_message(bytes([0x04, 0x32, 0x55, 0x55]))
        assert message.command == 0x32
        assert message.data == bytes([0x55])
        assert message.brightness == 85
        assert "85" in str(message)

    def test_channel(self):
        message = decode_message(bytes([0x04, 0x45, 0x55, 0x03]))
        assert message.channel == 3
        assert message.channel_name == "VJ"
        assert str(message) == "Set channel to 3"

    def test_volume(self):
        message = decode_message(bytes([0x04, 0x09, 0x55, 0x0C]))
        assert message.volume == 12
        assert str(message) == "Volume was set to 12/16"

    def test_acknowledge(self):
        message = decode_message(bytes([0x04, 0x31, 0x55, 0x40]))
        assert message.brightness == 0x40
        assert "brightness 64" in str(message)

    @pytest.mark.parametrize(
        "command, text",
        [(0x18, "Time was set"), (0x44, "Image was shown"), (0x49, "Animation was shown")],
    )
    def test_fixed_descriptions(self, command, text):
        assert str(decode_message(bytes([0x04, command, 0x55]))) == text

    def test_settings_with_channel(self):
        message = decode_message(bytes([0x04, 0x46, 0x55]) + _settings_data(24, 70, 4))
        assert message.brightness == 70
        assert message.channel == 4
        assert message.channel_name == "VISUALISATION"
        assert "channel 4" in str(message)

    def test_settings_without_channel(self):
        message = decode_message(bytes([0x04, 0x46, 0x55]) + _settings_data(20, 33))
        assert message.brightness == 33
        assert message.channel is None
        assert "brightness 33" in str(message)

    def test_short_settings_has_no_fields(self):
        message = decode_message(bytes([0x04, 0x46, 0x55]) + _settings_data(10))
        assert message.brightness is None
        assert message.channel is None
        assert message.description == ""

    def test_unknown_channel_name(self):
        message = Message(command=0x45, data=b"\x09", channel=9)
        assert message.channel_name == "UNKNOWN"

    @pytest.mark.parametrize(
        "data, text",
        [
            (bytes([19, 1, 50, 0]), "Play button was pressed"),
            (bytes([23, 0]), "Light button was double-clicked"),
            (bytes([19, 1, 30, 0]), "Clock button was double-clicked"),
        ],
    )
    def test_button_press(self, data, text):
        assert str(decode_message(bytes([0x04, 0xBD, 0x55]) + data)) == text

    def test_unrecognised_button_pattern(self):
        message = decode_message(bytes([0x04, 0xBD, 0x55, 0x01]))
        assert message.description == ""
        assert "command ID 189" in str(message)

    def test_alarm_config(self):
        assert str(decode_message(bytes([0x04, 0x13, 0x55, 10]))) == "Entered alarm config"
        assert str(decode_message(bytes([0x04, 0x13, 0x55, 0]))) == "Exit alarm config"

    def test_unknown_command_still_decodes(self):
        message = decode_message(bytes([0x04, 0x77, 0x55, 0xDE, 0xAD]))
        assert message.command == 0x77
        assert message.data == b"\xde\xad"
        assert str(message) == "Unknown message with command ID 119 and data dead"

    @pytest.mark.parametrize(
        "payload",
        [b"", b"\x04", b"\x04\x32", b"\x05\x32\x55", b"\x04\x32\x56\x10"],
    )
    def test_malformed(self, payload):
        with pytest.raises(MalformedMessageError, match="don't understand"):
            decode_message(payload)


class TestParseIncoming(TestTemplate):
    def test_multiple_messages(self):
        buffer = wrap(b"\x04\x32\x55\x10") + wrap(b"\x04\x09\x55\x08")
        messages = parse_incoming(buffer)
        assert [m.command for m in messages] == [0x32, 0x09]
        assert messages[0].brightness == 0x10
        assert messages[1].volume == 8

    def test_empty_buffer(self):
        assert parse_incoming(b"") == []

    def test_frame_error_propagates(self):
        envelope = bytearray(wrap(b"\x04\x32\x55\x10"))
        envelope[-2] ^= 0xFF
        with pytest.raises(FrameError):
            parse_incoming(envelope)

    def test_one_malformed_message_fails_batch(self):
        buffer = wrap(b"\x04\x32\x55\x10") + wrap(b"\x99\x99\x99")
        with pytest.raises(MalformedMessageError):
            parse_incoming(buffer)

    def test_skip_malformed(self):
        buffer = wrap(b"\x99\x99\x99") + wrap(b"\x04\x32\x55\x10")
        messages = parse_incoming(buffer, skip_malformed=True)
        assert [m.brightness for m in messages] == [0x10]
        assert any("Skipping message" in m for m in self.log_messages)

    def test_skip_malformed_does_not_hide_frame_errors(self):
        envelope = bytearray(wrap(b"\x04\x32\x55\x10"))
        envelope[0] = 0x00
        with pytest.raises(FrameError):
            parse_incoming(envelope, skip_malformed=True)
