from datetime import datetime

import pytest
from PIL import Image

from src.commands import (
    display_off,
    get_settings,
    parse_color,
    set_brightness,
    set_time,
    set_volume,
    set_weather,
    show_animation,
    show_clock,
    show_cloud,
    show_image,
    show_light,
    show_scoreboard,
    show_visualisation,
    show_vj_effect,
    split_animation,
)
from src.envelope import unwrap
from src.errors import DimensionError, RangeError, UnknownTypeError
from src.images import build_frame
from tests.test_template import TestTemplate


def _payload(envelope: bytes) -> bytes:
    (payload,) = unwrap(envelope)
    return payload


def _checkerboard(a: tuple[int, int, int], b: tuple[int, int, int]) -> Image.Image:
    img = Image.new("RGB", (16, 16))
    pixels = img.load()
    for y in range(16):
        for x in range(16):
            pixels[x, y] = a if (x + y) % 2 == 0 else b
    return img


class TestSimpleCommands(TestTemplate):
    def test_volume_bounds(self):
        assert _payload(set_volume(0)) == bytes([0x08, 0])
        assert _payload(set_volume(16)) == bytes([0x08, 16])
        for bad in [-1, 17]:
            with pytest.raises(RangeError):
                set_volume(bad)

    def test_brightness_bounds(self):
        assert _payload(set_brightness(0)) == bytes([0x74, 0])
        assert _payload(set_brightness(100)) == bytes([0x74, 100])
        for bad in [-1, 101]:
            with pytest.raises(RangeError):
                set_brightness(bad)

    def test_weather(self):
        assert _payload(set_weather(21, "RAIN")) == bytes([0x5F, 21, 6])
        assert _payload(set_weather(-5, "SNOW")) == bytes([0x5F, 0xFB, 8])
        assert _payload(set_weather(99, "FOG"))[1] == 99
        assert _payload(set_weather(-99, "FOG"))[1] == 0x9D

    def test_weather_bounds_are_exclusive(self):
        for bad in [-100, 100]:
            with pytest.raises(RangeError):
                set_weather(bad, "RAIN")

    def test_weather_unknown_type(self):
        with pytest.raises(UnknownTypeError):
            set_weather(20, "rain")  # lookups are case-sensitive
        with pytest.raises(UnknownTypeError):
            set_weather(20, "HAIL")

    def test_clock(self):
        payload = _payload(show_clock("ANALOG_ROUND", True, False, True, False, (1, 2, 3)))
        assert payload == bytes([0x45, 0, 0x01, 5, 1, 0, 1, 0, 1, 2, 3])

    def test_clock_unknown_type(self):
        with pytest.raises(UnknownTypeError, match="clock"):
            show_clock("DIGITAL")

    def test_clock_rejects_bad_color(self):
        with pytest.raises(RangeError):
            show_clock("RAINBOW", color=(0, 0, 256))

    def test_light(self):
        payload = _payload(show_light("TINTED_PINK", (255, 0, 128), 42))
        assert payload == bytes([0x45, 1, 255, 0, 128, 42, 1, 1, 0, 0, 0])

    def test_light_validation(self):
        with pytest.raises(RangeError):
            show_light("PLAIN", (0, 0, 0), 101)
        with pytest.raises(UnknownTypeError):
            show_light("STROBE", (0, 0, 0), 50)

    def test_cloud(self):
        assert _payload(show_cloud()) == bytes([0x45, 2])

    def test_vj_effect_bounds(self):
        assert _payload(show_vj_effect(0)) == bytes([0x45, 3, 0])
        assert _payload(show_vj_effect(15)) == bytes([0x45, 3, 15])
        for bad in [-1, 16]:
            with pytest.raises(RangeError):
                show_vj_effect(bad)

    def test_visualisation_bounds(self):
        assert _payload(show_visualisation(0)) == bytes([0x45, 4, 0])
        assert _payload(show_visualisation(11)) == bytes([0x45, 4, 11])
        for bad in [-1, 12]:
            with pytest.raises(RangeError):
                show_visualisation(bad)

    def test_scoreboard(self):
        assert _payload(show_scoreboard(0, 999)) == bytes([0x45, 6, 0, 0, 0, 0xE7, 0x03])
        for red, blue in [(-1, 0), (0, -1), (1000, 0), (0, 1000)]:
            with pytest.raises(RangeError):
                show_scoreboard(red, blue)

    def test_set_time(self):
        moment = datetime(2024, 3, 9, 17, 45, 30)
        assert _payload(set_time(moment)) == bytes([0x18, 24, 20, 3, 9, 17, 45, 30, 0])

    def test_set_time_defaults_to_now(self):
        payload = _payload(set_time())
        assert payload[0] == 0x18
        assert len(payload) == 9

    def test_display_off(self):
        assert _payload(display_off()) == bytes([0x45, 1, 0, 0, 0, 0, 0, 0, 0, 0, 0])

    def test_get_settings(self):
        assert _payload(get_settings()) == bytes([0x46])

    def test_parse_color(self):
        assert parse_color("#ff0000") == (255, 0, 0)
        assert parse_color("00ff00") == (0, 255, 0)
        assert parse_color("#0f0") == (0, 255, 0)
        assert parse_color("0x00ff00") == (0, 255, 0)
        with pytest.raises(ValueError):
            parse_color("#gg0000")


class TestImageCommands(TestTemplate):
    def test_show_image_layout(self):
        img = _checkerboard((255, 0, 0), (0, 0, 255))
        payload = _payload(show_image(img))
        assert payload[:5] == bytes([0x44, 0x00, 0x0A, 0x0A, 0x04])
        assert payload[5:] == build_frame(img, 0)
        # frame size counts from the 0xAA marker
        assert int.from_bytes(payload[6:8], "little") == len(payload) - 5
        assert payload[8:10] == bytes([0, 0])
        assert payload[12:18] == bytes([255, 0, 0, 0, 0, 255])
        assert payload[18] == 0b10101010

    def test_show_image_wrong_size(self):
        with pytest.raises(DimensionError):
            show_image(Image.new("RGB", (8, 8)))


class TestAnimation(TestTemplate):
    @pytest.mark.parametrize("length", [1, 199, 200, 201, 399, 400, 401, 1000, 1031])
    def test_split_animation_windows(self, length):
        buffer = bytes(i % 251 for i in range(length))
        windows = split_animation(buffer)
        expected_count = -(-max(length - 200, 0) // 200) + 1
        assert len(windows) == expected_count
        for k, window in enumerate(windows):
            assert window == buffer[k * 200 : min(k * 200 + 400, length)]

    def test_split_animation_empty(self):
        assert split_animation(b"") == []

    def test_packets_share_total_size_and_count_up(self):
        frames = [_checkerboard((i, 0, 0), (0, i, 0)) for i in range(1, 6)]
        durations = [100, 200, 300, 400, 70000]
        packets = show_animation(frames, durations)

        frame_data = b"".join(build_frame(f, d) for f, d in zip(frames, durations))
        windows = split_animation(frame_data)
        assert len(packets) == len(windows)
        for number, (packet, window) in enumerate(zip(packets, windows)):
            payload = _payload(packet)
            assert payload[0] == 0x49
            assert int.from_bytes(payload[1:3], "little") == len(frame_data)
            assert payload[3] == number
            assert payload[4:] == window

    def test_packets_overlap(self):
        frames = [_checkerboard((i, i, i), (0, 0, 0)) for i in range(1, 11)]
        packets = [_payload(p) for p in show_animation(frames, [50] * 10)]
        # Second half of packet k is repeated as the first half of packet k+1
        assert packets[0][4 + 200 : 4 + 400] == packets[1][4 : 4 + 200]

    def test_duration_mismatch(self):
        with pytest.raises(RangeError):
            show_animation([_checkerboard((1, 1, 1), (0, 0, 0))], [])

    def test_bad_frame_fails_whole_animation(self):
        frames = [_checkerboard((1, 1, 1), (0, 0, 0)), Image.new("RGB", (16, 15))]
        with pytest.raises(DimensionError):
            show_animation(frames, [100, 100])

    def test_no_frames(self):
        assert show_animation([], []) == []
