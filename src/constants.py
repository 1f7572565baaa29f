"""
Divoom Timebox Evo serial protocol constants.

All values were reverse engineered from traffic between the official app and
the device, so names describe observed behaviour rather than documented intent.
"""

# Default RFCOMM channel the Timebox Evo exposes its serial port on
DEFAULT_RFCOMM_CHANNEL = 1

# Display is a fixed 16x16 matrix
DISPLAY_WIDTH = 16
DISPLAY_HEIGHT = 16

# Envelope framing
ENVELOPE_PREFIX = 0x01
ENVELOPE_POSTFIX = 0x02
ENVELOPE_OVERHEAD = 6  # prefix + length(2) + checksum(2) + postfix

# Largest length field accepted when reassembling received bytes
MAX_INCOMING_LENGTH = 512

# Incoming messages carry their own sub-header inside the envelope
INCOMING_HEADER_1 = 0x04
INCOMING_HEADER_2 = 0x55

# Incoming command ids
IN_VOLUME_SET = 0x09
IN_ALARM_CONFIG = 0x13
IN_TIME_SET = 0x18
IN_ACKNOWLEDGE = 0x31
IN_BRIGHTNESS_SET = 0x32
IN_IMAGE_SET = 0x44
IN_CHANNEL_SET = 0x45
IN_SETTINGS_SET = 0x46
IN_ANIMATION_SET = 0x49
IN_BUTTON_PRESS = 0xBD

# Outgoing opcodes
CMD_SET_VOLUME = 0x08
CMD_SET_TIME = 0x18
CMD_SET_IMAGE = 0x44
CMD_SET_CHANNEL = 0x45
CMD_GET_SETTINGS = 0x46
CMD_SET_ANIMATION = 0x49
CMD_SET_WEATHER = 0x5F
CMD_SET_BRIGHTNESS = 0x74

# Frame markers used by image and animation data
START_OF_FRAME = 0xAA
RESET_PALETTE = 0x00

# Fixed bytes between the image opcode and the first frame, meaning unknown
IMAGE_PREAMBLE = bytes([0x00, 0x0A, 0x0A, 0x04])

# Animation data is streamed in overlapping windows (see split_animation)
ANIMATION_PACKET_STRIDE = 200
ANIMATION_PACKET_WINDOW = 400

# Argument ranges accepted by the device
MAX_VOLUME = 16
MAX_BRIGHTNESS = 100
MAX_TEMPERATURE = 100  # exclusive, in both directions
MAX_VJ_EFFECT = 15
MAX_VISUALISATION = 11
MAX_SCORE = 999

CHANNELS: dict[str, int] = {
    "CLOCK": 0,
    "LIGHT": 1,
    "CLOUD": 2,
    "VJ": 3,
    "VISUALISATION": 4,
    "ANIMATION": 5,
    "SCOREBOARD": 6,
}

CHANNEL_NAMES: dict[int, str] = {v: k for k, v in CHANNELS.items()}

CLOCK_TYPES: dict[str, int] = {
    "FULL_SCREEN": 0,
    "RAINBOW": 1,
    "BOXED": 2,
    "ANALOG_SQUARE": 3,
    "FULL_SCREEN_INVERTED": 4,
    "ANALOG_ROUND": 5,
}

LIGHT_TYPES: dict[str, int] = {
    "PLAIN": 0,
    "TINTED_PINK": 1,
    "RED_BLUE_STRIPED": 2,
}

# Codes 2 and 7 never showed up in captures
WEATHER_TYPES: dict[str, int] = {
    "OUTDOOR_VERY_LIGHT_CLOUDS": 1,
    "CITY_CLOUDY": 3,
    "CITY_LIGHT_CLOUDS": 4,
    "THUNDERSTORM": 5,
    "RAIN": 6,
    "SNOW": 8,
    "FOG": 9,
}

# Button press payloads reported by the device
BUTTON_PATTERNS: dict[bytes, str] = {
    bytes([19, 1, 50, 0]): "Play button was pressed",
    bytes([23, 0]): "Light button was double-clicked",
    bytes([19, 1, 30, 0]): "Clock button was double-clicked",
}

ALARM_CONFIG_STATES: dict[int, str] = {
    0: "Exit alarm config",
    10: "Entered alarm config",
}
