"""Exception types raised by pixelbox."""


class PixelboxError(Exception):
    """Base class for all pixelbox errors."""


class FrameError(PixelboxError, ValueError):
    """Envelope framing or checksum did not validate."""


class DimensionError(PixelboxError, ValueError):
    """Image is not the 16x16 raster the device expects."""


class RangeError(PixelboxError, ValueError):
    """Command argument outside the range the device accepts."""


class UnknownTypeError(PixelboxError, ValueError):
    """Enumerated command argument not present in the lookup table."""


class MalformedMessageError(PixelboxError, ValueError):
    """Incoming payload does not carry the 0x04 / 0x55 sub-header."""


class DeviceConnectionError(PixelboxError, ConnectionError):
    """Socket level failure; the session is unusable afterwards."""


class ConfigError(PixelboxError):
    """Device configuration file is missing or invalid."""
