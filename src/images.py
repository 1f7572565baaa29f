"""
Palette image encoding for the 16x16 display.

The device takes an indexed image: a palette of RGB triples in first-seen
order followed by one palette index per pixel, packed into a bit stream of
the smallest width that can address the whole palette. The top left pixel
sits in the least significant bits of the first byte, so each byte reads
"backwards" while the bytes themselves stay in order.
"""

from PIL import Image

from src.constants import DISPLAY_HEIGHT, DISPLAY_WIDTH, RESET_PALETTE, START_OF_FRAME
from src.errors import DimensionError

Color = tuple[int, int, int]

# start marker + frame size(2) + duration(2) + palette reset + colour count
FRAME_HEADER_SIZE = 7


def bits_per_pixel(palette_size: int) -> int:
    """Return ceil(log2(palette_size)); a single colour needs zero bits."""
    return max(palette_size - 1, 0).bit_length()


def _index_pixels(image: Image.Image) -> tuple[list[Color], list[int]]:
    """Collect the palette and per-pixel indices in one row-major pass."""
    if image.size != (DISPLAY_WIDTH, DISPLAY_HEIGHT):
        width, height = image.size
        raise DimensionError(
            f"image needs to be {DISPLAY_WIDTH}x{DISPLAY_HEIGHT}, got: {width}x{height}"
        )

    # Alpha is dropped, the display has no notion of transparency
    pixels = image.convert("RGB").load()
    palette: list[Color] = []
    indices: list[int] = []
    for y in range(DISPLAY_HEIGHT):
        for x in range(DISPLAY_WIDTH):
            color = tuple(pixels[x, y][:3])
            for i, known in enumerate(palette):
                if known == color:
                    indices.append(i)
                    break
            else:
                palette.append(color)
                indices.append(len(palette) - 1)
    return palette, indices


def pack_indices(indices: list[int], bpp: int) -> bytes:
    """Pack palette indices LSB-first into a bit stream of width bpp."""
    total_bytes = (bpp * len(indices) + 7) // 8
    data = bytearray(total_bytes)
    if not data:
        return b""

    offset = 0
    index = 0
    for color_index in indices:
        data[index] |= (color_index << offset) & 0xFF
        if index + 1 < len(data):
            data[index + 1] |= (color_index >> (8 - offset)) & 0xFF
        offset += bpp
        if offset > 8:
            offset -= 8
            index += 1
    return bytes(data)


def unpack_indices(data: bytes | bytearray, bpp: int, count: int) -> list[int]:
    """Read count indices of width bpp back out of a packed bit stream."""
    if bpp == 0:
        return [0] * count
    stream = int.from_bytes(data, "little")
    mask = (1 << bpp) - 1
    return [(stream >> (i * bpp)) & mask for i in range(count)]


def convert_image(image: Image.Image) -> tuple[bytes, bytes]:
    """
    Convert a 16x16 image to palette and packed index bytes.

    Args:
        image: Pillow image of exactly 16x16 pixels, any mode.

    Returns:
        (palette_bytes, index_bytes). Palette bytes are 3 per colour; index
        bytes hold ceil(bpp * 256 / 8) bytes.

    Raises:
        DimensionError: If the image is not 16x16.
    """
    palette, indices = _index_pixels(image)
    palette_bytes = bytes(component for color in palette for component in color)
    return palette_bytes, pack_indices(indices, bits_per_pixel(len(palette)))


def decode_image(palette_bytes: bytes | bytearray, index_bytes: bytes | bytearray) -> Image.Image:
    """Rebuild a 16x16 RGB image from convert_image output."""
    palette = [
        tuple(palette_bytes[i : i + 3]) for i in range(0, len(palette_bytes), 3)
    ]
    count = DISPLAY_WIDTH * DISPLAY_HEIGHT
    indices = unpack_indices(index_bytes, bits_per_pixel(len(palette)), count)

    image = Image.new("RGB", (DISPLAY_WIDTH, DISPLAY_HEIGHT))
    pixels = image.load()
    for i, color_index in enumerate(indices):
        pixels[i % DISPLAY_WIDTH, i // DISPLAY_WIDTH] = palette[color_index]
    return image


def build_frame(image: Image.Image, duration_ms: int = 0) -> bytes:
    """
    Build one frame block as used by both image and animation commands.

    Layout: [0xAA, size(2), duration(2), 0x00, colours, palette, indices],
    where size counts every byte from the 0xAA marker onward. A duration of
    0 holds the frame indefinitely.
    """
    palette_bytes, index_bytes = convert_image(image)
    frame_size = FRAME_HEADER_SIZE + len(palette_bytes) + len(index_bytes)
    duration = duration_ms & 0xFFFF

    frame = bytearray(
        [
            START_OF_FRAME,
            frame_size & 0xFF,
            (frame_size >> 8) & 0xFF,
            duration & 0xFF,
            (duration >> 8) & 0xFF,
            RESET_PALETTE,
            (len(palette_bytes) // 3) & 0xFF,  # 256 colours wraps to 0
        ]
    )
    frame.extend(palette_bytes)
    frame.extend(index_bytes)
    return bytes(frame)
