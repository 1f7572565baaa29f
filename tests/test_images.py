import pytest
from PIL import Image

from src.errors import DimensionError
from src.images import (
    bits_per_pixel,
    build_frame,
    convert_image,
    decode_image,
    pack_indices,
    unpack_indices,
)
from tests.test_template import TestTemplate


def _image_with_colors(count: int) -> Image.Image:
    """16x16 image cycling through count distinct colours row-major."""
    img = Image.new("RGB", (16, 16))
    pixels = img.load()
    for i in range(256):
        c = i % count
        pixels[i % 16, i // 16] = (c, 255 - c, (c * 7) % 256)
    return img


class TestImages(TestTemplate):
    def test_bits_per_pixel(self):
        assert bits_per_pixel(1) == 0
        assert bits_per_pixel(2) == 1
        assert bits_per_pixel(3) == 2
        assert bits_per_pixel(4) == 2
        assert bits_per_pixel(5) == 3
        assert bits_per_pixel(16) == 4
        assert bits_per_pixel(17) == 5
        assert bits_per_pixel(256) == 8

    def test_rejects_wrong_size(self):
        for size in [(15, 16), (16, 17), (32, 32)]:
            with pytest.raises(DimensionError, match="16x16"):
                convert_image(Image.new("RGB", size))

    def test_palette_first_occurrence_order(self):
        img = Image.new("RGB", (16, 16), (0, 0, 255))
        img.putpixel((0, 0), (255, 0, 0))
        img.putpixel((5, 0), (0, 255, 0))
        img.putpixel((0, 1), (255, 0, 0))
        palette, _ = convert_image(img)
        assert palette == bytes([255, 0, 0, 0, 0, 255, 0, 255, 0])

    def test_lsb_first_packing(self):
        """Top left pixel sits in the low bits of the first byte."""
        img = Image.new("RGB", (16, 16), (0, 0, 0))
        img.putpixel((1, 0), (255, 255, 255))
        palette, indices = convert_image(img)
        assert palette == bytes([0, 0, 0, 255, 255, 255])
        assert len(indices) == 32
        assert indices[0] == 0b00000010
        assert indices[1:] == bytes(31)

    def test_packing_across_byte_boundary(self):
        # 3 bits per index: index at pixel 2 spans bits 6..8
        data = pack_indices([1, 2, 5, 7, 0, 0, 0, 0], 3)
        assert data == bytes([0b01010001, 0b00001111, 0b00000000])

    def test_alpha_is_ignored(self):
        img = Image.new("RGBA", (16, 16), (10, 20, 30, 0))
        img.putpixel((3, 3), (10, 20, 30, 255))
        palette, indices = convert_image(img)
        assert palette == bytes([10, 20, 30])

    def test_single_color_has_empty_index_stream(self):
        palette, indices = convert_image(Image.new("RGB", (16, 16), (1, 2, 3)))
        assert palette == bytes([1, 2, 3])
        assert indices == b""

    @pytest.mark.parametrize("count", [2, 3, 4, 5, 7, 16, 33, 100, 256])
    def test_palette_index_reconstructs_image(self, count):
        img = _image_with_colors(count)
        palette, indices = convert_image(img)
        bpp = bits_per_pixel(count)
        assert len(palette) == count * 3
        assert len(indices) == (bpp * 256 + 7) // 8
        assert decode_image(palette, indices).tobytes() == img.tobytes()

    def test_unpack_zero_width(self):
        assert unpack_indices(b"", 0, 4) == [0, 0, 0, 0]

    def test_build_frame_header(self):
        img = _image_with_colors(2)
        frame = build_frame(img, 1500)
        # 7 header bytes + 6 palette bytes + 32 index bytes
        assert len(frame) == 45
        assert frame[0] == 0xAA
        assert frame[1:3] == (45).to_bytes(2, "little")
        assert frame[3:5] == (1500).to_bytes(2, "little")
        assert frame[5] == 0x00
        assert frame[6] == 2

    def test_build_frame_truncates_duration(self):
        frame = build_frame(_image_with_colors(2), 65536 + 10)
        assert frame[3:5] == bytes([10, 0])

    def test_build_frame_256_colors_count_wraps(self):
        frame = build_frame(_image_with_colors(256), 0)
        assert frame[6] == 0
        assert len(frame) == 7 + 768 + 256
