"""
Unit tests for the canvas compositor.

Tests flattening, crop coordinate mapping, comparison collages, watermarks
and the outpainting canvas.
"""

import unittest

import pytest
from PIL import Image

from RS_Libs.ImageEditingLib.compositor import CanvasCompositor
from RS_Libs.ImageEditingLib.image_models import (
    ApplicationState,
    CropRect,
    ImageBitmapRef,
    ImageGeometry,
    Layer,
)


def _bitmap(size=(100, 100), color=(0, 0, 255, 255)):
    return ImageBitmapRef.from_image(Image.new("RGBA", size, color))


class TestFlatten(unittest.TestCase):

    def test_no_layers_returns_base_object(self):
        base = _bitmap()
        state = ApplicationState(base)
        self.assertIs(CanvasCompositor.flatten(state), base)

    def test_layers_are_composited_in_order(self):
        base = _bitmap(color=(0, 0, 255, 255))
        overlay = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
        overlay.paste((255, 0, 0, 255), (0, 0, 50, 50))
        top = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
        top.paste((0, 255, 0, 255), (25, 25, 75, 75))
        state = ApplicationState(base, (
            Layer("1", ImageBitmapRef.from_image(overlay), "red"),
            Layer("2", ImageBitmapRef.from_image(top), "green"),
        ))

        flat = CanvasCompositor.flatten(state).open()

        self.assertEqual(flat.size, (100, 100))
        self.assertEqual(flat.getpixel((10, 10)), (255, 0, 0, 255))
        self.assertEqual(flat.getpixel((40, 40)), (0, 255, 0, 255))
        self.assertEqual(flat.getpixel((90, 90)), (0, 0, 255, 255))

    def test_mismatched_layer_is_stretched(self):
        base = _bitmap((100, 100))
        small = _bitmap((50, 50), (255, 0, 0, 255))
        flat = CanvasCompositor.flatten(ApplicationState(base, (Layer("1", small, "p"),))).open()
        self.assertEqual(flat.size, (100, 100))
        self.assertEqual(flat.getpixel((99, 99)), (255, 0, 0, 255))

    def test_rejects_non_state(self):
        with self.assertRaises(TypeError):
            CanvasCompositor.flatten("state")


class TestCrop(unittest.TestCase):

    def test_crop_at_natural_size(self):
        state = ApplicationState(_bitmap((100, 100)))
        geometry = ImageGeometry.unscaled((100, 100))
        cropped = CanvasCompositor.crop(state, CropRect(0, 0, 50, 50, geometry))
        self.assertEqual(cropped.size, (50, 50))

    def test_crop_maps_displayed_to_natural(self):
        image = Image.new("RGBA", (200, 100), (0, 0, 255, 255))
        image.paste((255, 0, 0, 255), (100, 0, 200, 100))
        state = ApplicationState(ImageBitmapRef.from_image(image))
        # Displayed at half size: right half is x 50..100 on screen.
        geometry = ImageGeometry(100, 50, 200, 100)

        cropped = CanvasCompositor.crop(state, CropRect(50, 0, 50, 50, geometry))

        self.assertEqual(cropped.size, (100, 100))
        self.assertEqual(cropped.open().convert("RGBA").getpixel((50, 50)), (255, 0, 0, 255))

    def test_pixel_ratio_sizes_output(self):
        state = ApplicationState(_bitmap((200, 200)))
        geometry = ImageGeometry(100, 100, 200, 200)
        cropped = CanvasCompositor.crop(state, CropRect(0, 0, 40, 20, geometry), pixel_ratio=2)
        self.assertEqual(cropped.size, (80, 40))

    def test_transient_flatten_is_released(self):
        base = _bitmap()
        state = ApplicationState(base, (Layer("1", _bitmap(color=(0, 0, 0, 0)), "p"),))
        released = []
        original_flatten = CanvasCompositor.flatten

        def tracking_flatten(s):
            flat = original_flatten(s)
            released.append(flat)
            return flat

        CanvasCompositor.flatten = staticmethod(tracking_flatten)
        try:
            CanvasCompositor.crop(state, CropRect(0, 0, 10, 10, ImageGeometry.unscaled((100, 100))))
        finally:
            CanvasCompositor.flatten = staticmethod(original_flatten)

        self.assertTrue(released[0].released)
        self.assertFalse(base.released)

    def test_invalid_pixel_ratio(self):
        state = ApplicationState(_bitmap())
        with self.assertRaises(ValueError):
            CanvasCompositor.crop(state, CropRect(0, 0, 10, 10, ImageGeometry.unscaled((100, 100))), pixel_ratio=0)


class TestComparisonCollage:

    @pytest.mark.parametrize("after_size, expected", [
        ((200, 100), (408, 100)),
        ((100, 100), (208, 100)),
        ((100, 200), (100, 408)),
    ])
    def test_layout(self, after_size, expected):
        collage = CanvasCompositor.build_comparison_collage(_bitmap((50, 50)), _bitmap(after_size))
        assert collage.size == expected

    def test_before_is_resized_to_after(self):
        before = _bitmap((30, 60), (255, 0, 0, 255))
        after = _bitmap((100, 200), (0, 255, 0, 255))
        collage = CanvasCompositor.build_comparison_collage(before, after).open().convert("RGB")

        # Stacked: bottom-right corners of both halves avoid the labels.
        assert collage.getpixel((99, 199)) == (255, 0, 0)
        assert collage.getpixel((99, 407)) == (0, 255, 0)
        assert collage.getpixel((50, 203)) == (0x16, 0x19, 0x28)


class TestWatermark(unittest.TestCase):

    def test_watermark_draws_bottom_right_only(self):
        image = Image.new("RGB", (400, 300), (0, 0, 0))
        stamped = CanvasCompositor.apply_watermark(image, "Made with Retouch Studio")

        self.assertEqual(stamped.size, image.size)
        self.assertEqual(image.getpixel((399, 299)), (0, 0, 0))
        self.assertEqual(stamped.getpixel((5, 5)), (0, 0, 0))
        corner = stamped.crop((200, 240, 380, 280))
        self.assertIsNotNone(corner.getbbox())

    def test_rejects_non_image(self):
        with self.assertRaises(TypeError):
            CanvasCompositor.apply_watermark(b"bytes", "text")


class TestExpandCanvas(unittest.TestCase):

    def test_composite_and_mask(self):
        composite, mask = CanvasCompositor.build_expand_canvas(_bitmap((10, 10)), 30, 20, 10, 5)
        self.assertEqual(composite.size, (30, 20))
        self.assertEqual(mask.size, (30, 20))

        comp = composite.open().convert("RGBA")
        self.assertEqual(comp.getpixel((0, 0))[3], 0)
        self.assertEqual(comp.getpixel((15, 10)), (0, 0, 255, 255))

        m = mask.open().convert("RGB")
        self.assertEqual(m.getpixel((0, 0)), (255, 255, 255))
        self.assertEqual(m.getpixel((15, 10)), (0, 0, 0))

    def test_invalid_canvas(self):
        with self.assertRaises(ValueError):
            CanvasCompositor.build_expand_canvas(_bitmap((10, 10)), 5, 20, 0, 0)
        with self.assertRaises(ValueError):
            CanvasCompositor.build_expand_canvas(_bitmap((10, 10)), 20, 20, 15, 0)
