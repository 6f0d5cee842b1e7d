"""
Unit tests for image data models.
"""

import tempfile
import unittest
from pathlib import Path

from PIL import Image

from RS_Libs.errors import BitmapReleasedError
from RS_Libs.ImageEditingLib.image_models import (
    ApplicationState,
    CropRect,
    Hotspot,
    ImageBitmapRef,
    ImageGeometry,
    Layer,
)


class TestImageBitmapRef(unittest.TestCase):

    def test_from_image(self):
        bitmap = ImageBitmapRef.from_image(Image.new("RGB", (30, 20)), "jpg", quality=80)
        self.assertEqual(bitmap.mime_type, "image/jpeg")
        self.assertEqual(bitmap.size, (30, 20))
        self.assertEqual(bitmap.open().size, (30, 20))

    def test_data_url_round_trip(self):
        bitmap = ImageBitmapRef.from_image(Image.new("RGBA", (3, 3)))
        copy = ImageBitmapRef.from_data_url(bitmap.url)
        self.assertEqual(copy.data, bitmap.data)
        self.assertEqual(copy.mime_type, "image/png")
        self.assertNotEqual(copy.id, bitmap.id)

    def test_invalid_data_url(self):
        with self.assertRaises(ValueError):
            ImageBitmapRef.from_data_url("http://example.com/a.png")
        with self.assertRaises(ValueError):
            ImageBitmapRef.from_data_url("data:image/png;base64,@@@")

    def test_release(self):
        bitmap = ImageBitmapRef.from_image(Image.new("RGBA", (3, 3)))
        self.assertTrue(bitmap.release())
        self.assertFalse(bitmap.release())
        self.assertTrue(bitmap.released)
        with self.assertRaises(BitmapReleasedError):
            bitmap.url
        with self.assertRaises(BitmapReleasedError):
            bitmap.open()

    def test_rejects_empty_data(self):
        with self.assertRaises(ValueError):
            ImageBitmapRef(b"")
        with self.assertRaises(TypeError):
            ImageBitmapRef("text")

    def test_from_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "photo.jpg"
            Image.new("RGB", (12, 7)).save(path, format="JPEG")
            bitmap = ImageBitmapRef.from_file(path)
        self.assertEqual(bitmap.mime_type, "image/jpeg")
        self.assertEqual(bitmap.size, (12, 7))


class TestStateAndGeometry(unittest.TestCase):

    def test_state_layers_are_immutable(self):
        base = ImageBitmapRef.from_image(Image.new("RGBA", (2, 2)))
        layer = Layer("a", base, "p")
        state = ApplicationState(base, [layer])
        self.assertEqual(state.layers, (layer,))
        self.assertIs(state.find_layer("a"), layer)
        self.assertIsNone(state.find_layer("b"))
        self.assertEqual(state.bitmaps(), [base, base])

    def test_geometry_scale(self):
        geometry = ImageGeometry(100, 50, 400, 100)
        self.assertEqual(geometry.scale_x, 4)
        self.assertEqual(geometry.scale_y, 2)
        self.assertEqual(geometry.to_natural(10, 10), (40, 20))
        with self.assertRaises(ValueError):
            ImageGeometry(0, 10, 10, 10)

    def test_hotspot_rounds(self):
        hotspot = Hotspot.from_display(10.4, 3.3, ImageGeometry(100, 100, 150, 150))
        self.assertEqual((hotspot.x, hotspot.y), (16, 5))

    def test_crop_rect(self):
        rect = CropRect(10, 10, 20, 30, ImageGeometry(100, 100, 200, 200))
        self.assertEqual(rect.to_natural_box(), (20, 20, 60, 80))
        self.assertEqual(rect.natural_size, (40, 60))
        with self.assertRaises(ValueError):
            CropRect(0, 0, 0, 10, ImageGeometry.unscaled((10, 10)))
        with self.assertRaises(ValueError):
            CropRect(0, 0, 5, 5)
