"""
Image editing data models for Retouch Studio.

This module defines the core data structures shared by the history store,
the compositor and the editor session.

Classes:
    ImageBitmapRef: Owned handle to encoded image bytes with a data URL
    Layer: One generative overlay (full-canvas RGBA image + prompt)
    ApplicationState: Immutable history entry (flattened base + layer deltas)
    ImageGeometry: Displayed and natural pixel dimensions of the shown image
    Hotspot: A point in natural pixels, remembering its display origin
    CropRect: A crop rectangle in displayed pixels, with its geometry
"""

from dataclasses import dataclass, field, replace
from io import BytesIO
from itertools import count
from pathlib import Path
from typing import Any, Optional, Tuple
import base64
import binascii
import logging
import re

from RS_Libs.pillow_compat import Image
from RS_Libs.constants import FORMAT_TO_MIME, MIME_PNG, ORIGINAL_DESCRIPTION
from RS_Libs.errors import BitmapReleasedError

logger = logging.getLogger(__name__)

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[^;,]+)(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)
_bitmap_ids = count(1)


class ImageBitmapRef:
    """
    Handle to encoded image bytes plus a dereferenceable data URL.

    A bitmap has exactly one owner (the history entry that introduced it).
    Once released its bytes are dropped and every accessor raises
    BitmapReleasedError.
    """

    def __init__(self, data: bytes, mime_type: str = MIME_PNG):
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"Expected bytes for bitmap data, got {type(data)}")
        if not data:
            raise ValueError("Bitmap data cannot be empty")

        self.id = next(_bitmap_ids)
        self.mime_type = str(mime_type)
        self._data: Optional[bytes] = bytes(data)
        self._url: Optional[str] = None
        self._size: Optional[Tuple[int, int]] = None

    @classmethod
    def from_image(cls, image: Any, save_format: str = "PNG", **save_kwargs) -> "ImageBitmapRef":
        """Encode a PIL Image into a new bitmap."""
        if not hasattr(image, "mode"):
            raise TypeError(f"Expected PIL Image, got {type(image)}")

        save_format = save_format.upper()
        if save_format == "JPG":
            save_format = "JPEG"

        buffer = BytesIO()
        image.save(buffer, format=save_format, **save_kwargs)
        bitmap = cls(buffer.getvalue(), FORMAT_TO_MIME.get(save_format, MIME_PNG))
        bitmap._size = image.size
        return bitmap

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImageBitmapRef":
        """Decode a base64 data URL (as returned by the remote model)."""
        match = _DATA_URL_PATTERN.match(data_url or "")
        if not match:
            raise ValueError("Invalid data URL")
        try:
            data = base64.b64decode(match.group("data"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload in data URL: {e}") from e
        return cls(data, match.group("mime"))

    @classmethod
    def from_file(cls, path: Path) -> "ImageBitmapRef":
        """Read an image file from disk, detecting its MIME type."""
        path = Path(path)
        data = path.read_bytes()
        with Image.open(BytesIO(data)) as img:
            mime_type = FORMAT_TO_MIME.get(str(img.format).upper(), MIME_PNG)
            size = img.size
        bitmap = cls(data, mime_type)
        bitmap._size = size
        return bitmap

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise BitmapReleasedError(f"Bitmap {self.id} has been released")
        return self._data

    @property
    def url(self) -> str:
        """The data URL for display; built on first access."""
        data = self.data
        if self._url is None:
            encoded = base64.b64encode(data).decode("ascii")
            self._url = f"data:{self.mime_type};base64,{encoded}"
        return self._url

    @property
    def size(self) -> Tuple[int, int]:
        """Natural (width, height) in pixels."""
        if self._size is None:
            with Image.open(BytesIO(self.data)) as img:
                self._size = img.size
        return self._size

    def open(self) -> Any:
        """Decode into a fully loaded PIL Image."""
        img = Image.open(BytesIO(self.data))
        img.load()
        return img

    def release(self) -> bool:
        """
        Drop the bytes and cached URL.

        Returns:
            True if this call released the bitmap, False if it already was
        """
        if self._data is None:
            return False
        self._data = None
        self._url = None
        logger.debug(f"Released bitmap {self.id}")
        return True

    def __repr__(self):
        state = "released" if self.released else f"{len(self._data)} bytes"
        return f"ImageBitmapRef(id={self.id}, {self.mime_type}, {state})"


@dataclass(frozen=True)
class Layer:
    """A generative overlay, full-canvas sized, painted above the base image.

    Attributes:
        id: Unique layer id
        image: RGBA bitmap (may contain transparency)
        prompt: Prompt that produced the overlay
    """
    id: str
    image: ImageBitmapRef
    prompt: str

    def with_image(self, image: ImageBitmapRef, prompt: str) -> "Layer":
        """Copy of this layer (same id) with a new image and prompt."""
        return replace(self, image=image, prompt=prompt)


@dataclass(frozen=True)
class ApplicationState:
    """One history entry.

    `base_image` is always fully flattened; `layers` holds only the overlays
    added since this base was produced, bottom first.
    """
    base_image: ImageBitmapRef
    layers: Tuple[Layer, ...] = ()
    description: str = ORIGINAL_DESCRIPTION

    def __post_init__(self):
        object.__setattr__(self, "layers", tuple(self.layers))

    def with_layers(self, layers, description: str) -> "ApplicationState":
        return ApplicationState(self.base_image, tuple(layers), description)

    def find_layer(self, layer_id: str) -> Optional[Layer]:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        return None

    def bitmaps(self):
        """All bitmaps referenced by this state."""
        return [self.base_image] + [layer.image for layer in self.layers]


@dataclass(frozen=True)
class ImageGeometry:
    """Displayed (on-screen) and natural (pixel data) dimensions of an image."""
    displayed_width: float
    displayed_height: float
    natural_width: int
    natural_height: int

    def __post_init__(self):
        if self.displayed_width <= 0 or self.displayed_height <= 0:
            raise ValueError(
                f"Displayed size must be positive, got "
                f"{self.displayed_width}x{self.displayed_height}"
            )
        if self.natural_width <= 0 or self.natural_height <= 0:
            raise ValueError(
                f"Natural size must be positive, got "
                f"{self.natural_width}x{self.natural_height}"
            )

    @classmethod
    def unscaled(cls, size: Tuple[int, int]) -> "ImageGeometry":
        """Geometry of an image shown at its natural size."""
        width, height = size
        return cls(width, height, width, height)

    @property
    def scale_x(self) -> float:
        return self.natural_width / self.displayed_width

    @property
    def scale_y(self) -> float:
        return self.natural_height / self.displayed_height

    def to_natural(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale_x, y * self.scale_y

    def resized(self, displayed_width: float, displayed_height: float) -> "ImageGeometry":
        return replace(self, displayed_width=displayed_width, displayed_height=displayed_height)


@dataclass(frozen=True)
class Hotspot:
    """A localized edit target in natural pixel space."""
    x: int
    y: int
    display_x: float = 0.0
    display_y: float = 0.0

    @classmethod
    def from_display(cls, display_x: float, display_y: float, geometry: ImageGeometry) -> "Hotspot":
        natural_x, natural_y = geometry.to_natural(display_x, display_y)
        return cls(round(natural_x), round(natural_y), display_x, display_y)


@dataclass(frozen=True)
class CropRect:
    """A crop rectangle in displayed pixels, carrying the geometry it was drawn on."""
    x: float
    y: float
    width: float
    height: float
    geometry: ImageGeometry = field(compare=False, default=None)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Crop size must be positive, got {self.width}x{self.height}")
        if self.geometry is None:
            raise ValueError("CropRect requires the geometry it was drawn on")

    def to_natural_box(self) -> Tuple[float, float, float, float]:
        """(left, top, right, bottom) in natural pixels."""
        sx, sy = self.geometry.scale_x, self.geometry.scale_y
        return (
            self.x * sx,
            self.y * sy,
            (self.x + self.width) * sx,
            (self.y + self.height) * sy,
        )

    @property
    def natural_size(self) -> Tuple[int, int]:
        return (
            max(1, round(self.width * self.geometry.scale_x)),
            max(1, round(self.height * self.geometry.scale_y)),
        )
