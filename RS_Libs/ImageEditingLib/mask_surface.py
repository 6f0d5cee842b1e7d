"""
Mask/Brush Surface.

An interactive painter for binary selection masks. Pointer events arrive in
displayed (on-screen) pixels and are mapped to the natural pixel grid of the
image, so the produced mask always lines up 1:1 with the image data no matter
how the image is scaled on screen.

Classes:
    BrushTool: Paint or erase
    MaskSurface: Per-stroke state machine producing a normalized mask
"""

from enum import Enum
from typing import Callable, Optional, Tuple
import logging

import numpy as np

from RS_Libs.pillow_compat import Image, ImageDraw
from RS_Libs.constants import DEFAULT_BRUSH_SIZE, MASK_PAINT_COLOR, MASK_CLEAR_COLOR
from RS_Libs.ImageEditingLib.image_models import ImageBitmapRef, ImageGeometry

logger = logging.getLogger(__name__)

MaskCallback = Callable[[Optional[ImageBitmapRef]], None]


class BrushTool(Enum):
    BRUSH = "brush"   # source-over
    ERASE = "erase"   # destination-out


class MaskSurface:
    """
    Paints a mask at natural resolution from displayed-space pointer input.

    Each stroke moves idle -> drawing (pointer_down) -> idle (pointer_up).
    On pointer_up the canvas is inspected and an all-zero canvas is reported
    as None rather than as an empty image.
    """

    def __init__(
        self,
        geometry: ImageGeometry,
        brush_size: float = DEFAULT_BRUSH_SIZE,
        tool: BrushTool = BrushTool.BRUSH,
        on_change: Optional[MaskCallback] = None,
    ):
        self._geometry = geometry
        self.brush_size = brush_size
        self.tool = tool
        self.on_change = on_change
        self._canvas = self._blank_canvas(geometry)
        self._drawing = False
        self._last_pos: Tuple[float, float] = (0.0, 0.0)
        self._mask: Optional[ImageBitmapRef] = None
        self._owns_mask = False

    @staticmethod
    def _blank_canvas(geometry: ImageGeometry):
        return Image.new("RGBA", (geometry.natural_width, geometry.natural_height), MASK_CLEAR_COLOR)

    @property
    def geometry(self) -> ImageGeometry:
        return self._geometry

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    @property
    def mask(self) -> Optional[ImageBitmapRef]:
        """The last normalized mask (None when nothing is selected)."""
        return self._mask

    @property
    def brush_size(self) -> float:
        return self._brush_size

    @brush_size.setter
    def brush_size(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"brush_size must be positive, got {value}")
        self._brush_size = value

    @property
    def line_width(self) -> int:
        """Brush size converted from displayed to natural pixels."""
        return max(1, round(self._brush_size * self._geometry.scale_x))

    def observe_resize(self, displayed_width: float, displayed_height: float) -> None:
        """Recompute the display->natural scale after the shown image was resized."""
        self._geometry = self._geometry.resized(displayed_width, displayed_height)
        logger.debug(
            f"Mask surface display size {displayed_width}x{displayed_height}, "
            f"scale ({self._geometry.scale_x:.3f}, {self._geometry.scale_y:.3f})"
        )

    def set_geometry(self, geometry: ImageGeometry) -> None:
        """Track a new image; a different natural size starts a blank canvas."""
        natural_changed = (
            (geometry.natural_width, geometry.natural_height)
            != (self._geometry.natural_width, self._geometry.natural_height)
        )
        self._geometry = geometry
        if natural_changed:
            self._canvas = self._blank_canvas(geometry)
            self._drawing = False
            self._publish(None)

    def to_natural(self, display_x: float, display_y: float) -> Tuple[float, float]:
        return self._geometry.to_natural(display_x, display_y)

    def pointer_down(self, display_x: float, display_y: float) -> None:
        self._drawing = True
        self._last_pos = self.to_natural(display_x, display_y)

    def pointer_move(self, display_x: float, display_y: float) -> None:
        """Stroke from the last recorded position to this one while drawing."""
        if not self._drawing:
            return

        current = self.to_natural(display_x, display_y)
        self._stroke(self._last_pos, current)
        self._last_pos = current

    def pointer_up(self) -> Optional[ImageBitmapRef]:
        """
        Finish the stroke and normalize the canvas.

        Returns:
            PNG mask bitmap, or None when the canvas is empty
        """
        if not self._drawing:
            return self._mask

        self._drawing = False
        if self.is_empty():
            self._publish(None)
        else:
            self._publish(ImageBitmapRef.from_image(self._canvas))
        return self._mask

    def _stroke(self, start: Tuple[float, float], end: Tuple[float, float]) -> None:
        width = self.line_width
        color = MASK_PAINT_COLOR if self.tool is BrushTool.BRUSH else MASK_CLEAR_COLOR
        draw = ImageDraw.Draw(self._canvas)
        draw.line([start, end], fill=color, width=width, joint="curve")

        # round caps
        radius = width / 2
        for x, y in (start, end):
            draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=color)

    def is_empty(self) -> bool:
        """True when every channel of every pixel is zero."""
        return not np.asarray(self._canvas).any()

    def load_mask(self, mask: Optional[ImageBitmapRef]) -> None:
        """
        Replace the canvas with an externally produced mask (or clear it).

        The caller keeps ownership of `mask`; the surface never releases it.
        """
        self._canvas = self._blank_canvas(self._geometry)
        if mask is not None:
            img = mask.open().convert("RGBA")
            if img.size != self._canvas.size:
                img = img.resize(self._canvas.size, Image.Resampling.NEAREST)
            self._canvas.paste(img, (0, 0))
        self._drawing = False
        if mask is not self._mask:
            self._release_owned()
            self._mask = mask

    def clear(self) -> None:
        self._canvas = self._blank_canvas(self._geometry)
        self._drawing = False
        self._publish(None)

    def _release_owned(self) -> None:
        if self._owns_mask and self._mask is not None:
            self._mask.release()
        self._owns_mask = False

    def _publish(self, mask: Optional[ImageBitmapRef]) -> None:
        """Publish a mask this surface painted, releasing the one it supersedes."""
        self._release_owned()
        self._mask = mask
        self._owns_mask = mask is not None
        if self.on_change is not None:
            self.on_change(mask)
