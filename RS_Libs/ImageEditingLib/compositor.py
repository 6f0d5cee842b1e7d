"""
Canvas Compositor.

Rasterizes a history state (flattened base image plus generative overlay
layers) into a single bitmap, extracts crops, assembles before/after
collages, and stamps export watermarks. Uses standard alpha compositing.

Example:
    >>> state = ApplicationState(base, (Layer("1", hat, "add a hat"),))
    >>> flattened = CanvasCompositor.flatten(state)
    >>> cropped = CanvasCompositor.crop(state, CropRect(0, 0, 50, 50, geometry))
"""

from typing import Any, Optional, Tuple
import logging

from RS_Libs.pillow_compat import Image, ImageDraw, ImageFont
from RS_Libs.constants import (
    COLLAGE_GAP,
    COLLAGE_BACKGROUND,
    COLLAGE_LABEL_BACKGROUND,
    COLLAGE_LABEL_COLOR,
    COLLAGE_LABEL_RADIUS,
    COLLAGE_MIN_FONT_SIZE,
    WATERMARK_FILL,
    WATERMARK_STROKE,
)
from RS_Libs.ImageEditingLib.image_models import (
    ApplicationState,
    CropRect,
    ImageBitmapRef,
    Layer,
)

logger = logging.getLogger(__name__)


class CanvasCompositor:
    """Handles client-side rasterization of layered edit states."""

    @staticmethod
    def flatten(state: ApplicationState) -> ImageBitmapRef:
        """
        Composite the base image and all layers into one bitmap.

        When the state has no layers the base image itself is returned
        (same object, nothing is allocated).

        Args:
            state: History entry to rasterize

        Returns:
            The base bitmap, or a new PNG bitmap holding the composite

        Raises:
            TypeError: If state is not an ApplicationState
        """
        if not isinstance(state, ApplicationState):
            raise TypeError(f"Expected ApplicationState, got {type(state)}")

        if not state.layers:
            return state.base_image

        result = state.base_image.open().convert("RGBA")
        for layer_idx, layer in enumerate(state.layers):
            result = CanvasCompositor._composite_single_layer(result, layer, layer_idx)

        logger.debug(f"Flattened {len(state.layers)} layer(s) onto {result.size[0]}x{result.size[1]} base")
        return ImageBitmapRef.from_image(result)

    @staticmethod
    def _composite_single_layer(base: Any, layer: Layer, layer_idx: int) -> Any:
        """
        Composite a single layer onto base image.

        Layers come back from the remote model full-canvas sized; any drift
        in their dimensions is corrected by stretching to the base canvas.
        """
        overlay = layer.image.open()
        if not hasattr(overlay, "convert"):
            raise TypeError(f"Layer {layer_idx} image is not PIL Image, got {type(overlay)}")

        overlay = overlay.convert("RGBA")
        if overlay.size != base.size:
            overlay = overlay.resize(base.size, Image.Resampling.LANCZOS)

        return Image.alpha_composite(base, overlay)

    @staticmethod
    def crop(
        state: ApplicationState,
        crop_rect: CropRect,
        pixel_ratio: Optional[float] = None,
    ) -> ImageBitmapRef:
        """
        Flatten the state and extract a crop rectangle.

        The rectangle is given in displayed pixels and mapped to natural
        pixels with `natural / displayed` per axis. The output canvas has the
        crop's natural size; when a device pixel ratio is supplied the output
        is sized `displayed * pixel_ratio` instead, matching what a high-DPI
        screen would show.

        Args:
            state: History entry to crop
            crop_rect: Rectangle in displayed pixels with its geometry
            pixel_ratio: Optional device pixel ratio

        Returns:
            New PNG bitmap of the cropped region
        """
        if pixel_ratio is not None and pixel_ratio <= 0:
            raise ValueError(f"pixel_ratio must be positive, got {pixel_ratio}")

        flattened = CanvasCompositor.flatten(state)
        try:
            source = flattened.open()
            box = crop_rect.to_natural_box()

            if pixel_ratio is None:
                out_size = crop_rect.natural_size
            else:
                out_size = (
                    max(1, round(crop_rect.width * pixel_ratio)),
                    max(1, round(crop_rect.height * pixel_ratio)),
                )

            cropped = source.resize(out_size, Image.Resampling.LANCZOS, box=box)
        finally:
            if flattened is not state.base_image:
                flattened.release()

        logger.debug(f"Cropped box {tuple(round(v, 2) for v in box)} -> {out_size}")
        return ImageBitmapRef.from_image(cropped)

    @staticmethod
    def comparison_layout(after_size: Tuple[int, int], gap: int = COLLAGE_GAP) -> Tuple[bool, Tuple[int, int]]:
        """
        Decide the collage layout from the edited image's size only.

        Returns:
            (is_landscape, (canvas_width, canvas_height))
        """
        width, height = after_size
        is_landscape = width >= height
        if is_landscape:
            return True, (width * 2 + gap, height)
        return False, (width, height * 2 + gap)

    @staticmethod
    def build_comparison_collage(before: ImageBitmapRef, after: ImageBitmapRef) -> ImageBitmapRef:
        """
        Build a labelled before/after collage.

        Landscape edits (width >= height) are laid out side by side, portrait
        edits are stacked. Both images are drawn at the edited image's size.

        Args:
            before: The original upload
            after: The edited result

        Returns:
            New PNG bitmap of the collage
        """
        before_img = before.open().convert("RGBA")
        after_img = after.open().convert("RGBA")

        base_width, base_height = after_img.size
        is_landscape, canvas_size = CanvasCompositor.comparison_layout(after_img.size)

        canvas = Image.new("RGB", canvas_size, COLLAGE_BACKGROUND)

        if before_img.size != after_img.size:
            before_img = before_img.resize(after_img.size, Image.Resampling.LANCZOS)

        after_origin = (base_width + COLLAGE_GAP, 0) if is_landscape else (0, base_height + COLLAGE_GAP)
        canvas.paste(before_img, (0, 0), before_img)
        canvas.paste(after_img, after_origin, after_img)

        font_size = max(COLLAGE_MIN_FONT_SIZE, round(base_width / 30))
        font = ImageFont.load_default(size=font_size)
        draw = ImageDraw.Draw(canvas, "RGBA")
        margin = font_size

        CanvasCompositor._draw_label(draw, "BEFORE", (margin, margin), font, font_size)
        CanvasCompositor._draw_label(
            draw, "AFTER", (after_origin[0] + margin, after_origin[1] + margin), font, font_size
        )

        logger.info(
            f"Built {'side-by-side' if is_landscape else 'stacked'} comparison collage "
            f"{canvas_size[0]}x{canvas_size[1]}"
        )
        return ImageBitmapRef.from_image(canvas)

    @staticmethod
    def _draw_label(draw: Any, text: str, origin: Tuple[int, int], font: Any, font_size: int) -> None:
        """Draw a pill label with a translucent background."""
        padding = font_size / 2
        left, top, right, _ = draw.textbbox((0, 0), text, font=font)
        rect_width = (right - left) + padding * 2
        rect_height = font_size + padding * 2
        x, y = origin

        draw.rounded_rectangle(
            (x, y, x + rect_width, y + rect_height),
            radius=COLLAGE_LABEL_RADIUS,
            fill=COLLAGE_LABEL_BACKGROUND,
        )
        draw.text((x + padding, y + padding), text, font=font, fill=COLLAGE_LABEL_COLOR)

    @staticmethod
    def apply_watermark(image: Any, text: str) -> Any:
        """
        Stamp bottom-right text with an outline so it reads on any background.

        Font size, margin and outline width scale with the image width.

        Args:
            image: PIL Image to watermark (not modified)
            text: Watermark text

        Returns:
            New PIL Image with the watermark drawn
        """
        if not hasattr(image, "mode"):
            raise TypeError(f"Expected PIL Image, got {type(image)}")

        result = image.copy()
        if result.mode not in ("RGB", "RGBA"):
            result = result.convert("RGBA")

        width, height = result.size
        margin = max(20, round(width / 100))
        font = ImageFont.load_default(size=max(20, round(width / 50)))
        stroke_width = max(2, round(width / 500))

        draw = ImageDraw.Draw(result, "RGBA")
        draw.text(
            (width - margin, height - margin),
            text,
            font=font,
            fill=WATERMARK_FILL,
            anchor="rb",
            stroke_width=stroke_width,
            stroke_fill=WATERMARK_STROKE,
        )
        return result

    @staticmethod
    def build_expand_canvas(
        image: ImageBitmapRef,
        new_width: int,
        new_height: int,
        offset_x: int,
        offset_y: int,
    ) -> Tuple[ImageBitmapRef, ImageBitmapRef]:
        """
        Prepare inputs for generative expand (outpainting).

        Returns:
            (composite, mask): the image placed on a larger transparent canvas,
            and a mask that is white where content must be generated and
            black over the original pixels
        """
        source = image.open().convert("RGBA")
        src_width, src_height = source.size

        if new_width < src_width or new_height < src_height:
            raise ValueError(
                f"Expanded canvas {new_width}x{new_height} is smaller than "
                f"the image {src_width}x{src_height}"
            )
        if not (0 <= offset_x <= new_width - src_width and 0 <= offset_y <= new_height - src_height):
            raise ValueError(f"Offset ({offset_x}, {offset_y}) places the image outside the canvas")

        composite = Image.new("RGBA", (new_width, new_height), (0, 0, 0, 0))
        composite.paste(source, (offset_x, offset_y))

        mask = Image.new("RGB", (new_width, new_height), "white")
        ImageDraw.Draw(mask).rectangle(
            (offset_x, offset_y, offset_x + src_width - 1, offset_y + src_height - 1),
            fill="black",
        )

        return ImageBitmapRef.from_image(composite), ImageBitmapRef.from_image(mask)
