"""
Generative model service.

Builds model requests (an ordered list of inline image parts and a text
instruction) and sends them through a transport, normally the ProxyClient.
Every image-producing call returns a new ImageBitmapRef or raises one of
the remote error types; callers never see raw responses.

Classes:
    Suggestion: A suggested edit (title + prompt)
    GenerativeService: One method per remote editing capability
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import base64
import json
import logging

from RS_Libs.constants import IMAGE_MODEL, TEXT_MODEL, DEFAULT_MAX_WORKERS
from RS_Libs.errors import StudioError, ValidationError, RemoteEmptyResultError
from RS_Libs.ImageEditingLib.compositor import CanvasCompositor
from RS_Libs.ImageEditingLib.image_models import Hotspot, ImageBitmapRef
from RS_Libs.RemoteLib.fan_out import VariantResult, run_variants
from RS_Libs.RemoteLib.response_parser import extract_image, extract_text

logger = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], Dict[str, Any]]

NOISE_INTENSITIES = ("subtle", "moderate", "strong")

SAFETY_POLICY = (
    "Safety & Ethics Policy: skin tone adjustments such as a tan are standard enhancements, "
    "but you MUST REFUSE any request to change a person's race or ethnicity."
)

DEFAULT_BACKGROUND_STYLES: Tuple[Tuple[str, str], ...] = (
    ("Professional", "a clean, professional, out-of-focus modern office environment, suitable for a corporate headshot"),
    ("Scenic", "a beautiful, serene natural landscape with soft, golden hour lighting"),
    ("Creative", "a vibrant, abstract, and colorful graphic background with geometric shapes and soft gradients"),
    ("Dramatic", "a dramatic, dark, and moody studio setting with a single spotlight on the subject"),
)

PROFILE_PICTURE_STYLES: Tuple[Tuple[str, str], ...] = (
    ("Corporate", "a clean, professional, out-of-focus modern office environment with soft, flattering light"),
    ("Gradient Glow", "a vibrant gradient from cyan to purple with a subtle glowing ring light around the subject"),
    ("B&W Studio", "a dark, moody studio with a single high-contrast key light, as a black and white portrait"),
    ("Scenic", "a mountain vista at sunset with soft, golden hour lighting"),
)


@dataclass(frozen=True)
class Suggestion:
    title: str
    prompt: str


def image_part(bitmap: ImageBitmapRef) -> Dict[str, Any]:
    """Inline image part for a model request."""
    return {
        "inlineData": {
            "mimeType": bitmap.mime_type,
            "data": base64.b64encode(bitmap.data).decode("ascii"),
        }
    }


class GenerativeService:
    """
    Remote editing capabilities.

    Args:
        transport: Callable sending a payload and returning the response dict
        max_workers: Thread count for variant fan-out
    """

    def __init__(self, transport: Transport, max_workers: int = DEFAULT_MAX_WORKERS):
        if not callable(transport):
            raise ValueError(f"transport must be callable, got {type(transport)}")
        self.transport = transport
        self.max_workers = max_workers

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _generate_image(self, images: Sequence[ImageBitmapRef], instruction: str, context: str) -> ImageBitmapRef:
        parts = [image_part(bitmap) for bitmap in images]
        parts.append({"text": instruction})
        payload = {"model": IMAGE_MODEL, "contents": {"parts": parts}}

        logger.debug(f"Sending {len(images)} image part(s) for {context}")
        response = self.transport(payload)
        return extract_image(response, context)

    # ------------------------------------------------------------------
    # Localized edits
    # ------------------------------------------------------------------
    def edit(
        self,
        image: ImageBitmapRef,
        prompt: str,
        hotspot: Optional[Hotspot] = None,
        mask: Optional[ImageBitmapRef] = None,
    ) -> ImageBitmapRef:
        """
        Generate a transparent, full-frame layer for a localized edit.

        A mask takes precedence over a hotspot.

        Raises:
            ValidationError: If neither a hotspot nor a mask is given
        """
        if hotspot is None and mask is None:
            raise ValidationError("Either a hotspot or a mask is required for editing.")

        if mask is not None:
            instruction = (
                f'Generate the element described by the user request "{prompt}" inside the '
                f"area defined by the provided mask, blending with overlapping objects. "
                f"Return ONLY the generated element as a transparent PNG the size of the full "
                f"frame. {SAFETY_POLICY}"
            )
            return self._generate_image([image, mask], instruction, "edit")

        instruction = (
            f'Perform the user request "{prompt}" as a natural, localized edit around pixel '
            f"coordinates (x: {hotspot.x}, y: {hotspot.y}). Return ONLY the edited element as a "
            f"transparent PNG, correctly positioned in the full-size frame. {SAFETY_POLICY}"
        )
        return self._generate_image([image], instruction, "edit")

    def remove_object(self, image: ImageBitmapRef, mask: ImageBitmapRef) -> ImageBitmapRef:
        instruction = (
            "Remove the object or area defined by the provided mask and realistically "
            "reconstruct the background behind it. Return ONLY the final, fully edited image."
        )
        return self._generate_image([image, mask], instruction, "removal")

    def generate_mask_for_object(self, image: ImageBitmapRef, hotspot: Hotspot) -> ImageBitmapRef:
        instruction = (
            f"Identify the most prominent complete object at or near pixel coordinates "
            f"(x: {hotspot.x}, y: {hotspot.y}) and return a binary segmentation mask the size "
            f"of the input: white for the object, black everywhere else."
        )
        return self._generate_image([image], instruction, "smart select")

    # ------------------------------------------------------------------
    # Global edits
    # ------------------------------------------------------------------
    def global_edit(
        self,
        image: ImageBitmapRef,
        prompt: Optional[str] = None,
        hotspot: Optional[Hotspot] = None,
    ) -> ImageBitmapRef:
        """Photorealistic adjustment of the whole image, optionally focused on a point."""
        request = prompt.strip() if prompt and prompt.strip() else (
            "Enhance the photo with balanced contrast, brightness and color."
        )
        instruction = f'Apply this adjustment to the image: "{request}".'
        if hotspot is not None:
            instruction += f" Focus the effect around pixel coordinates (x: {hotspot.x}, y: {hotspot.y})."
        instruction += f" Return ONLY the final adjusted image. {SAFETY_POLICY}"
        return self._generate_image([image], instruction, "adjustment")

    def apply_filter(self, image: ImageBitmapRef, prompt: str) -> ImageBitmapRef:
        instruction = (
            f'Apply this stylistic filter to the entire image without changing its composition: '
            f'"{prompt}". Return ONLY the filtered image. {SAFETY_POLICY}'
        )
        return self._generate_image([image], instruction, "filter")

    def sharpen(self, image: ImageBitmapRef, intensity: int) -> ImageBitmapRef:
        if not (0 <= intensity <= 100):
            raise ValueError(f"intensity must be 0-100, got {intensity}")
        instruction = (
            f"Sharpen the image at {intensity}% intensity without adding halos or noise. "
            f"Return ONLY the sharpened image."
        )
        return self._generate_image([image], instruction, "sharpen")

    def transfer_style(self, image: ImageBitmapRef, style_image: ImageBitmapRef, intensity: int) -> ImageBitmapRef:
        if not (0 <= intensity <= 100):
            raise ValueError(f"intensity must be 0-100, got {intensity}")
        instruction = (
            f"Re-render the first image in the artistic style of the second image at {intensity}% "
            f"strength, keeping the first image's content and composition. Return ONLY the result."
        )
        return self._generate_image([image, style_image], instruction, "style transfer")

    def upscale(self, image: ImageBitmapRef) -> ImageBitmapRef:
        instruction = "Upscale this image to twice its resolution, restoring fine detail. Return ONLY the image."
        return self._generate_image([image], instruction, "upscale")

    def reduce_noise(self, image: ImageBitmapRef, intensity: str) -> ImageBitmapRef:
        if intensity not in NOISE_INTENSITIES:
            raise ValueError(f"intensity must be one of {NOISE_INTENSITIES}, got {intensity}")
        instruction = f"Apply {intensity} noise reduction while preserving detail. Return ONLY the image."
        return self._generate_image([image], instruction, "noise reduction")

    def auto_portrait_enhance(self, image: ImageBitmapRef) -> ImageBitmapRef:
        instruction = (
            "Professionally retouch the portrait: even skin texture, brighten eyes, flattering "
            f"light, while keeping the person fully recognizable. {SAFETY_POLICY}"
        )
        return self._generate_image([image], instruction, "portrait enhance")

    def passport_photo(self, image: ImageBitmapRef) -> ImageBitmapRef:
        instruction = (
            "Turn this into a compliant passport photo: head and shoulders, centered, neutral "
            "expression, plain off-white background, even lighting. Return ONLY the image."
        )
        return self._generate_image([image], instruction, "passport photo")

    def remove_background(self, image: ImageBitmapRef) -> ImageBitmapRef:
        instruction = (
            "Cut out the main foreground subject cleanly. Return ONLY the subject on a "
            "transparent PNG background of the same size."
        )
        return self._generate_image([image], instruction, "background removal")

    def beautify_background(self, image: ImageBitmapRef) -> ImageBitmapRef:
        instruction = (
            "Realistically enhance the existing background (light, color, clutter) without "
            "altering the main subject. Return ONLY the image."
        )
        return self._generate_image([image], instruction, "background beautify")

    def add_shadow(self, image: ImageBitmapRef, prompt: str) -> ImageBitmapRef:
        instruction = (
            f'Add a photorealistic shadow to the main subject following the existing lighting: '
            f'"{prompt}". Return ONLY the final image.'
        )
        return self._generate_image([image], instruction, "shadow")

    def generative_expand(
        self,
        image: ImageBitmapRef,
        new_width: int,
        new_height: int,
        offset_x: int,
        offset_y: int,
    ) -> ImageBitmapRef:
        """Outpaint the image onto a larger canvas."""
        composite, mask = CanvasCompositor.build_expand_canvas(image, new_width, new_height, offset_x, offset_y)
        try:
            instruction = (
                "Fill the transparent areas of the composite image (white in the mask) by "
                "seamlessly extending the scene. Keep the original pixels unchanged. "
                "Return ONLY the expanded image."
            )
            return self._generate_image([composite, mask], instruction, "expand")
        finally:
            composite.release()
            mask.release()

    def generate_background(self, subject: ImageBitmapRef, prompt: str) -> ImageBitmapRef:
        instruction = (
            f'Place the provided subject (on a transparent background) onto a new photorealistic '
            f'background: "{prompt}". Match lighting, shadows and color cast on the subject. '
            f"Return ONLY the final composited image."
        )
        return self._generate_image([subject], instruction, "smart background")

    def uncrop_and_reimagine(self, image: ImageBitmapRef, aspect_ratio: str) -> ImageBitmapRef:
        instruction = (
            f"Extend this possibly cropped image into a complete, photorealistic full-frame "
            f"scene, reconstructing cropped parts of the subject. The final aspect ratio MUST be "
            f"exactly {aspect_ratio}. Return ONLY the image."
        )
        return self._generate_image([image], instruction, "uncrop")

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------
    def generate_background_variants(
        self,
        subject: ImageBitmapRef,
        styles: Sequence[Tuple[str, str]] = DEFAULT_BACKGROUND_STYLES,
    ) -> List[VariantResult]:
        """
        Generate one composite per background style, concurrently.

        Raises:
            CompositeFailure: If no style succeeded
        """
        tasks = [
            (description, lambda prompt=prompt: self.generate_background(subject, prompt))
            for description, prompt in styles
        ]
        return run_variants(
            tasks,
            max_workers=self.max_workers,
            failure_message=(
                "The AI failed to generate any background options. This might be due to "
                "safety filters or a complex subject."
            ),
        )

    def generate_profile_pictures(
        self,
        subject: ImageBitmapRef,
        styles: Sequence[Tuple[str, str]] = PROFILE_PICTURE_STYLES,
    ) -> List[VariantResult]:
        """
        Generate square profile picture designs, concurrently.

        Raises:
            CompositeFailure: If no design succeeded
        """
        def design(prompt: str) -> ImageBitmapRef:
            instruction = (
                f'Create a photorealistic 1:1 profile picture: place the subject on "{prompt}", '
                f"match lighting on the subject and compose the face well. Return ONLY the image."
            )
            return self._generate_image([subject], instruction, "profile picture")

        tasks = [(description, lambda prompt=prompt: design(prompt)) for description, prompt in styles]
        return run_variants(
            tasks,
            max_workers=self.max_workers,
            failure_message=(
                "The AI failed to generate any profile picture options. This might be due to "
                "safety filters or a complex subject."
            ),
        )

    # ------------------------------------------------------------------
    # Text helpers (auxiliary, not charged)
    # ------------------------------------------------------------------
    def enhance_prompt(self, prompt: str) -> str:
        """
        Rewrite a short request into a detailed one.

        Falls back to the original prompt if the model call fails.
        """
        if not prompt.strip():
            return ""

        payload = {
            "model": TEXT_MODEL,
            "contents": (
                "Rewrite the following photo-editing request into a detailed, photorealistic "
                "instruction. Return only the enhanced prompt text.\n"
                f'User request: "{prompt}"\nEnhanced prompt:'
            ),
        }
        try:
            enhanced = extract_text(self.transport(payload))
        except StudioError as e:
            logger.warning(f"Failed to enhance prompt, keeping original: {e}")
            return prompt

        if not enhanced:
            return prompt
        lines = [line for line in enhanced.splitlines() if line.strip()]
        return lines[-1].strip() if lines else enhanced

    def get_suggestions(self, image: ImageBitmapRef) -> List[Suggestion]:
        """
        Ask the model for three image-specific edit suggestions.

        Raises:
            RemoteEmptyResultError: If no usable suggestions came back
        """
        payload = {
            "model": TEXT_MODEL,
            "contents": {
                "parts": [
                    image_part(image),
                    {"text": (
                        "Suggest three concrete improvements for this image (a color grade, a "
                        "creative effect, and a composition or retouch fix). For each give a short "
                        "title and a detailed, image-specific prompt."
                    )},
                ]
            },
            "config": {
                "responseMimeType": "application/json",
                "responseSchema": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {"title": {"type": "STRING"}, "prompt": {"type": "STRING"}},
                        "required": ["title", "prompt"],
                    },
                },
            },
        }

        failure = "The AI was unable to provide suggestions for this image."
        try:
            raw = json.loads(extract_text(self.transport(payload)))
        except (StudioError, ValueError) as e:
            logger.error(f"Failed to get suggestions: {e}")
            raise RemoteEmptyResultError(failure) from e

        suggestions = []
        if isinstance(raw, list):
            suggestions = [
                Suggestion(str(item["title"]), str(item["prompt"]))
                for item in raw
                if isinstance(item, dict) and item.get("title") and item.get("prompt")
            ]

        if not suggestions:
            raise RemoteEmptyResultError(failure)
        return suggestions
