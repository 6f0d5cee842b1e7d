"""
Interpretation of generative model responses.

Three failure modes are distinguished: an explicit block reason, a finish
reason other than STOP, and a response with no image part. All of them mean
the operation failed and nothing must be charged.
"""

from typing import Any, Dict, List, Optional
import logging

from RS_Libs.constants import FINISH_REASON_STOP
from RS_Libs.errors import RemoteBlockError, RemoteEmptyResultError
from RS_Libs.ImageEditingLib.image_models import ImageBitmapRef

logger = logging.getLogger(__name__)


def _first_candidate(response: Dict[str, Any]) -> Dict[str, Any]:
    candidates = response.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _parts(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = _first_candidate(response).get("content") or {}
    return [part for part in content.get("parts") or [] if isinstance(part, dict)]


def extract_text(response: Dict[str, Any]) -> str:
    """Concatenated text parts of the first candidate."""
    if isinstance(response.get("text"), str):
        return response["text"].strip()
    return "".join(part.get("text", "") for part in _parts(response)).strip()


def find_image_part(response: Dict[str, Any]) -> Optional[Dict[str, str]]:
    for part in _parts(response):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            return inline
    return None


def extract_image(response: Dict[str, Any], context: str) -> ImageBitmapRef:
    """
    Pull the generated image out of a model response.

    Args:
        response: Raw response dict from the proxy
        context: Short name of the operation (for messages), e.g. "edit"

    Returns:
        The generated image as a bitmap

    Raises:
        RemoteBlockError: Prompt blocked, or generation stopped early
        RemoteEmptyResultError: No image part in the response
    """
    feedback = response.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        message = f"Request was blocked. Reason: {block_reason}. {feedback.get('blockReasonMessage') or ''}".strip()
        logger.error(message)
        raise RemoteBlockError(message, reason=block_reason)

    inline = find_image_part(response)
    if inline is not None:
        mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
        logger.info(f"Received image data ({mime_type}) for {context}")
        return ImageBitmapRef.from_data_url(f"data:{mime_type};base64,{inline['data']}")

    finish_reason = _first_candidate(response).get("finishReason")
    if finish_reason and finish_reason != FINISH_REASON_STOP:
        message = (
            f"Image generation for {context} stopped unexpectedly. Reason: {finish_reason}. "
            f"This often relates to safety settings."
        )
        logger.error(message)
        raise RemoteBlockError(message, reason=finish_reason)

    text_feedback = extract_text(response)
    if text_feedback:
        detail = f'The model responded with text: "{text_feedback}"'
    else:
        detail = (
            "This can happen due to safety filters or if the request is too complex. "
            "Please try rephrasing your prompt to be more direct."
        )
    logger.error(f"Model response did not contain an image part for {context}")
    raise RemoteEmptyResultError(
        f"The AI model did not return an image for the {context}. {detail}",
        text_feedback=text_feedback,
    )
