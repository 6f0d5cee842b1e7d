"""
Export encoding and download helpers for Retouch Studio.

Classes:
    ExportOptions: User choices for a download (format, quality, extras)
    DownloadArtifact: One encoded file ready to be written or offered

Functions:
    encode_image: Encode a PIL Image according to ExportOptions
    make_download_filename: Build `<category>-<timestamp>.<ext>` names
    bytes_to_data_url / data_url_to_bytes: Data URL conversion
    save_download: Write an artifact to a directory
"""

from dataclasses import dataclass, asdict
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import base64
import logging
import time

from RS_Libs.constants import (
    DEFAULT_JPEG_QUALITY,
    MIME_JPEG,
    MIME_PNG,
    NOISE_REDUCTION_LEVELS,
    SUPPORTED_EXPORT_FORMATS,
)

logger = logging.getLogger(__name__)


@dataclass
class ExportOptions:
    """Options chosen in the download dialog.

    Attributes:
        format: "png" (lossless) or "jpeg"
        quality: JPEG quality 1-100 (ignored for PNG)
        upscale: Run the remote upscaler before export
        noise_reduction: "off", "subtle", "moderate" or "strong"
        add_watermark: Stamp the studio watermark
        include_comparison: Also produce a before/after collage
    """
    format: str = "png"
    quality: int = DEFAULT_JPEG_QUALITY
    upscale: bool = False
    noise_reduction: str = "off"
    add_watermark: bool = False
    include_comparison: bool = False

    def __post_init__(self):
        self.format = str(self.format).lower()
        if self.format == "jpg":
            self.format = "jpeg"
        if self.format not in SUPPORTED_EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {self.format}")
        if self.noise_reduction not in NOISE_REDUCTION_LEVELS:
            raise ValueError(f"Invalid noise_reduction: {self.noise_reduction}")

    @property
    def extension(self) -> str:
        return self.format

    @property
    def mime_type(self) -> str:
        return MIME_JPEG if self.format == "jpeg" else MIME_PNG

    @property
    def requires_credit(self) -> bool:
        """Extras that call the remote model cost a credit."""
        return self.upscale or self.include_comparison or self.noise_reduction != "off"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportOptions":
        filtered = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**filtered)

    def get_save_kwargs(self) -> Dict[str, Any]:
        """Get PIL Image.save() kwargs based on format."""
        if self.format == "jpeg":
            return {"format": "JPEG", "quality": max(1, min(100, int(self.quality)))}
        return {"format": "PNG"}


@dataclass
class DownloadArtifact:
    """An encoded file produced by an export."""
    filename: str
    data: bytes
    mime_type: str

    @property
    def data_url(self) -> str:
        return bytes_to_data_url(self.data, self.mime_type)


def encode_image(image: Any, options: ExportOptions) -> bytes:
    """
    Encode an image for download.

    JPEG has no alpha channel, so images are flattened to RGB first.
    """
    if not hasattr(image, "mode"):
        raise TypeError(f"Expected PIL Image, got {type(image)}")

    if options.format == "jpeg" and image.mode != "RGB":
        image = image.convert("RGB")

    buffer = BytesIO()
    image.save(buffer, **options.get_save_kwargs())
    return buffer.getvalue()


def make_download_filename(category: str, extension: str, timestamp: Optional[int] = None) -> str:
    """
    Build a download filename of the form `<category>-<timestamp>.<ext>`.

    Args:
        category: Short label such as "rs-studio-edit"
        extension: File extension without the dot
        timestamp: Milliseconds since the epoch (default: now)
    """
    category = str(category).strip()
    if not category:
        raise ValueError("category cannot be empty")
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return f"{category}-{timestamp}.{extension.lstrip('.')}"


def bytes_to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def data_url_to_bytes(data_url: str) -> Tuple[bytes, str]:
    """
    Split a base64 data URL into its bytes and MIME type.

    Raises:
        ValueError: If the URL is malformed
    """
    header, sep, payload = (data_url or "").partition(",")
    if not sep or not header.startswith("data:"):
        raise ValueError("Invalid data URL")
    mime_type = header[len("data:"):].split(";")[0]
    if not mime_type:
        raise ValueError("Could not parse MIME type from data URL")
    return base64.b64decode(payload), mime_type


def save_download(artifact: DownloadArtifact, output_dir: Path, overwrite: bool = False) -> Path:
    """
    Write an artifact into a directory.

    Raises:
        ValueError: If the filename escapes the directory or the file exists
        OSError: If the directory is missing or the file cannot be written
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        raise OSError(f"Output directory does not exist: {output_dir}")

    name = Path(artifact.filename)
    if name.name != artifact.filename or artifact.filename in ("", ".", ".."):
        raise ValueError(f"Path traversal detected in download filename: {artifact.filename}")

    target = output_dir / name
    if target.exists() and not overwrite:
        raise ValueError(f"File already exists: {target}")

    target.write_bytes(artifact.data)
    logger.info(f"Saved download {target}")
    return target
