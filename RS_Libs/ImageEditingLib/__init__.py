"""
ImageEditingLib - Core image data and local canvas operations

This module provides the image data models, the canvas compositor
(flatten, crop, collage, watermark), export helpers and the mask surface.
"""

from RS_Libs.ImageEditingLib.image_models import (
    ImageBitmapRef,
    Layer,
    ApplicationState,
    ImageGeometry,
    Hotspot,
    CropRect,
)
from RS_Libs.ImageEditingLib.compositor import CanvasCompositor
from RS_Libs.ImageEditingLib.export_ops import (
    ExportOptions,
    DownloadArtifact,
    encode_image,
    make_download_filename,
    save_download,
)
from RS_Libs.ImageEditingLib.mask_surface import BrushTool, MaskSurface

__all__ = [
    "ImageBitmapRef",
    "Layer",
    "ApplicationState",
    "ImageGeometry",
    "Hotspot",
    "CropRect",
    "CanvasCompositor",
    "ExportOptions",
    "DownloadArtifact",
    "encode_image",
    "make_download_filename",
    "save_download",
    "BrushTool",
    "MaskSurface",
]
