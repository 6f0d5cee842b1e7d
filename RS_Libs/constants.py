"""
Constants and configuration values for Retouch Studio.

This module centralizes all constant values, magic numbers, and
configuration settings used throughout the editing core.
"""

# History labels
ORIGINAL_DESCRIPTION = "Original Image"
LABEL_GENERATE_LAYER = "Generate Layer"
LABEL_UPDATE_LAYER = "Update Layer"
LABEL_DELETE_LAYER = "Delete Layer"
LABEL_REORDER_LAYERS = "Reorder Layers"
LABEL_REMOVE_OBJECT = "Remove Object"
LABEL_APPLY_CROP = "Apply Crop"
LABEL_SMART_BACKGROUND = "Apply Smart Background"
LABEL_PROFILE_PICTURE = "Apply Profile Picture Design"
LABEL_UNCROP = "Uncrop & Reimagine"
LABEL_EXPAND = "Generative Expand"
LABEL_STYLE_TRANSFER = "Apply Style Transfer"

# Entitlement
FREE_TIER_EDIT_LIMIT = 15
FREE_TIER_STARTING_CREDITS = 5
KEY_SESSION = "rs-studio-session"
KEY_IS_PRO = "rs-studio-isPro"
KEY_CREDITS = "rs-studio-credits"
KEY_MONTHLY_EDITS = "rs-studio-monthlyEdits"
DEFAULT_ENTITLEMENT_FILE = "entitlement.json"

# Remote model
IMAGE_MODEL = "gemini-2.5-flash-image-preview"
TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_PROXY_URL = "http://localhost:3000/api/geminiProxy"
DEFAULT_REQUEST_TIMEOUT = 120.0
DEFAULT_MAX_WORKERS = 4
FINISH_REASON_STOP = "STOP"

# Compositing
COLLAGE_GAP = 8
COLLAGE_BACKGROUND = "#161928"
COLLAGE_LABEL_BACKGROUND = (0, 0, 0, 153)
COLLAGE_LABEL_COLOR = (255, 255, 255, 255)
COLLAGE_LABEL_RADIUS = 10
COLLAGE_MIN_FONT_SIZE = 24

WATERMARK_TEXT = "Made with Retouch Studio"
WATERMARK_FILL = (255, 255, 255, 178)
WATERMARK_STROKE = (0, 0, 0, 128)

# Mask painting
DEFAULT_BRUSH_SIZE = 30
MASK_PAINT_COLOR = (255, 0, 0, 128)
MASK_CLEAR_COLOR = (0, 0, 0, 0)

# Export
DEFAULT_OUTPUT_FORMAT = "PNG"
DEFAULT_JPEG_QUALITY = 90
SUPPORTED_EXPORT_FORMATS = {"png", "jpeg"}
NOISE_REDUCTION_LEVELS = ("off", "subtle", "moderate", "strong")
DOWNLOAD_CATEGORY_EDIT = "rs-studio-edit"
DOWNLOAD_CATEGORY_COMPARISON = "rs-studio-comparison"

# MIME types
MIME_PNG = "image/png"
MIME_JPEG = "image/jpeg"
FORMAT_TO_MIME = {
    "PNG": MIME_PNG,
    "JPEG": MIME_JPEG,
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}

# Supported upload formats
SUPPORTED_STANDARD_IMAGES = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tiff", ".webp"}
