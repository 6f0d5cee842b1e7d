"""
Runtime configuration for Retouch Studio.

Classes:
    StudioConfig: Settings for the proxy transport, fan-out and persistence

Functions:
    load_config: Load a StudioConfig from a JSON file with env overrides
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging
import os

from RS_Libs.constants import (
    DEFAULT_PROXY_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_MAX_WORKERS,
    DEFAULT_ENTITLEMENT_FILE,
    WATERMARK_TEXT,
)

logger = logging.getLogger(__name__)

ENV_PROXY_URL = "RS_PROXY_URL"


@dataclass
class StudioConfig:
    """Configuration for an editor session.

    Attributes:
        proxy_url: POST endpoint of the generative model proxy
        request_timeout: Seconds before a proxy request is abandoned
        max_workers: Thread count for fan-out operations (variants)
        entitlement_path: JSON file holding persisted entitlement flags
        watermark_text: Text drawn on exports when watermarking is enabled
    """
    proxy_url: str = DEFAULT_PROXY_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    entitlement_path: str = DEFAULT_ENTITLEMENT_FILE
    watermark_text: str = WATERMARK_TEXT

    def __post_init__(self):
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudioConfig":
        """Create from dictionary, ignoring unknown keys."""
        filtered = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**filtered)


def load_config(path: Optional[Path] = None) -> StudioConfig:
    """
    Load configuration from a JSON file.

    Missing or unreadable files fall back to defaults. The RS_PROXY_URL
    environment variable overrides the proxy URL in either case.

    Args:
        path: Optional path to a JSON configuration file

    Returns:
        A StudioConfig instance
    """
    data: Dict[str, Any] = {}
    if path is not None:
        try:
            loaded = json.loads(Path(path).read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                data = loaded
            else:
                logger.warning(f"Ignoring non-object config in {path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read config {path}: {e}")

    env_url = os.environ.get(ENV_PROXY_URL)
    if env_url:
        data["proxy_url"] = env_url

    return StudioConfig.from_dict(data)
