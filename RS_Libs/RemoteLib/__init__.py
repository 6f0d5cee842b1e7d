"""
RemoteLib - Generative model access

This module wraps the model proxy: the HTTP transport, response parsing,
concurrent variant fan-out and one service method per editing capability.
"""

from RS_Libs.RemoteLib.proxy_client import ProxyClient
from RS_Libs.RemoteLib.response_parser import extract_image, extract_text
from RS_Libs.RemoteLib.fan_out import VariantResult, run_variants
from RS_Libs.RemoteLib.generative_service import GenerativeService, Suggestion

__all__ = [
    "ProxyClient",
    "extract_image",
    "extract_text",
    "VariantResult",
    "run_variants",
    "GenerativeService",
    "Suggestion",
]
