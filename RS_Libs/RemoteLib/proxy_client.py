"""
Proxy transport for the generative model.

The proxy exposes a single POST endpoint that accepts the exact model
request payload and answers either with the raw model response or with
`{"error": {"message": ...}}` and a non-2xx status.
"""

from typing import Any, Dict, Optional
import logging

import requests

from RS_Libs.constants import DEFAULT_PROXY_URL, DEFAULT_REQUEST_TIMEOUT
from RS_Libs.errors import NetworkError

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "The API request failed with an unknown error."


class ProxyClient:
    """
    Callable transport: `client(payload) -> response dict`.

    Args:
        url: Proxy endpoint
        timeout: Request timeout in seconds
        session: Optional requests.Session (shared connection pool)
    """

    def __init__(
        self,
        url: str = DEFAULT_PROXY_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not str(url).strip():
            raise ValueError("url cannot be empty")
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a payload through the proxy.

        Raises:
            NetworkError: On connection failure, non-2xx status or a non-JSON body
        """
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Proxy request to {self.url} failed: {e}")
            raise NetworkError(f"Could not reach the editing service. {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.ok:
            message = None
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                message = data["error"].get("message")
            logger.error(f"Proxy returned {response.status_code}: {message or GENERIC_FAILURE}")
            raise NetworkError(message or GENERIC_FAILURE, status_code=response.status_code)

        if not isinstance(data, dict):
            raise NetworkError("The editing service returned an unreadable response.",
                               status_code=response.status_code)
        return data

    __call__ = post

    def close(self) -> None:
        self._session.close()
