"""
Pytest configuration and shared fixtures for Retouch Studio tests.

This module provides shared test fixtures used across multiple test modules:
bitmap factories, a temporary entitlement store and a fake model transport
that answers with Gemini-shaped responses.
"""

import base64
import threading
from io import BytesIO

import pytest
from PIL import Image

from RS_Libs.constants import TEXT_MODEL
from RS_Libs.EntitlementLib.entitlement_gate import EntitlementGate
from RS_Libs.EntitlementLib.entitlement_store import EntitlementStore
from RS_Libs.ImageEditingLib.image_models import ImageBitmapRef
from RS_Libs.RemoteLib.generative_service import GenerativeService
from RS_Libs.SessionLib.editor_session import EditorSession


def _bitmap(size=(100, 100), color=(0, 0, 255, 255)):
    return ImageBitmapRef.from_image(Image.new("RGBA", size, color))


def image_response(bitmap):
    """Model response carrying one inline image."""
    return {
        "candidates": [{
            "content": {"parts": [{"inlineData": {
                "mimeType": bitmap.mime_type,
                "data": base64.b64encode(bitmap.data).decode("ascii"),
            }}]},
            "finishReason": "STOP",
        }]
    }


def text_response(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


def blocked_response(reason="SAFETY", message=""):
    return {"promptFeedback": {"blockReason": reason, "blockReasonMessage": message}}


class FakeTransport:
    """
    Stand-in for the proxy client.

    Queued items are consumed first (dicts are returned, exceptions raised,
    callables called with the payload). With an empty queue image requests
    are answered with a solid image the size of the first inline image, and
    text requests with "ok".
    """

    def __init__(self, color=(255, 0, 0, 128)):
        self.color = color
        self.payloads = []
        self._queue = []
        self._lock = threading.Lock()

    def queue(self, *items):
        self._queue.extend(items)

    @property
    def call_count(self):
        return len(self.payloads)

    def __call__(self, payload):
        with self._lock:
            self.payloads.append(payload)
            item = self._queue.pop(0) if self._queue else None

        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(payload)
        if item is not None:
            return item
        return self.default(payload)

    def default(self, payload):
        if payload["model"] == TEXT_MODEL:
            return text_response("ok")
        first = payload["contents"]["parts"][0]["inlineData"]
        size = Image.open(BytesIO(base64.b64decode(first["data"]))).size
        return image_response(_bitmap(size, self.color))


@pytest.fixture
def make_bitmap():
    """
    Factory for solid-color PNG bitmaps.

    Returns:
        Callable(size=(100, 100), color=(0, 0, 255, 255)) -> ImageBitmapRef
    """
    return _bitmap


@pytest.fixture
def responses():
    """Builders for model responses (image, text, blocked)."""
    class Responses:
        image = staticmethod(image_response)
        text = staticmethod(text_response)
        blocked = staticmethod(blocked_response)
    return Responses


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def entitlement_store(tmp_path):
    """Open entitlement store backed by a temporary file, signed in."""
    store = EntitlementStore(tmp_path / "entitlement.json").open()
    store.sign_in()
    yield store
    store.close()


@pytest.fixture
def service(fake_transport):
    return GenerativeService(fake_transport, max_workers=4)


@pytest.fixture
def session(service, entitlement_store):
    editor = EditorSession(service, EntitlementGate(entitlement_store))
    yield editor
    editor.close()
