"""
Unit tests for the generative service.

A fake transport stands in for the proxy and records each payload.
"""

import base64
import json

import pytest

from RS_Libs.constants import IMAGE_MODEL, TEXT_MODEL
from RS_Libs.errors import (
    CompositeFailure,
    NetworkError,
    RemoteBlockError,
    RemoteEmptyResultError,
    ValidationError,
)
from RS_Libs.ImageEditingLib.image_models import Hotspot
from RS_Libs.RemoteLib.generative_service import (
    DEFAULT_BACKGROUND_STYLES,
    PROFILE_PICTURE_STYLES,
    GenerativeService,
    Suggestion,
)


class TestRequests:

    def test_edit_with_hotspot(self, service, fake_transport, make_bitmap):
        image = make_bitmap((64, 48))
        result = service.edit(image, "add a hat", hotspot=Hotspot(10, 12))

        assert result.size == (64, 48)
        payload = fake_transport.payloads[0]
        assert payload["model"] == IMAGE_MODEL
        parts = payload["contents"]["parts"]
        assert len(parts) == 2
        assert base64.b64decode(parts[0]["inlineData"]["data"]) == image.data
        assert "add a hat" in parts[-1]["text"]
        assert "x: 10, y: 12" in parts[-1]["text"]

    def test_edit_with_mask_sends_both_images(self, service, fake_transport, make_bitmap):
        service.edit(make_bitmap(), "a cat", mask=make_bitmap(color=(255, 0, 0, 128)))
        parts = fake_transport.payloads[0]["contents"]["parts"]
        assert [("inlineData" in part) for part in parts] == [True, True, False]

    def test_edit_requires_selection(self, service, fake_transport, make_bitmap):
        with pytest.raises(ValidationError):
            service.edit(make_bitmap(), "a cat")
        assert fake_transport.call_count == 0

    def test_blocked_edit(self, service, fake_transport, make_bitmap, responses):
        fake_transport.queue(responses.blocked("SAFETY"))
        with pytest.raises(RemoteBlockError):
            service.apply_filter(make_bitmap(), "noir")

    def test_network_error_propagates(self, service, fake_transport, make_bitmap):
        fake_transport.queue(NetworkError("down"))
        with pytest.raises(NetworkError):
            service.upscale(make_bitmap())

    def test_parameter_ranges(self, service, make_bitmap):
        with pytest.raises(ValueError):
            service.sharpen(make_bitmap(), 101)
        with pytest.raises(ValueError):
            service.reduce_noise(make_bitmap(), "off")
        with pytest.raises(ValueError):
            service.transfer_style(make_bitmap(), make_bitmap(), -1)

    def test_generative_expand_sends_canvas_and_mask(self, service, fake_transport, make_bitmap):
        result = service.generative_expand(make_bitmap((10, 10)), 30, 20, 10, 5)

        assert result.size == (30, 20)
        parts = fake_transport.payloads[0]["contents"]["parts"]
        assert len(parts) == 3

    def test_single_image_operations(self, service, fake_transport, make_bitmap):
        image = make_bitmap((20, 20))
        calls = [
            lambda: service.global_edit(image),
            lambda: service.global_edit(image, "warmer", Hotspot(1, 2)),
            lambda: service.remove_object(image, make_bitmap((20, 20))),
            lambda: service.auto_portrait_enhance(image),
            lambda: service.passport_photo(image),
            lambda: service.remove_background(image),
            lambda: service.beautify_background(image),
            lambda: service.add_shadow(image, "soft drop shadow"),
            lambda: service.generate_mask_for_object(image, Hotspot(5, 5)),
            lambda: service.generate_background(image, "a beach"),
            lambda: service.uncrop_and_reimagine(image, "16:9"),
            lambda: service.sharpen(image, 50),
            lambda: service.reduce_noise(image, "moderate"),
        ]
        for call in calls:
            assert call().size == (20, 20)
        assert fake_transport.call_count == len(calls)

    def test_transport_must_be_callable(self):
        with pytest.raises(ValueError):
            GenerativeService("not callable")


class TestVariants:

    def test_background_variants(self, service, make_bitmap):
        results = service.generate_background_variants(make_bitmap())
        assert [r.description for r in results] == [name for name, _ in DEFAULT_BACKGROUND_STYLES]

    def test_partial_failure_keeps_successes(self, service, fake_transport, make_bitmap, responses):
        def by_style(payload):
            if "mountain vista" in json.dumps(payload):
                return responses.blocked()
            return fake_transport.default(payload)

        fake_transport.queue(*([by_style] * len(PROFILE_PICTURE_STYLES)))
        results = service.generate_profile_pictures(make_bitmap())

        assert "Scenic" not in [r.description for r in results]
        assert len(results) == len(PROFILE_PICTURE_STYLES) - 1

    def test_all_variants_failing(self, service, fake_transport, make_bitmap, responses):
        fake_transport.queue(*([responses.blocked()] * len(DEFAULT_BACKGROUND_STYLES)))
        with pytest.raises(CompositeFailure) as excinfo:
            service.generate_background_variants(make_bitmap())
        assert "background options" in str(excinfo.value)


class TestTextHelpers:

    def test_enhance_prompt_returns_last_line(self, service, fake_transport, responses):
        fake_transport.queue(responses.text("Here you go:\n\nA detailed prompt"))
        assert service.enhance_prompt("hat") == "A detailed prompt"
        assert fake_transport.payloads[0]["model"] == TEXT_MODEL

    def test_enhance_prompt_blank(self, service, fake_transport):
        assert service.enhance_prompt("   ") == ""
        assert fake_transport.call_count == 0

    def test_enhance_prompt_falls_back(self, service, fake_transport):
        fake_transport.queue(NetworkError("down"))
        assert service.enhance_prompt("hat") == "hat"

    def test_suggestions(self, service, fake_transport, make_bitmap, responses):
        items = [{"title": "Warm", "prompt": "warm it"}, {"title": "", "prompt": "skip"}]
        fake_transport.queue(responses.text(json.dumps(items)))

        suggestions = service.get_suggestions(make_bitmap())

        assert suggestions == [Suggestion("Warm", "warm it")]
        assert fake_transport.payloads[0]["config"]["responseMimeType"] == "application/json"

    @pytest.mark.parametrize("body", ["not json", "[]", '{"title": "x"}'])
    def test_bad_suggestions(self, service, fake_transport, make_bitmap, responses, body):
        fake_transport.queue(responses.text(body))
        with pytest.raises(RemoteEmptyResultError) as excinfo:
            service.get_suggestions(make_bitmap())
        assert str(excinfo.value) == "The AI was unable to provide suggestions for this image."
