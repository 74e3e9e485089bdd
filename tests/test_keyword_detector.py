"""Tests for KeywordDetector."""

import pytest

from mysight.services.image_processor import EncodedImage
from mysight.services.keyword_detector import DetectionOptions, KeywordDetector
from mysight.services.keyword_source import KeywordSource

IMAGE = EncodedImage(mime_type="image/jpeg", data=b"\xff\xd8jpeg")


class FakeSource(KeywordSource):
    def __init__(self, name, keywords=(), error=None):
        self.name = name
        self._keywords = keywords
        self._error = error
        self.calls = 0

    async def extract(self, image, raw=None):
        self.calls += 1
        if self._error:
            raise self._error
        return list(self._keywords)


class TestDetectionOptions:
    """Tests for DetectionOptions."""

    def test_for_api_type(self):
        combined = DetectionOptions.for_api_type("combined", "key")
        assert (combined.use_exif, combined.use_vision, combined.use_inference) == (True, True, True)

        exif = DetectionOptions.for_api_type("exif")
        assert (exif.use_exif, exif.use_vision, exif.use_inference) == (True, False, False)

        google = DetectionOptions.for_api_type("google", "key")
        assert (google.use_exif, google.use_vision, google.use_inference) == (False, True, False)

        huggingface = DetectionOptions.for_api_type("huggingface")
        assert (huggingface.use_exif, huggingface.use_vision, huggingface.use_inference) == (False, False, True)

    def test_unknown_api_type(self):
        with pytest.raises(ValueError):
            DetectionOptions.for_api_type("azure")

    def test_vision_and_inference_are_alternatives(self):
        with_key = DetectionOptions(use_vision=True, use_inference=True, vision_api_key="key")
        without_key = DetectionOptions(use_vision=True, use_inference=True)

        assert with_key.runs_vision and not with_key.runs_inference
        assert not without_key.runs_vision and without_key.runs_inference


class TestKeywordDetector:
    """Tests for KeywordDetector class."""

    def make_detector(self, exif, vision, inference):
        return KeywordDetector(inference=inference, exif=exif, vision_factory=lambda key: vision)

    @pytest.mark.asyncio
    async def test_all_sources_empty(self):
        detector = self.make_detector(FakeSource("exif"), FakeSource("vision"), FakeSource("hf"))

        keywords = await detector.detect(IMAGE, options=DetectionOptions.for_api_type("combined", "key"))

        assert keywords == []

    @pytest.mark.asyncio
    async def test_merges_in_first_seen_order(self):
        exif = FakeSource("exif", ["summer", "day"])
        vision = FakeSource("vision", ["day", "beach"])
        inference = FakeSource("hf", ["sea"])
        detector = self.make_detector(exif, vision, inference)

        keywords = await detector.detect(
            IMAGE,
            options=DetectionOptions(use_exif=True, use_vision=True, vision_api_key="key"),
        )

        assert keywords == ["summer", "day", "beach"]
        # Vision ran, so inference did not
        assert inference.calls == 0

    @pytest.mark.asyncio
    async def test_inference_without_vision_key(self):
        exif = FakeSource("exif", ["winter"])
        vision = FakeSource("vision", ["snow"])
        inference = FakeSource("hf", ["гора", "winter"])
        detector = self.make_detector(exif, vision, inference)

        keywords = await detector.detect(IMAGE, options=DetectionOptions.for_api_type("combined"))

        assert keywords == ["winter", "гора"]
        assert vision.calls == 0

    @pytest.mark.asyncio
    async def test_dedup_is_case_sensitive(self):
        detector = self.make_detector(
            FakeSource("exif", ["Canon", "", "canon"]), FakeSource("vision"), FakeSource("hf"),
        )

        keywords = await detector.detect(IMAGE, options=DetectionOptions.for_api_type("exif"))

        assert keywords == ["Canon", "canon"]

    @pytest.mark.asyncio
    async def test_failing_source_degrades(self):
        exif = FakeSource("exif", error=RuntimeError("corrupt metadata"))
        inference = FakeSource("hf", ["кот"])
        detector = self.make_detector(exif, FakeSource("vision"), inference)

        keywords = await detector.detect(IMAGE, options=DetectionOptions.for_api_type("combined"))

        assert keywords == ["кот"]

    @pytest.mark.asyncio
    async def test_caps_at_fifteen(self):
        exif = FakeSource("exif", [f"k{i}" for i in range(10)])
        inference = FakeSource("hf", [f"k{i}" for i in range(5, 25)])
        detector = self.make_detector(exif, FakeSource("vision"), inference)

        keywords = await detector.detect(IMAGE, options=DetectionOptions.for_api_type("combined"))

        assert keywords == [f"k{i}" for i in range(15)]

    @pytest.mark.asyncio
    async def test_vision_factory_receives_key(self):
        keys = []

        def factory(key):
            keys.append(key)
            return FakeSource("vision", ["sky"])

        detector = KeywordDetector(inference=FakeSource("hf"), exif=FakeSource("exif"), vision_factory=factory)

        await detector.detect(IMAGE, options=DetectionOptions.for_api_type("google", "secret"))

        assert keys == ["secret"]
