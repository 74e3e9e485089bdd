"""Tests for the Hugging Face keyword source."""

import json
import threading
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from mysight.errors import UpstreamError
from mysight.services.huggingface_service import (
    Classification,
    HuggingFaceService,
    classify_response,
    is_cross_origin_block,
    is_restricted_origin,
    normalize_label,
)
from mysight.services.image_processor import EncodedImage
from mysight.services.keyword_source import KeywordSource
from mysight.services.translation_service import TranslationService

PROXY_URL = "http://proxy.test/api/huggingface"

IMAGE = EncodedImage(mime_type="image/jpeg", data=b"\xff\xd8jpeg")


class StaticSource(KeywordSource):
    name = "static"

    def __init__(self, keywords):
        self._keywords = keywords
        self.calls = 0

    async def extract(self, image, raw=None):
        self.calls += 1
        return list(self._keywords)


def make_service(handler, models=("model/a", "model/b"), origin=None, fallback=None):
    return HuggingFaceService(
        proxy_url=PROXY_URL,
        models=list(models),
        translator=TranslationService(),
        fallback=fallback or StaticSource(["fallback"]),
        origin=origin,
        warmup_backoff=0,
        transport=httpx.MockTransport(handler),
    )


class TestResponseShapes:
    """Tests for classify_response and label helpers."""

    def test_list_of_objects(self):
        data = [{"label": "dog", "score": 0.9}, {"label": "cat", "score": 0.1}]

        assert classify_response(data) == [Classification("dog", 0.9), Classification("cat", 0.1)]

    def test_nested_list(self):
        data = [[{"label": "dog", "score": 0.9}]]

        assert classify_response(data) == [Classification("dog", 0.9)]

    def test_list_of_strings(self):
        assert classify_response(["dog", "cat"]) == [Classification("dog"), Classification("cat")]

    def test_single_object(self):
        assert classify_response({"label": "dog", "score": 1}) == [Classification("dog", 1.0)]

    def test_unknown_shapes(self):
        assert classify_response({"error": "loading"}) == []
        assert classify_response("dog") == []
        assert classify_response(None) == []
        assert classify_response([]) == []

    def test_normalize_label(self):
        assert normalize_label("n02119789_Kit_Fox") == "kit fox"
        assert normalize_label("Golden retriever") == "golden retriever"

    def test_restricted_origin(self):
        assert is_restricted_origin("file:///home/me/index.html")
        assert is_restricted_origin("http://localhost:8000")
        assert not is_restricted_origin("https://mysight.example.com")
        assert not is_restricted_origin(None)

    def test_cross_origin_block(self):
        assert is_cross_origin_block(Exception("Failed to fetch"))
        assert is_cross_origin_block(Exception("net::ERR_FAILED"))
        assert not is_cross_origin_block(Exception("timed out"))


class TestToKeywords:
    """Tests for turning classifications into keywords."""

    def test_sorted_by_score_and_translated(self):
        service = make_service(lambda request: httpx.Response(500))
        data = [{"label": "n02119789_fox", "score": 0.9}, {"label": "dog", "score": 0.95}]

        assert service.to_keywords(classify_response(data)) == ["собака", "fox"]

    def test_keeps_order_without_scores(self):
        service = make_service(lambda request: httpx.Response(500))

        assert service.to_keywords(classify_response(["tree", "cat"])) == ["дерево", "кот"]

    def test_caps_keywords(self):
        service = make_service(lambda request: httpx.Response(500))
        data = [{"label": f"label{i}", "score": 1 - i / 100} for i in range(20)]

        keywords = service.to_keywords(classify_response(data))

        assert keywords == [f"label{i}" for i in range(8)]


class TestHuggingFaceService:
    """Tests for HuggingFaceService.extract."""

    @pytest.mark.asyncio
    async def test_first_answering_model_wins(self):
        requests = []

        def handler(request):
            body = json.loads(request.content)
            requests.append(body)
            return httpx.Response(200, json=[{"label": "cat", "score": 0.8}])

        service = make_service(handler)

        keywords = await service.keywords(IMAGE)

        assert keywords == ["кот"]
        assert len(requests) == 1
        assert requests[0] == {"model": "model/a", "imageBase64": IMAGE.payload}

    @pytest.mark.asyncio
    async def test_skips_unavailable_models(self):
        statuses = iter([503, 404, 401, 200])
        seen = []

        def handler(request):
            seen.append(json.loads(request.content)["model"])
            status = next(statuses)
            if status == 200:
                return httpx.Response(200, json=[{"label": "beach", "score": 0.7}])
            return httpx.Response(status, json={"error": "unavailable"})

        service = make_service(handler, models=["m1", "m2", "m3", "m4"])

        assert await service.keywords(IMAGE) == ["пляж"]
        # Each model is tried once; a warming-up model is not retried
        assert seen == ["m1", "m2", "m3", "m4"]

    @pytest.mark.asyncio
    async def test_warmup_waits_backoff(self, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr("mysight.services.huggingface_service.asyncio.sleep", sleep)

        service = make_service(lambda request: httpx.Response(503, text="loading"), models=["m1"])
        service.warmup_backoff = 5.0

        await service.keywords(IMAGE)

        sleep.assert_awaited_once_with(5.0)

    @pytest.mark.asyncio
    async def test_classify_raises_upstream_error(self):
        service = make_service(lambda request: httpx.Response(500, text="boom"))

        async with httpx.AsyncClient(transport=service.transport) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await service._classify(client, "model/a", IMAGE.payload)

        assert exc_info.value.status == 500
        assert exc_info.value.details == "boom"

    @pytest.mark.asyncio
    async def test_translation_runs_off_event_loop(self):
        threads = []

        def translate(label):
            threads.append(threading.get_ident())
            return label

        translator = Mock(spec=TranslationService)
        translator.translate.side_effect = translate

        service = make_service(lambda request: httpx.Response(200, json=["cat"]))
        service.translator = translator

        keywords = await service.keywords(IMAGE)

        assert keywords == ["cat"]
        assert threads and threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_all_models_fail_uses_fallback(self):
        fallback = StaticSource(["зеленый", "природа"])
        service = make_service(lambda request: httpx.Response(500, text="boom"), fallback=fallback)

        assert await service.keywords(IMAGE) == ["зеленый", "природа"]
        assert fallback.calls == 1

    @pytest.mark.asyncio
    async def test_empty_labels_try_next_model(self):
        responses = iter([httpx.Response(200, json=[]), httpx.Response(200, json=["sky"])])
        service = make_service(lambda request: next(responses))

        assert await service.keywords(IMAGE) == ["небо"]

    @pytest.mark.asyncio
    async def test_invalid_json_tries_next_model(self):
        responses = iter([httpx.Response(200, text="<html>"), httpx.Response(200, json=["sky"])])
        service = make_service(lambda request: next(responses))

        assert await service.keywords(IMAGE) == ["небо"]

    @pytest.mark.asyncio
    async def test_transport_error_skips_model(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json=["dog"])

        service = make_service(handler)

        assert await service.keywords(IMAGE) == ["собака"]

    @pytest.mark.asyncio
    async def test_cross_origin_block_on_restricted_origin_aborts(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("Failed to fetch (CORS)")

        fallback = StaticSource(["fallback"])
        service = make_service(handler, origin="http://localhost:8000", fallback=fallback)

        assert await service.keywords(IMAGE) == ["fallback"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cross_origin_block_elsewhere_skips_model(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("Failed to fetch")

        service = make_service(handler, origin="https://mysight.example.com")

        assert await service.keywords(IMAGE) == ["fallback"]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_file_origin_skips_network(self):
        handler = Mock(side_effect=AssertionError("no request expected"))
        service = make_service(handler, origin="file:///home/me/index.html")

        assert await service.keywords(IMAGE) == ["fallback"]
        handler.assert_not_called()
