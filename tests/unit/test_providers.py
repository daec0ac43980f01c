from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest

from muesli.errors import AuthError, EmbeddingError
from muesli.providers import local as local_provider
from muesli.providers import openai as openai_provider
from muesli.providers.local import LocalEmbeddingBackend, known_dimension
from muesli.providers.openai import MAX_RETRIES, OpenAIEmbeddingBackend


def _patch_openai(monkeypatch, create):
    captured = {}

    class DummyClient:
        def __init__(self, **kwargs):
            captured["client"] = kwargs
            self.embeddings = SimpleNamespace(create=create)

    monkeypatch.setattr(openai_provider, "load_dotenv", lambda: None)
    monkeypatch.setattr(openai_provider, "OpenAI", DummyClient)
    return captured


def test_openai_backend_sends_texts_in_one_request(monkeypatch):
    requests = []

    def create(**kwargs):
        requests.append(kwargs)
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])

    captured = _patch_openai(monkeypatch, create)

    backend = OpenAIEmbeddingBackend(model_name="text-embedding-3-small", api_key="sk-test")
    vectors = backend.embed(["passage"])

    assert captured["client"] == {"api_key": "sk-test", "max_retries": MAX_RETRIES}
    assert requests == [{"model": "text-embedding-3-small", "input": ["passage"]}]
    assert vectors.shape == (1, 3)
    assert vectors.dtype == np.float32


def test_openai_backend_requires_key(monkeypatch):
    _patch_openai(monkeypatch, lambda **_: None)

    with pytest.raises(AuthError):
        OpenAIEmbeddingBackend(model_name="text-embedding-3-small", api_key=None)


def test_openai_backend_wraps_api_errors(monkeypatch):
    def create(**kwargs):
        raise RuntimeError("rate limited")

    _patch_openai(monkeypatch, create)
    backend = OpenAIEmbeddingBackend(model_name="m", api_key="sk-test")

    with pytest.raises(EmbeddingError, match="OpenAI API request failed: rate limited"):
        backend.embed(["x"])


def test_openai_backend_rejects_empty_response(monkeypatch):
    _patch_openai(monkeypatch, lambda **_: SimpleNamespace(data=[]))
    backend = OpenAIEmbeddingBackend(model_name="m", api_key="sk-test")

    with pytest.raises(EmbeddingError, match="no embeddings"):
        backend.embed(["x"])
    assert backend.embed([]).size == 0


class FakeTextEmbedding:
    created: list[dict] = []

    def __init__(self, **kwargs):
        FakeTextEmbedding.created.append(kwargs)

    def embed(self, texts):
        for text in texts:
            yield np.full(4, float(len(text)))


def test_local_backend_embeds_with_cache_dir(monkeypatch, tmp_path):
    FakeTextEmbedding.created = []
    monkeypatch.setattr(local_provider, "_load_fastembed", lambda: FakeTextEmbedding)
    cache_dir = tmp_path / "models"

    backend = LocalEmbeddingBackend(model_name="intfloat/multilingual-e5-small", cache_dir=cache_dir)
    vectors = backend.embed(["abc"])

    assert cache_dir.is_dir()
    assert FakeTextEmbedding.created == [
        {"model_name": "intfloat/multilingual-e5-small", "cache_dir": str(cache_dir)}
    ]
    assert vectors.tolist() == [[3.0, 3.0, 3.0, 3.0]]


def test_local_backend_load_failure(monkeypatch, tmp_path):
    class BrokenTextEmbedding:
        def __init__(self, **kwargs):
            raise RuntimeError("download failed")

    monkeypatch.setattr(local_provider, "_load_fastembed", lambda: BrokenTextEmbedding)

    with pytest.raises(EmbeddingError, match="download failed"):
        LocalEmbeddingBackend(model_name="other/model", cache_dir=tmp_path)


def test_local_backend_wraps_embed_failure(monkeypatch, tmp_path):
    class FailingModel(FakeTextEmbedding):
        def embed(self, texts):
            raise RuntimeError("onnx crashed")

    monkeypatch.setattr(local_provider, "_load_fastembed", lambda: FailingModel)
    backend = LocalEmbeddingBackend(model_name="other/model", cache_dir=tmp_path)

    with pytest.raises(EmbeddingError, match="Local embedding failed: onnx crashed"):
        backend.embed(["x"])


def test_known_dimension():
    assert known_dimension("intfloat/multilingual-e5-small") == 384
    assert known_dimension("unknown/model") is None
