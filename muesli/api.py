"""Blocking HTTP client for the Granola API."""

from __future__ import annotations

import json
import random
import time
from typing import Any
from urllib import error as urlerror
from urllib import request as urlrequest

from . import __version__
from .config import DEFAULT_API_BASE, DEFAULT_THROTTLE_MAX_MS, DEFAULT_THROTTLE_MIN_MS
from .errors import ApiError, NetworkError, ParseError
from .models import DocumentMetadata, DocumentSummary, RawTranscript
from .text import Messages
from .utils import truncate_text

DEFAULT_TIMEOUT = 30.0
USER_AGENT = f"muesli/{__version__} (Python)"
ERROR_PREVIEW_CHARS = 100


def _sleep(seconds: float) -> None:
    time.sleep(seconds)


class ApiClient:
    """Record source backed by the Granola HTTP API.

    Every request is a JSON POST with a bearer token; a random delay between
    ``throttle_min_ms`` and ``throttle_max_ms`` follows each call.
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        *,
        throttle_min_ms: int = DEFAULT_THROTTLE_MIN_MS,
        throttle_max_ms: int = DEFAULT_THROTTLE_MAX_MS,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.token = token
        self.base_url = (base_url or DEFAULT_API_BASE).rstrip("/")
        self.throttle_min_ms = throttle_min_ms
        self.throttle_max_ms = throttle_max_ms
        self.timeout = timeout

    def with_throttle(self, min_ms: int, max_ms: int) -> "ApiClient":
        self.throttle_min_ms = min_ms
        self.throttle_max_ms = max_ms
        return self

    def disable_throttle(self) -> "ApiClient":
        self.throttle_min_ms = 0
        self.throttle_max_ms = 0
        return self

    def _throttle(self) -> None:
        if self.throttle_max_ms > 0:
            delay_ms = random.randint(self.throttle_min_ms, self.throttle_max_ms)
            _sleep(delay_ms / 1000.0)

    def _post(self, endpoint: str, body: dict[str, Any]) -> Any:
        url = f"{self.base_url}{endpoint}"
        data = json.dumps(body).encode("utf-8")
        req = urlrequest.Request(url, data=data, method="POST")
        req.add_header("Authorization", f"Bearer {self.token}")
        req.add_header("Accept", "application/json")
        req.add_header("Content-Type", "application/json")
        req.add_header("User-Agent", USER_AGENT)
        try:
            with urlrequest.urlopen(req, timeout=self.timeout) as response:
                payload = response.read().decode("utf-8", errors="replace")
        except urlerror.HTTPError as exc:
            try:
                detail = exc.read().decode("utf-8", errors="replace")
            except OSError:
                detail = ""
            raise ApiError(
                endpoint,
                exc.code,
                truncate_text(detail.strip(), ERROR_PREVIEW_CHARS),
            ) from exc
        except urlerror.URLError as exc:
            raise NetworkError(
                Messages.ERROR_NETWORK.format(endpoint=endpoint, reason=exc.reason)
            ) from exc
        except (TimeoutError, OSError) as exc:
            raise NetworkError(
                Messages.ERROR_NETWORK.format(endpoint=endpoint, reason=exc)
            ) from exc
        finally:
            self._throttle()
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ParseError(
                Messages.ERROR_PARSE_RESPONSE.format(
                    endpoint=endpoint,
                    reason=f"{exc}; body: {truncate_text(payload, 500)}",
                )
            ) from exc

    def list_documents(self) -> list[DocumentSummary]:
        payload = self._post("/v2/get-documents", {})
        docs = payload.get("docs") if isinstance(payload, dict) else None
        if not isinstance(docs, list):
            raise ParseError(
                Messages.ERROR_PARSE_FIELD.format(field="docs", what="/v2/get-documents")
            )
        return [DocumentSummary.from_dict(item) for item in docs]

    def get_metadata(self, doc_id: str) -> DocumentMetadata:
        payload = self._post("/v1/get-document-metadata", {"document_id": doc_id})
        return DocumentMetadata.from_dict(payload)

    def get_transcript(self, doc_id: str) -> RawTranscript:
        payload = self._post("/v1/get-document-transcript", {"document_id": doc_id})
        return RawTranscript.from_payload(payload)
