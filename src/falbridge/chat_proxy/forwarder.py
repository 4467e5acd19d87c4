from __future__ import annotations

import json
import logging
import time
from typing import Any, AsyncIterator, Mapping, Optional, Tuple

import httpx
from fastapi.responses import Response, StreamingResponse

from .config import DEFAULT_TABLES, ProxyConfig, RoutingTables
from .errors import err_proxy_transport
from .logging_utils import JsonlLogger
from .normalization import transform_image_response
from .request_normalizer import normalize_request

logger = logging.getLogger(__name__)

BODY_METHODS = {"POST", "PUT"}
RATE_LIMIT_HEADERS = (
    "x-ratelimit-limit",
    "x-ratelimit-remaining",
    "x-ratelimit-reset",
)
_AUTH_PREFIXES = ("Bearer ", "Key ")


def extract_api_key(authorization: Optional[str], default: Optional[str]) -> str:
    """Return the caller's key from ``Bearer``/``Key`` auth, else ``default``."""
    header = authorization or ""
    for prefix in _AUTH_PREFIXES:
        if header.startswith(prefix):
            return header[len(prefix) :]
    return default or ""


def build_target_url(base_url: str, path: str, query: str = "") -> str:
    if path == "/v1" or path.startswith("/v1/"):
        path = path[len("/v1") :]
    url = base_url.rstrip("/") + path
    if query:
        url = f"{url}?{query}"
    return url


def upstream_headers(api_key: str, inbound: Mapping[str, str]) -> dict[str, str]:
    """Headers sent upstream; everything else from the caller is dropped."""
    headers = {
        "Authorization": f"Key {api_key}",
        "Content-Type": "application/json",
        "Accept": inbound.get("accept") or "application/json",
    }
    user_agent = inbound.get("user-agent")
    if user_agent:
        headers["User-Agent"] = user_agent
    return headers


class ProxyForwarder:
    def __init__(
        self,
        cfg: ProxyConfig,
        client: httpx.AsyncClient,
        request_log: JsonlLogger | None = None,
        tables: RoutingTables = DEFAULT_TABLES,
    ):
        self.cfg = cfg
        self.client = client
        self.request_log = request_log
        self.tables = tables

    def prepare_body(self, raw: bytes) -> Tuple[bytes, Optional[str]]:
        """Normalize a JSON object body; anything else is forwarded verbatim."""
        try:
            parsed = json.loads(raw)
        except ValueError:
            return raw, None
        if not isinstance(parsed, dict):
            return raw, None
        normalized = normalize_request(parsed, self.tables)
        body = json.dumps(normalized, ensure_ascii=False, separators=(",", ":"))
        model = normalized.get("model")
        return body.encode("utf-8"), model if isinstance(model, str) else None

    def _response_headers(self, resp: httpx.Response) -> dict[str, str]:
        headers: dict[str, str] = {}
        content_type = resp.headers.get("content-type")
        if content_type:
            headers["Content-Type"] = content_type
        for name in RATE_LIMIT_HEADERS:
            value = resp.headers.get(name)
            if value:
                headers[name] = value
        return headers

    def _log(
        self,
        method: str,
        path: str,
        model: Any,
        status: int,
        stream: bool,
        started: float,
    ):
        if self.request_log is None:
            return
        self.request_log.log_request(
            method,
            path,
            status,
            model=model if isinstance(model, str) else None,
            stream=stream,
            started=started,
        )

    async def _relay(self, resp: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.aiter_bytes():
                yield chunk
        except httpx.HTTPError as exc:
            # Headers are already sent; the caller just sees the stream end
            logger.warning("[forwarder] Upstream stream aborted: %s", exc)
        finally:
            await resp.aclose()

    async def forward(
        self,
        method: str,
        path: str,
        query: str,
        inbound_headers: Mapping[str, str],
        raw_body: bytes,
        api_key: str,
    ) -> Response:
        started = time.time()
        url = build_target_url(self.cfg.upstream_base_url, path, query)
        content: bytes | None = None
        model = None
        if method in BODY_METHODS:
            content, model = self.prepare_body(raw_body)

        request = self.client.build_request(
            method,
            url,
            headers=upstream_headers(api_key, inbound_headers),
            content=content,
        )
        try:
            resp = await self.client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error("[forwarder] %s %s failed: %s", method, url, exc)
            raise err_proxy_transport(str(exc) or type(exc).__name__) from exc

        content_type = resp.headers.get("content-type", "")
        headers = self._response_headers(resp)

        if "text/event-stream" in content_type:
            self._log(method, path, model, resp.status_code, True, started)
            return StreamingResponse(
                self._relay(resp), status_code=resp.status_code, headers=headers
            )

        try:
            data = await resp.aread()
        except httpx.HTTPError as exc:
            logger.error("[forwarder] Reading %s %s failed: %s", method, url, exc)
            raise err_proxy_transport(str(exc) or type(exc).__name__) from exc
        finally:
            await resp.aclose()

        self._log(method, path, model, resp.status_code, False, started)
        if "application/json" in content_type:
            try:
                parsed = json.loads(data)
            except ValueError:
                logger.debug("[forwarder] Upstream JSON unparseable; relaying raw")
            else:
                data = json.dumps(
                    transform_image_response(parsed), ensure_ascii=False
                ).encode("utf-8")
        return Response(content=data, status_code=resp.status_code, headers=headers)
