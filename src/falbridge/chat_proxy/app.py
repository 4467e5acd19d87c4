from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from .billing import BILLING_FORMATS, BalanceClient
from .catalog import ModelCatalog
from .config import DEFAULT_TABLES, ProxyConfig
from .errors import err_missing_api_key, err_unauthorized
from .forwarder import ProxyForwarder, extract_api_key
from .logging_utils import JsonlLogger
from .models import ASPECT_RATIOS, IMAGE_SIZES, error_envelope

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Max-Age": "86400",
}
FORWARD_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]


_cfg = ProxyConfig.load()
_client = httpx.AsyncClient(timeout=_cfg.upstream_timeout_s)
_request_log = JsonlLogger(
    _cfg.log_path, _cfg.max_log_bytes, enabled=_cfg.log_requests
)
_catalog = ModelCatalog(_cfg, _client)
_billing = BalanceClient(_cfg, _client)
_forwarder = ProxyForwarder(_cfg, _client, _request_log, DEFAULT_TABLES)

app = FastAPI(title="falbridge", version=__version__)


def _json(content, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


@app.middleware("http")
async def _cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if not (isinstance(detail, dict) and "error" in detail):
        err_type = "invalid_request" if exc.status_code < 500 else "proxy_error"
        detail = error_envelope(str(detail), err_type)
    return _json(detail, exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    message = f"Invalid request: {exc.errors()}"
    return _json(error_envelope(message, "invalid_request"), 400)


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.exception(
        "[app] Unhandled error on %s %s", request.method, request.url.path
    )
    return _json(error_envelope(f"Proxy error: {exc}", "proxy_error"), 502)


@app.on_event("shutdown")
async def _shutdown():  # pragma: no cover
    await _client.aclose()


def _api_key(request: Request) -> str:
    return extract_api_key(request.headers.get("authorization"), _cfg.default_api_key)


def _raw_path(request: Request) -> str:
    """Inbound path with its percent-encoding intact (%2F stays one segment)."""
    raw = request.scope.get("raw_path")
    if not raw:
        return request.url.path
    return raw.split(b"?", 1)[0].decode("latin-1")


@app.get("/")
async def service_info(request: Request):
    tables = DEFAULT_TABLES
    return _json(
        {
            "service": "falbridge",
            "version": __version__,
            "usage": {
                "base_url": f"{str(request.base_url).rstrip('/')}/v1",
                "api_key": "your-fal-api-key",
                "example": (
                    "client = OpenAI(base_url='<this url>/v1', api_key='your-fal-key')"
                ),
            },
            "endpoints": [
                "/v1/chat/completions",
                "/v1/embeddings",
                "/v1/models",
                "/v1/responses",
                "/v1/dashboard/billing/subscription",
                "/v1/dashboard/billing/credit_grants",
                "/v1/dashboard/billing/usage",
            ],
            "features": [
                "Thinking model routing (xxx-thinking -> xxx + reasoning.enabled)",
                "Image models get modalities=['image', 'text'] automatically",
                "Smart image_config for tested image models, inferred from the prompt",
                "Generated images returned as markdown (first image only)",
                "Model list merged with the image model catalog",
                "Streaming responses relayed without time limits",
            ],
            "thinking_models": dict(tables.thinking_aliases),
            "image_config": {
                "enabled_models": list(tables.smart_config_models),
                "defaults": tables.image_defaults.model_dump(),
                "prompt_keywords": {
                    "resolution": list(IMAGE_SIZES),
                    "aspect_ratio": list(ASPECT_RATIOS)
                    + ["landscape", "portrait", "square"],
                },
                "priority": "prompt > request > default",
            },
            "docs": "https://fal.ai/models/openrouter/router",
        }
    )


@app.get("/v1/models")
@app.get("/models")
async def list_models_api():
    return _json(await _catalog.fetch())


@app.get("/v1/dashboard/billing/{kind}")
@app.get("/dashboard/billing/{kind}")
async def billing_api(kind: str, request: Request):
    if kind not in BILLING_FORMATS:
        return await forward(request)
    api_key = _api_key(request)
    if not api_key:
        raise err_unauthorized()
    return _json(await _billing.billing_view(api_key, kind))


@app.api_route("/{path:path}", methods=FORWARD_METHODS)
async def forward(request: Request):
    api_key = _api_key(request)
    if not api_key:
        raise err_missing_api_key()
    body = await request.body() if request.method in ("POST", "PUT") else b""
    return await _forwarder.forward(
        request.method,
        _raw_path(request),
        request.url.query,
        request.headers,
        body,
        api_key,
    )


def main():  # pragma: no cover
    import uvicorn

    uvicorn.run(app, host=_cfg.host, port=_cfg.port)


if __name__ == "__main__":  # pragma: no cover
    main()
