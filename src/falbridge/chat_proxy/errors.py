from __future__ import annotations

from fastapi import HTTPException

from .models import error_envelope


class ProxyError(HTTPException):
    def __init__(
        self, status_code: int, err_type: str, message: str, code: str | None = None
    ):
        super().__init__(
            status_code=status_code, detail=error_envelope(message, err_type, code)
        )


def err_missing_api_key() -> ProxyError:
    return ProxyError(
        401,
        "authentication_error",
        "Missing API key. Provide 'Authorization: Bearer YOUR_FAL_KEY' header",
        "invalid_api_key",
    )


def err_unauthorized() -> ProxyError:
    return ProxyError(401, "authentication_error", "Unauthorized")


def err_invalid_request(message: str) -> ProxyError:
    return ProxyError(400, "invalid_request", message)


def err_upstream(status_code: int, message: str) -> ProxyError:
    return ProxyError(status_code, "upstream_error", message)


def err_proxy_transport(reason: str) -> ProxyError:
    return ProxyError(502, "proxy_error", f"Proxy error: {reason}", "upstream_error")


def err_balance_format() -> ProxyError:
    return ProxyError(502, "parse_error", "Invalid balance format")
