import os
import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Keep the app module from reading a developer's config file or writing logs
os.environ["FALBRIDGE_CONFIG_FILE"] = str(ROOT / "tests" / "missing-config.toml")
os.environ["FALBRIDGE_LOG_REQUESTS"] = "0"


@pytest.fixture
def proxy_app(monkeypatch):
    """Return the app module with the default credential cleared."""

    from falbridge.chat_proxy import app as app_module

    monkeypatch.setattr(app_module._cfg, "default_api_key", None)
    return app_module


@pytest.fixture
def upstream(proxy_app, monkeypatch):
    """Route every outbound call of the app through ``httpx.MockTransport``.

    Call the returned installer with a handler ``(httpx.Request) -> httpx.Response``;
    it returns the list that records the requests the proxy sent.
    """

    def install(handler):
        seen: list[httpx.Request] = []

        async def recording(request: httpx.Request):
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        for component in (proxy_app._catalog, proxy_app._billing, proxy_app._forwarder):
            monkeypatch.setattr(component, "client", client)
        return seen

    return install
