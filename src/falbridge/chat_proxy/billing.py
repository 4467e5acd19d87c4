"""OpenAI dashboard billing endpoints backed by the fal account balance.

fal exposes a single plain-text USD balance. Dashboard-style clients expect
one of three OpenAI billing shapes, all derived from that one number.
"""

from __future__ import annotations

import logging
import re
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from .config import ProxyConfig
from .errors import err_balance_format, err_upstream

logger = logging.getLogger(__name__)

ACCESS_WINDOW_S = 86400 * 365
BILLING_FORMATS = ("subscription", "credit_grants", "usage")

_CENT = Decimal("0.01")
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_balance(text: str) -> Optional[Decimal]:
    """Parse the leading decimal literal of ``text`` rounded to cents."""
    match = _LEADING_NUMBER.match(text or "")
    if not match:
        return None
    try:
        return Decimal(match.group(1)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def _to_cents(balance: Decimal) -> int:
    return int((balance * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_balance(
    balance: Decimal, fmt: str, now: Optional[int] = None
) -> Dict[str, Any]:
    if now is None:
        now = int(time.time())
    amount = float(balance)

    if fmt == "subscription":
        return {
            "object": "billing_subscription",
            "has_payment_method": True,
            "soft_limit_usd": amount,
            "hard_limit_usd": amount,
            "system_hard_limit_usd": amount,
            "access_until": now + ACCESS_WINDOW_S,
        }

    if fmt == "credit_grants":
        cents = _to_cents(balance)
        return {
            "object": "credit_summary",
            "total_granted": cents,
            "total_used": 0,
            "total_available": cents,
            "grants": {
                "object": "list",
                "data": [
                    {
                        "object": "credit_grant",
                        "id": "fal-balance",
                        "grant_amount": cents,
                        "used_amount": 0,
                        "effective_at": now,
                        "expires_at": None,
                    }
                ],
            },
        }

    if fmt == "usage":
        return {"object": "billing_usage", "total_usage": 0, "daily_costs": []}

    return {"balance": amount, "currency": "USD"}


def _error_message(resp: httpx.Response) -> str:
    fallback = f"Failed to fetch balance: {resp.status_code}"
    try:
        data = resp.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        for key in ("detail", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


class BalanceClient:
    def __init__(self, cfg: ProxyConfig, client: httpx.AsyncClient):
        self.cfg = cfg
        self.client = client

    async def fetch_balance(self, api_key: str) -> Decimal:
        try:
            resp = await self.client.get(
                self.cfg.balance_url,
                headers={
                    "Authorization": f"Key {api_key}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise err_upstream(502, f"Failed to fetch balance: {exc}") from exc

        if not resp.is_success:
            message = _error_message(resp)
            logger.warning(
                "[billing] Balance lookup failed (%s): %s", resp.status_code, message
            )
            raise err_upstream(resp.status_code, message)

        balance = parse_balance(resp.text)
        if balance is None:
            logger.warning("[billing] Unparseable balance body: %r", resp.text[:80])
            raise err_balance_format()
        return balance

    async def billing_view(self, api_key: str, fmt: str) -> Dict[str, Any]:
        balance = await self.fetch_balance(api_key)
        return format_balance(balance, fmt)
