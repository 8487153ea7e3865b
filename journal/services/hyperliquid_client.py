"""Hyperliquid info API client: the fills source for exchange sync.

Wraps the hyperliquid-python-sdk `API` transport. The SDK call is blocking,
so it runs in the default executor, bounded by settings.fetch_timeout_seconds.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import requests
from hyperliquid.api import API
from hyperliquid.utils.error import ClientError, ServerError

from journal.config import settings
from journal.errors import RemoteUnavailable

logger = logging.getLogger(__name__)


@dataclass
class AccountState:
    account_value: float
    unrealized_pnl: float


class HyperliquidClient:
    """Read-only client for a wallet's fills and account state."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.hyperliquid_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self._api: API | None = None

    def _ensure_api(self) -> API:
        if self._api is None:
            # Socket timeout for the blocking call; wait_for only bounds the await
            self._api = API(base_url=self.base_url, timeout=self.timeout)
        return self._api

    async def _post_info(self, payload: dict[str, Any]) -> Any:
        """POST to /info, mapping every transport or status failure to RemoteUnavailable."""
        api = self._ensure_api()
        request_type = payload.get("type")
        try:
            return await asyncio.wait_for(
                asyncio.get_event_loop().run_in_executor(None, api.post, "/info", payload),
                timeout=self.timeout,
            )
        except ClientError as e:
            raise RemoteUnavailable(
                f"Hyperliquid API error: {e.status_code} on {request_type}", details=e.error_message
            ) from e
        except ServerError as e:
            raise RemoteUnavailable(
                f"Hyperliquid API error: {e.status_code} on {request_type}", details=e.message
            ) from e
        except asyncio.TimeoutError as e:
            raise RemoteUnavailable(
                f"Hyperliquid API timed out after {self.timeout}s on {request_type}"
            ) from e
        except requests.RequestException as e:
            raise RemoteUnavailable(f"Hyperliquid API unreachable: {e}") from e

    async def fetch_fills(self, wallet: str, start_time_ms: int | None = None) -> list[dict]:
        """Fetch a wallet's fills, optionally only those at or after start_time_ms.

        A bounded fetch is sent as the venue's `userFillsByTime` request, since
        `userFills` itself ignores `startTime`. Returns the raw fill dicts
        exactly as the venue sent them. Either the whole list is returned or
        RemoteUnavailable is raised.
        """
        if start_time_ms is None:
            payload: dict[str, Any] = {"type": "userFills", "user": wallet}
        else:
            payload = {"type": "userFillsByTime", "user": wallet, "startTime": start_time_ms}

        body = await self._post_info(payload)
        if not isinstance(body, list):
            # The SDK returns {"error": ...} when the body is not JSON
            raise RemoteUnavailable(f"Unexpected fills response for {wallet}", details=body)

        logger.debug(f"Fetched {len(body)} fills for {wallet} (start={start_time_ms})")
        return body

    async def fetch_account_state(self, wallet: str) -> AccountState:
        """Current perp account value and total unrealized P&L."""
        body = await self._post_info({"type": "clearinghouseState", "user": wallet})
        if not isinstance(body, dict) or "marginSummary" not in body:
            raise RemoteUnavailable(f"Unexpected account state response for {wallet}", details=body)

        try:
            account_value = float(body["marginSummary"]["accountValue"])
            unrealized = sum(
                float(p["position"]["unrealizedPnl"])
                for p in body.get("assetPositions") or []
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteUnavailable(f"Malformed account state for {wallet}: {e}") from e

        return AccountState(account_value=account_value, unrealized_pnl=unrealized)

    async def close(self):
        """Release the HTTP session."""
        if self._api is not None:
            self._api.session.close()
        self._api = None
