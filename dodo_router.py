#!/usr/bin/env python3
"""
DODO Route Service Integration
==============================
Fetches swap routes for Pharos testnet from the DODO route service.

The service answers every request with HTTP 200; a ``status`` of -1 in
the body means no route, and is retried like a network failure.

API: https://api.dodoex.io/route-service/v2/widget/getdodoroute
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from config import Config
from loaders import format_proxy
from retry import retry_async, retry_kwargs
from utils import logger, RouteError

ROUTE_FAILED_STATUS = -1


@dataclass(frozen=True)
class RouteData:
    """Transaction payload for one swap."""
    to: str
    data: str
    value: int = 0
    gas_limit: Optional[int] = None
    target_approve_addr: Optional[str] = None
    res_amount: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RouteData":
        if not isinstance(payload, dict) or not payload.get("to") or not payload.get("data"):
            raise RouteError(f"Route payload missing to/data: {payload!r}")
        gas_limit = payload.get("gasLimit")
        return cls(
            to=payload["to"],
            data=payload["data"],
            value=int(payload.get("value") or 0),
            gas_limit=int(gas_limit) if gas_limit else None,
            target_approve_addr=payload.get("targetApproveAddr") or None,
            res_amount=None if payload.get("resAmount") is None else str(payload["resAmount"]),
        )


class DodoRouter:
    """
    DODO route client for one wallet.

    Uses the wallet's proxy, if any, for every request.
    """

    def __init__(self, config: Config, proxy: str = "", session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.proxies = format_proxy(proxy)
        self.headers = {"Accept": "application/json"}

    def build_params(
        self,
        from_token: str,
        to_token: str,
        user_address: str,
        amount: int,
        now: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Query parameters for a route request; the deadline is fixed here."""
        now = time.time() if now is None else now
        return {
            "chainId": self.config.chain_id,
            "deadLine": int(now) + self.config.route_deadline_seconds,
            "apikey": self.config.route_api_key,
            "slippage": self.config.slippage_percent,
            "source": self.config.route_source,
            "toTokenAddress": to_token,
            "fromTokenAddress": from_token,
            "userAddr": user_address,
            "estimateGas": "true",
            "fromAmount": str(amount),
        }

    def _request_route(self, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.get(
            self.config.route_api_url,
            params=params,
            headers=self.headers,
            proxies=self.proxies,
            timeout=self.config.http_timeout_seconds
        )
        response.raise_for_status()
        body = response.json()

        if not isinstance(body, dict):
            raise RouteError(f"Unexpected DODO API response: {body!r}")
        if body.get("status") == ROUTE_FAILED_STATUS:
            raise RouteError(f"DODO API status {ROUTE_FAILED_STATUS}")
        if not body.get("data"):
            raise RouteError("DODO API response has no data")
        return body

    async def fetch_route(self, from_token: str, to_token: str, user_address: str, amount: int) -> RouteData:
        """
        Get a swap route, retrying failed and logically-failed responses.

        Args:
            from_token: Source token address
            to_token: Destination token address
            user_address: Wallet that will send the swap
            amount: Amount in the source token's smallest unit

        Returns:
            RouteData ready for the swap executor
        """
        params = self.build_params(from_token, to_token, user_address, amount)
        logger.debug(f"DODO API: {self.config.route_api_url} {params}")

        try:
            body = await retry_async(
                lambda: asyncio.to_thread(self._request_route, params),
                label="DODO API",
                **retry_kwargs(self.config)
            )
            return RouteData.from_api(body["data"])
        except Exception as e:
            logger.error(f"❌ DODO API fetch failed: {e}")
            raise
