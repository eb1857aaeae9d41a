"""JSON-RPC + HTTP implementation of PriceOracle.

Gas price and fee history come from an Ethereum-compatible node
(``eth_gasPrice``, ``eth_feeHistory``).  The exchange rate comes from a
CoinGecko-style ``simple/price`` document.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Sequence

import httpx

from gaswatch.domain.fees import FeeHistory
from gaswatch.oracle.base import PriceOracle, ProtocolError, TransportError, UpstreamError

logger = logging.getLogger(__name__)

WEI_PER_GWEI = 1_000_000_000


def hex_wei_to_gwei(value: str) -> float:
    """Convert a ``0x``-prefixed wei quantity to Gwei.  Malformed input → 0."""
    cleaned = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        wei = int(cleaned, 16)
    except ValueError:
        return 0.0
    return wei / WEI_PER_GWEI


class JsonRpcOracle(PriceOracle):
    """PriceOracle backed by a node JSON-RPC endpoint and an HTTP price feed.

    Args:
        rpc_url: Node endpoint accepting JSON-RPC 2.0 POSTs.
        rate_url: URL returning ``{"<asset>": {"<currency>": price}}``.
        asset: Key of the asset in the rate document.
        currency: Key of the fiat currency in the rate document.
        timeout: Per-request timeout in seconds.
        client: Optional pre-built AsyncClient (tests inject a MockTransport).
    """

    def __init__(
        self,
        rpc_url: str,
        rate_url: str,
        asset: str = "ethereum",
        currency: str = "usd",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._rate_url = rate_url
        self._asset = asset
        self._currency = currency
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    # ── PriceOracle ──────────────────────────────────────────────────────

    async def fetch_current_price(self) -> float:
        result = await self._call("eth_gasPrice", [])
        if not isinstance(result, str):
            raise ProtocolError(f"eth_gasPrice returned {type(result).__name__}, expected hex string")
        return hex_wei_to_gwei(result)

    async def fetch_fee_history(self, block_count: int, percentiles: Sequence[int]) -> FeeHistory:
        result = await self._call(
            "eth_feeHistory",
            [hex(block_count), "latest", list(percentiles)],
        )
        if not isinstance(result, dict):
            raise ProtocolError("eth_feeHistory returned a non-object result")
        try:
            base_fees = [hex_wei_to_gwei(v) for v in result["baseFeePerGas"]]
            usage = [float(v) for v in result["gasUsedRatio"]]
            rewards = [
                [hex_wei_to_gwei(v) for v in row]
                for row in (result.get("reward") or [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ProtocolError(f"malformed eth_feeHistory result: {exc}") from exc
        return FeeHistory(base_fees=base_fees, usage_ratios=usage, reward_percentiles=rewards)

    async def fetch_exchange_rate(self) -> float:
        payload = await self._request("GET", self._rate_url)
        try:
            return float(payload[self._asset][self._currency])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProtocolError(f"malformed exchange-rate payload: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Internals ────────────────────────────────────────────────────────

    async def _call(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        payload = await self._request("POST", self._rpc_url, json=body)
        if not isinstance(payload, dict):
            raise ProtocolError(f"{method}: response is not a JSON-RPC object")

        error = payload.get("error")
        if error:
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            raise UpstreamError(f"{method}: {message}", code=code)

        if payload.get("result") is None:
            raise ProtocolError(f"{method}: response has neither result nor error")
        return payload["result"]

    async def _request(self, verb: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(verb, url, **kwargs)
        except httpx.RequestError as exc:
            raise TransportError(f"{verb} {url} failed: {exc}") from exc

        if response.status_code != 200:
            raise ProtocolError(f"{verb} {url} returned HTTP {response.status_code}", response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError(f"{verb} {url} returned undecodable JSON") from exc
