"""Tests for the JSON-RPC oracle, using httpx.MockTransport."""

import json

import httpx
import pytest

from gaswatch.oracle.base import OracleError, ProtocolError, TransportError, UpstreamError
from gaswatch.oracle.rpc import JsonRpcOracle, hex_wei_to_gwei

_RPC_URL = "https://rpc.test"
_RATE_URL = "https://rates.test/price"


def _oracle(handler) -> JsonRpcOracle:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JsonRpcOracle(rpc_url=_RPC_URL, rate_url=_RATE_URL, client=client)


def _rpc_result(result) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


class TestHexConversion:
    def test_one_gwei(self) -> None:
        assert hex_wei_to_gwei("0x3b9aca00") == 1.0

    def test_without_prefix(self) -> None:
        assert hex_wei_to_gwei("4a817c800") == 20.0

    @pytest.mark.parametrize("raw", ["0x0", "0x", "garbage", ""])
    def test_zero_or_malformed(self, raw: str) -> None:
        assert hex_wei_to_gwei(raw) == 0.0


class TestGasPrice:
    @pytest.mark.asyncio
    async def test_sends_json_rpc_request(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _rpc_result("0x4a817c800")

        oracle = _oracle(handler)
        assert await oracle.fetch_current_price() == 20.0
        await oracle.aclose()

        body = seen[0]
        assert body["jsonrpc"] == "2.0"
        assert body["method"] == "eth_gasPrice"
        assert body["params"] == []

    @pytest.mark.asyncio
    async def test_request_ids_increase(self) -> None:
        ids = []

        def handler(request: httpx.Request) -> httpx.Response:
            ids.append(json.loads(request.content)["id"])
            return _rpc_result("0x1")

        oracle = _oracle(handler)
        await oracle.fetch_current_price()
        await oracle.fetch_current_price()
        await oracle.aclose()
        assert ids == [1, 2]

    @pytest.mark.asyncio
    async def test_non_string_result_is_protocol_error(self) -> None:
        oracle = _oracle(lambda request: _rpc_result(42))
        with pytest.raises(ProtocolError):
            await oracle.fetch_current_price()
        await oracle.aclose()


class TestFeeHistory:
    @pytest.mark.asyncio
    async def test_parses_and_converts(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _rpc_result({
                "oldestBlock": "0x10",
                "baseFeePerGas": ["0x3b9aca00", "0x77359400"],
                "gasUsedRatio": [0.5, 0.75],
                "reward": [["0x0", "0x3b9aca00", "0x77359400"]],
            })

        oracle = _oracle(handler)
        history = await oracle.fetch_fee_history(1024, [25, 50, 75])
        await oracle.aclose()

        assert seen[0]["method"] == "eth_feeHistory"
        assert seen[0]["params"] == ["0x400", "latest", [25, 50, 75]]
        assert history.base_fees == [1.0, 2.0]
        assert history.usage_ratios == [0.5, 0.75]
        assert history.reward_percentiles == [[0.0, 1.0, 2.0]]

    @pytest.mark.asyncio
    async def test_missing_reward_is_empty(self) -> None:
        oracle = _oracle(lambda request: _rpc_result({
            "baseFeePerGas": ["0x3b9aca00"],
            "gasUsedRatio": [0.1],
        }))
        history = await oracle.fetch_fee_history(1, [50])
        await oracle.aclose()
        assert history.reward_percentiles == []

    @pytest.mark.asyncio
    async def test_malformed_result(self) -> None:
        oracle = _oracle(lambda request: _rpc_result({"gasUsedRatio": [0.1]}))
        with pytest.raises(ProtocolError):
            await oracle.fetch_fee_history(1, [50])
        await oracle.aclose()


class TestExchangeRate:
    @pytest.mark.asyncio
    async def test_reads_asset_and_currency(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert str(request.url) == _RATE_URL
            return httpx.Response(200, json={"ethereum": {"usd": 3100.25}})

        oracle = _oracle(handler)
        assert await oracle.fetch_exchange_rate() == 3100.25
        await oracle.aclose()

    @pytest.mark.asyncio
    async def test_missing_currency(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(200, json={"ethereum": {"eur": 1.0}}))
        with pytest.raises(ProtocolError):
            await oracle.fetch_exchange_rate()
        await oracle.aclose()


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        oracle = _oracle(handler)
        with pytest.raises(TransportError):
            await oracle.fetch_current_price()
        await oracle.aclose()

    @pytest.mark.asyncio
    async def test_http_status_is_protocol_error(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(ProtocolError) as excinfo:
            await oracle.fetch_current_price()
        await oracle.aclose()
        assert excinfo.value.status_code == 503

    @pytest.mark.asyncio
    async def test_undecodable_body_is_protocol_error(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProtocolError):
            await oracle.fetch_exchange_rate()
        await oracle.aclose()

    @pytest.mark.asyncio
    async def test_rpc_error_is_upstream_error(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(200, json={
            "jsonrpc": "2.0",
            "id": 1,
            "error": {"code": -32005, "message": "rate limited"},
        }))
        with pytest.raises(UpstreamError) as excinfo:
            await oracle.fetch_current_price()
        await oracle.aclose()
        assert excinfo.value.code == -32005
        assert "rate limited" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_empty_result_is_protocol_error(self) -> None:
        oracle = _oracle(lambda request: _rpc_result(None))
        with pytest.raises(ProtocolError):
            await oracle.fetch_current_price()
        await oracle.aclose()

    @pytest.mark.asyncio
    async def test_all_failures_share_base_class(self) -> None:
        oracle = _oracle(lambda request: httpx.Response(500))
        with pytest.raises(OracleError):
            await oracle.fetch_exchange_rate()
        await oracle.aclose()
