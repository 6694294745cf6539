"""Unit tests for amount arithmetic and FX resolution."""

import httpx
import pytest

from fiscal_ledger.ledger.amounts import (
    calc_fee,
    calculate_net_amount_in_collective_currency,
    calculate_net_amount_in_host_currency,
    js_round,
    to_negative,
)
from fiscal_ledger.ledger.errors import FxRateUnavailableError
from fiscal_ledger.ledger.fx import FxRateProvider


class TestAmounts:
    @pytest.mark.parametrize("value, expected", [(2.5, 3), (-2.5, -2), (2.4, 2), (-2.6, -3), (0, 0)])
    def test_js_round(self, value, expected):
        assert js_round(value) == expected

    def test_calc_fee(self):
        assert calc_fee(10000, 5) == 500
        assert calc_fee(100, 3.5) == 4
        assert calc_fee(100, None) == 0

    def test_to_negative(self):
        assert to_negative(500) == -500
        assert to_negative(-500) == -500
        assert to_negative(None) is None

    def test_net_amounts(self):
        transaction = {
            "amount_in_host_currency": 11000,
            "host_currency_fx_rate": 1.1,
            "host_fee_in_host_currency": -550,
            "payment_processor_fee_in_host_currency": -330,
            "platform_fee_in_host_currency": 0,
            "tax_amount": -100,
        }
        assert calculate_net_amount_in_collective_currency(transaction) == 9100
        assert calculate_net_amount_in_host_currency(transaction) == 11000 - 880 - 110


class TestFxRateProvider:
    async def test_same_currency(self):
        assert await FxRateProvider().get_fx_rate("EUR", "EUR") == 1

    async def test_uses_transaction_rate(self):
        fx = FxRateProvider()
        transaction = {"currency": "EUR", "host_currency": "USD", "host_currency_fx_rate": 1.1}
        assert await fx.get_fx_rate("EUR", "USD", transaction) == 1.1
        assert await fx.get_fx_rate("USD", "EUR", transaction) == pytest.approx(1 / 1.1)

    async def test_uses_host_to_platform_rate_of_platform_tips(self):
        fx = FxRateProvider(platform_collective_id=8686, platform_currency="USD")
        tip = {
            "type": "CREDIT",
            "kind": "PLATFORM_TIP",
            "from_collective_id": 8686,
            "currency": "EUR",
            "host_currency": "GBP",
            "data": {"hostToPlatformFxRate": 1.25},
        }
        assert await fx.get_fx_rate("GBP", "USD", tip) == 1.25

    async def test_fetches_and_caches_remote_rate(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(dict(request.url.params))
            return httpx.Response(200, json={"rate": 0.9})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        fx = FxRateProvider("http://mock-fx/rates", client=client)

        assert await fx.get_fx_rate("USD", "EUR") == 0.9
        assert await fx.get_fx_rate("USD", "EUR") == 0.9
        assert calls == [{"from": "USD", "to": "EUR"}]
        await fx.aclose()

    async def test_remote_failure(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        fx = FxRateProvider("http://mock-fx/rates", client=client)
        with pytest.raises(FxRateUnavailableError):
            await fx.get_fx_rate("USD", "EUR")
        await fx.aclose()

    async def test_not_configured(self):
        with pytest.raises(FxRateUnavailableError, match="not configured"):
            await FxRateProvider().get_fx_rate("USD", "EUR")

    async def test_seeded_rate(self):
        fx = FxRateProvider()
        fx.set_rate("USD", "EUR", 0.95)
        assert await fx.get_fx_rate("USD", "EUR") == 0.95
