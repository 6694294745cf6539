"""FX rate resolution for the ledger.

Rates are resolved in the following order:

- Identical currencies use a rate of 1.
- A conversion between the transaction currency and its host currency reuses
  the stored ``host_currency_fx_rate`` (or its inverse).
- Platform tip credits carry ``data.hostToPlatformFxRate`` for host -> platform.
- Anything else is fetched from the FX service configured in ``FX_RATES_API_URL``
  (``GET {url}?from=XXX&to=YYY`` returning ``{"rate": <float>}``) and cached per
  currency pair.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from .constants import TransactionKind, TransactionType
from .errors import FxRateUnavailableError


def _as_mapping(transaction: Any) -> Mapping[str, Any]:
    if transaction is None:
        return {}
    if isinstance(transaction, Mapping):
        return transaction
    return transaction.model_dump()


class FxRateProvider:
    """Resolve exchange rates, preferring the rates already recorded on a transaction.

    - Uses ``httpx.AsyncClient`` for the remote FX service.
    - Keeps a per-pair cache with TTL.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        *,
        platform_collective_id: int = 8686,
        platform_currency: str = "USD",
        client: Optional[httpx.AsyncClient] = None,
        ttl_seconds: float = 3600.0,
    ) -> None:
        self._api_url = api_url
        self._platform_collective_id = platform_collective_id
        self._platform_currency = platform_currency
        self._http = client
        self._ttl = ttl_seconds
        self._cache: Dict[Tuple[str, str], Tuple[float, float]] = {}
        self._logger = logging.getLogger(__name__)

    def set_rate(self, from_currency: str, to_currency: str, rate: float) -> None:
        """Seed the cache, e.g. with rates known from a payment provider."""
        self._cache[(from_currency, to_currency)] = (rate, time.monotonic() + self._ttl)

    async def get_fx_rate(self, from_currency: str, to_currency: str, transaction: Any = None) -> float:
        """Get the rate to convert ``from_currency`` amounts into ``to_currency``.

        Args:
            from_currency: Source currency code
            to_currency: Target currency code
            transaction: Optional transaction (entity or mapping) whose stored rates are preferred

        Returns:
            The FX rate

        Raises:
            FxRateUnavailableError: If the rate must be fetched and no FX service is configured
                or the service fails.
        """
        if from_currency == to_currency:
            return 1

        t = _as_mapping(transaction)
        fx_rate = t.get("host_currency_fx_rate")
        if fx_rate:
            if from_currency == t.get("currency") and to_currency == t.get("host_currency"):
                return fx_rate
            if from_currency == t.get("host_currency") and to_currency == t.get("currency"):
                return 1 / fx_rate

        host_to_platform = (t.get("data") or {}).get("hostToPlatformFxRate")
        if (
            host_to_platform
            and to_currency == self._platform_currency
            and from_currency == t.get("host_currency")
            and t.get("type") == TransactionType.CREDIT.value
            and t.get("kind") == TransactionKind.PLATFORM_TIP.value
            and t.get("from_collective_id") == self._platform_collective_id
        ):
            return host_to_platform

        return await self._fetch_rate(from_currency, to_currency)

    async def _fetch_rate(self, from_currency: str, to_currency: str) -> float:
        key = (from_currency, to_currency)
        cached = self._cache.get(key)
        now = time.monotonic()
        if cached and cached[1] > now:
            return cached[0]

        if not self._api_url:
            raise FxRateUnavailableError(from_currency, to_currency, "FX_RATES_API_URL is not configured")

        if self._http is None:
            self._http = httpx.AsyncClient(timeout=10.0, follow_redirects=True)

        self._logger.debug("FxRateProvider: GET %s from=%s to=%s", self._api_url, from_currency, to_currency)
        try:
            response = await self._http.get(self._api_url, params={"from": from_currency, "to": to_currency})
            response.raise_for_status()
            rate = float(response.json()["rate"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise FxRateUnavailableError(from_currency, to_currency, str(e)) from e

        self._cache[key] = (rate, now + self._ttl)
        return rate

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
