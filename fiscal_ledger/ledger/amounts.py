"""
Amount arithmetic shared by the ledger services.

Amounts are integer cents. Rounding follows ``Math.round`` from the platform's
historical ledger (halves round toward positive infinity) so that recomputed
values match the cents already stored.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Union

Number = Union[int, float]


def js_round(value: Number) -> int:
    """Round half toward positive infinity: ``js_round(2.5) == 3`` and ``js_round(-2.5) == -2``."""
    return int(math.floor(value + 0.5))


def calc_fee(amount: Number, percent: Optional[Number]) -> int:
    """Get ``percent`` percent of ``amount``, rounded.

    >>> calc_fee(100, 3.5)
    4
    """
    return js_round(amount * (percent or 0) / 100)


def to_negative(value: Optional[Number]) -> Optional[Number]:
    if value is None:
        return None
    return -abs(value)


def _fees(t: Mapping[str, Any]) -> int:
    return (
        (t.get("platform_fee_in_host_currency") or 0)
        + (t.get("host_fee_in_host_currency") or 0)
        + (t.get("payment_processor_fee_in_host_currency") or 0)
    )


def calculate_net_amount_in_collective_currency(t: Mapping[str, Any]) -> int:
    """Net amount for the collective: amount in host currency plus fees, converted back, plus taxes."""
    fx_rate = t.get("host_currency_fx_rate") or 1
    taxes = t.get("tax_amount") or 0
    return js_round(((t.get("amount_in_host_currency") or 0) + _fees(t)) / fx_rate + taxes)


def calculate_net_amount_in_host_currency(t: Mapping[str, Any]) -> int:
    fx_rate = t.get("host_currency_fx_rate") or 1
    taxes = t.get("tax_amount") or 0
    return (t.get("amount_in_host_currency") or 0) + _fees(t) + js_round(taxes * fx_rate)
