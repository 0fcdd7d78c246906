"""
Translation between the external (per-currency/method) and internal (flat)
commission representations.

Both directions are pure. Several external slots alias the same internal leaf
(e.g. BTC.BTC feeds both transfer.BTC and withdraw.BTC); FIELD_TABLE in
types.py is the single source of truth for that aliasing.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from feedesk.features.commissions.schemas import CommissionSet, ExternalCommissions
from feedesk.features.commissions.types import (
    EXCHANGE,
    EXCHANGE_DEFAULTED_FIELDS,
    EXTERNAL_CURRENCY_ORDER,
    FIELD_TABLE,
    REPLENISHMENT,
)


def to_internal(external: ExternalCommissions) -> CommissionSet:
    table: Dict[str, Dict[str, Decimal]] = external.transfer.model_dump()

    transfer: Dict[str, Decimal] = {}
    withdraw: Dict[str, Decimal] = {}
    for key, transfer_src, withdraw_src in FIELD_TABLE:
        if transfer_src is not None:
            currency, method = transfer_src
            transfer[key] = table[currency][method]
        if withdraw_src is not None:
            currency, method = withdraw_src
            withdraw[key] = table[currency][method]

    exchange = external.exchange
    return CommissionSet(
        transfer=transfer,
        withdraw=withdraw,
        exchange=exchange,
        custom_exchange_commission=_or_exchange(external.custom_exchange_commission, exchange),
        custom2_exchange_commission=_or_exchange(external.custom2_exchange_commission, exchange),
        replenishment=external.replenishment,
    )


def to_external(internal: Optional[CommissionSet]) -> Dict[str, Any]:
    """
    Regroup a flat commission set into the external shape.

    Returns {} when there is no transfer group at all (nothing configured).
    Leaves missing from a partial override are left out rather than filled in.
    """
    if internal is None or internal.transfer is None:
        return {}

    transfer = internal.transfer
    withdraw = internal.withdraw or {}

    grouped: Dict[str, Dict[str, Decimal]] = {}
    for key, transfer_src, withdraw_src in FIELD_TABLE:
        if transfer_src is not None and key in transfer:
            currency, method = transfer_src
            grouped.setdefault(currency, {})[method] = transfer[key]
        # Slots shared with the transfer group are read from transfer only.
        if withdraw_src is not None and withdraw_src != transfer_src and key in withdraw:
            currency, method = withdraw_src
            grouped.setdefault(currency, {})[method] = withdraw[key]

    out: Dict[str, Any] = {
        "transfer": {currency: grouped[currency] for currency in EXTERNAL_CURRENCY_ORDER if currency in grouped},
    }

    exchange = internal.exchange
    if exchange is not None:
        out[EXCHANGE] = exchange
    for name in EXCHANGE_DEFAULTED_FIELDS:
        value = _or_exchange(getattr(internal, name), exchange)
        if value is not None:
            out[name] = value
    if internal.replenishment is not None:
        out[REPLENISHMENT] = internal.replenishment

    return out


def _or_exchange(value: Optional[Decimal], exchange: Optional[Decimal]) -> Optional[Decimal]:
    return exchange if value is None else value
