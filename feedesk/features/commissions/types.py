from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple


class CommissionGroup(str, Enum):
    # Per-currency groups of the internal flat form.
    TRANSFER = "transfer"
    WITHDRAW = "withdraw"


# Scalar (non-currency) commission fields, same name in both representations.
EXCHANGE = "exchange"
CUSTOM_EXCHANGE = "custom_exchange_commission"
CUSTOM2_EXCHANGE = "custom2_exchange_commission"
REPLENISHMENT = "replenishment"

SCALAR_FIELDS: Tuple[str, ...] = (EXCHANGE, CUSTOM_EXCHANGE, CUSTOM2_EXCHANGE, REPLENISHMENT)

# Custom exchange rates fall back to the base exchange rate when never set.
EXCHANGE_DEFAULTED_FIELDS: Tuple[str, ...] = (CUSTOM_EXCHANGE, CUSTOM2_EXCHANGE)

# A leaf is addressed by (group, currency) for transfer/withdraw entries
# and by (field, None) for scalars.
LeafPath = Tuple[str, Optional[str]]

# External (currency, method) location of an internal leaf.
ExternalSlot = Tuple[str, str]

# internal key -> (transfer source, withdraw source); None = not present in that group.
# Stablecoin networks collapse onto their network name (USDT.ERC20 -> ERC20, ...).
FIELD_TABLE: Tuple[Tuple[str, Optional[ExternalSlot], Optional[ExternalSlot]], ...] = (
    ("USD", ("USD", "SW"), ("USD", "PM")),
    ("EUR", ("EUR", "SW"), ("EUR", "PM")),
    ("BTC", ("BTC", "BTC"), ("BTC", "BTC")),
    ("ETH", ("ETH", "ERC20"), ("ETH", "ERC20")),
    ("ERC20", ("USDT", "ERC20"), ("USDT", "ERC20")),
    ("TRC20", ("USDT", "TRC20"), ("USDT", "TRC20")),
    ("BEP20", ("USDT", "BEP20"), ("USDT", "BEP20")),
    ("TRX", ("TRX", "TRC20"), ("TRX", "TRC20")),
    ("BNB", ("BNB", "BEP20"), ("BNB", "BEP20")),
    ("SWP", ("SWP", "BEP20"), ("SWP", "BEP20")),
    ("SWCT", ("SWCT", "BEP20"), ("SWCT", "BEP20")),
    ("SWP_SS", None, ("SWP", "SS")),
)

TRANSFER_KEYS: Tuple[str, ...] = tuple(key for key, src, _ in FIELD_TABLE if src is not None)
WITHDRAW_KEYS: Tuple[str, ...] = tuple(key for key, _, src in FIELD_TABLE if src is not None)

# Order in which currencies appear in the external representation.
EXTERNAL_CURRENCY_ORDER: Tuple[str, ...] = ("USD", "EUR", "BTC", "ETH", "USDT", "TRX", "BNB", "SWP", "SWCT")
