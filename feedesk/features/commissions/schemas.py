"""
Commission schemas.

Two shapes describe the same leaf values:

- External (what the admin UI sends/reads): grouped by currency, then by
  payment method / network, e.g. transfer.USD.SW or transfer.USDT.TRC20.
- Internal (what we persist and merge): two flat maps keyed by currency code,
  `transfer` and `withdraw`, plus scalar exchange/replenishment fees.

See mapper.py for the translation between them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ValidationInfo, field_validator, model_validator

from feedesk.features.commissions.types import (
    CUSTOM2_EXCHANGE,
    CUSTOM_EXCHANGE,
    EXCHANGE,
    SCALAR_FIELDS,
    TRANSFER_KEYS,
    WITHDRAW_KEYS,
    CommissionGroup,
    LeafPath,
)


# ---------------------------------------------------------------------------
# External representation
# ---------------------------------------------------------------------------


class FiatMethods(BaseModel):
    SW: Decimal  # SWIFT transfer
    PM: Decimal  # Perfect Money withdraw


class BtcMethods(BaseModel):
    BTC: Decimal


class Erc20Methods(BaseModel):
    ERC20: Decimal


class Trc20Methods(BaseModel):
    TRC20: Decimal


class Bep20Methods(BaseModel):
    BEP20: Decimal


class UsdtMethods(BaseModel):
    ERC20: Decimal
    TRC20: Decimal
    BEP20: Decimal


class SwpMethods(BaseModel):
    BEP20: Decimal
    SS: Decimal  # withdraw-only


class TransferTable(BaseModel):
    USD: FiatMethods
    EUR: FiatMethods
    BTC: BtcMethods
    ETH: Erc20Methods
    USDT: UsdtMethods
    TRX: Trc20Methods
    BNB: Bep20Methods
    SWP: SwpMethods
    SWCT: Bep20Methods


class ExternalCommissions(BaseModel):
    """Full commission set as edited in the admin UI. Every leaf is required."""

    transfer: TransferTable
    exchange: Decimal
    custom_exchange_commission: Optional[Decimal] = None
    custom2_exchange_commission: Optional[Decimal] = None
    replenishment: Decimal


# ---------------------------------------------------------------------------
# Internal (persisted) representation
# ---------------------------------------------------------------------------


class CommissionSet(BaseModel):
    """
    Flat commission set.

    Used for the global configuration (all leaves set) and for per-user
    overrides, where any leaf may be absent (None / missing map key) meaning
    "inherit the global value".
    """

    transfer: Optional[Dict[str, Decimal]] = None
    withdraw: Optional[Dict[str, Decimal]] = None
    exchange: Optional[Decimal] = None
    custom_exchange_commission: Optional[Decimal] = None
    custom2_exchange_commission: Optional[Decimal] = None
    replenishment: Optional[Decimal] = None

    @field_validator("transfer", "withdraw")
    @classmethod
    def _known_keys(cls, value: Optional[Dict[str, Decimal]], info: ValidationInfo) -> Optional[Dict[str, Decimal]]:
        if value is None:
            return value
        allowed = TRANSFER_KEYS if info.field_name == CommissionGroup.TRANSFER.value else WITHDRAW_KEYS
        unknown = sorted(set(value) - set(allowed))
        if unknown:
            raise ValueError(f"Unknown {info.field_name} keys: {unknown}")
        return value

    def leaves(self) -> Dict[LeafPath, Decimal]:
        out: Dict[LeafPath, Decimal] = {}
        for group in CommissionGroup:
            for currency, value in (getattr(self, group.value) or {}).items():
                if value is not None:
                    out[(group.value, currency)] = value
        for name in SCALAR_FIELDS:
            value = getattr(self, name)
            if value is not None:
                out[(name, None)] = value
        return out

    @classmethod
    def from_leaves(cls, leaves: Mapping[LeafPath, Decimal]) -> "CommissionSet":
        groups: Dict[str, Dict[str, Decimal]] = {}
        scalars: Dict[str, Decimal] = {}
        for (name, currency), value in leaves.items():
            if currency is None:
                scalars[name] = value
            else:
                groups.setdefault(name, {})[currency] = value
        return cls(**groups, **scalars)

    def is_empty(self) -> bool:
        return not self.leaves()

    def to_json(self) -> Dict[str, Any]:
        """JSON-safe dict (Decimals as strings) for caches."""
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# API models
# ---------------------------------------------------------------------------


class CommissionsUpdateRequest(BaseModel):
    """
    Body of PUT /admin/commission and PUT /admin/commission/users/{id}.

    Exchange rates are multipliers applied to the converted amount, so they
    must lie in (0, 1].
    """

    data: ExternalCommissions

    @model_validator(mode="after")
    def _check_exchange_rates(self) -> "CommissionsUpdateRequest":
        for name in (CUSTOM_EXCHANGE, CUSTOM2_EXCHANGE, EXCHANGE):
            value = getattr(self.data, name)
            if value is None:
                continue
            if value > 1 or value <= 0:
                raise ValueError(f"Value {name} must be greater than 0 and not more than 1")
        return self


class StatusResponse(BaseModel):
    Status: str = "OK"
