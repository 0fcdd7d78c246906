"""Unit tests for the external <-> internal commission mapping."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from feedesk.features.commissions.mapper import to_external, to_internal
from feedesk.features.commissions.schemas import CommissionSet, ExternalCommissions
from feedesk.features.commissions.types import TRANSFER_KEYS, WITHDRAW_KEYS
from tests.fakes import external, external_payload


def test_round_trip_reproduces_external_input():
    data = external()
    assert to_external(to_internal(data)) == data.model_dump()


def test_round_trip_with_distinct_values_everywhere():
    data = external(
        {
            "transfer.USD.SW": "0.1",
            "transfer.USD.PM": "0.2",
            "transfer.USDT.ERC20": "11",
            "transfer.USDT.TRC20": "12",
            "transfer.USDT.BEP20": "13",
            "transfer.SWP.BEP20": "7",
            "transfer.SWP.SS": "8",
        }
    )
    assert to_external(to_internal(data)) == data.model_dump()


def test_to_internal_field_table():
    internal = to_internal(external())

    assert set(internal.transfer) == set(TRANSFER_KEYS)
    assert set(internal.withdraw) == set(WITHDRAW_KEYS)

    # Fiat: transfer via SWIFT, withdraw via Perfect Money.
    assert internal.transfer["USD"] == Decimal("1")
    assert internal.withdraw["USD"] == Decimal("2")
    assert internal.transfer["EUR"] == Decimal("1.5")
    assert internal.withdraw["EUR"] == Decimal("2.5")

    # Single-network assets feed both groups from the same slot.
    assert internal.transfer["BTC"] == internal.withdraw["BTC"] == Decimal("0.0005")
    assert internal.transfer["ETH"] == internal.withdraw["ETH"] == Decimal("0.008")

    # USDT networks collapse onto network keys.
    assert internal.transfer["ERC20"] == internal.withdraw["ERC20"] == Decimal("10")
    assert internal.transfer["TRC20"] == internal.withdraw["TRC20"] == Decimal("1")
    assert internal.transfer["BEP20"] == internal.withdraw["BEP20"] == Decimal("0.8")

    assert internal.withdraw["SWP_SS"] == Decimal("0.5")
    assert "SWP_SS" not in internal.transfer


def test_custom_exchange_defaults_to_exchange_on_write_and_read():
    data = external(drop=["custom_exchange_commission", "custom2_exchange_commission"])

    internal = to_internal(data)
    assert internal.custom_exchange_commission == Decimal("0.996")
    assert internal.custom2_exchange_commission == Decimal("0.996")

    out = to_external(internal)
    assert out["custom_exchange_commission"] == Decimal("0.996")
    assert out["custom2_exchange_commission"] == Decimal("0.996")


def test_read_path_defaults_custom_exchange_for_stored_data_without_it():
    stored = to_internal(external()).model_copy(
        update={"custom_exchange_commission": None, "custom2_exchange_commission": None}
    )

    out = to_external(stored)
    assert out["custom_exchange_commission"] == out["exchange"] == Decimal("0.996")
    assert out["custom2_exchange_commission"] == Decimal("0.996")


def test_to_external_without_transfer_is_empty():
    assert to_external(None) == {}
    assert to_external(CommissionSet()) == {}
    assert to_external(CommissionSet(exchange=Decimal("0.9"), replenishment=Decimal("1"))) == {}


def test_to_external_leaves_absent_leaves_out():
    partial = CommissionSet(transfer={"BTC": Decimal("0.001")}, withdraw={"USD": Decimal("3")})

    assert to_external(partial) == {
        "transfer": {
            "USD": {"PM": Decimal("3")},
            "BTC": {"BTC": Decimal("0.001")},
        }
    }


def test_missing_required_external_field_is_rejected():
    with pytest.raises(ValidationError):
        ExternalCommissions.model_validate(external_payload(drop=["transfer.SWP.SS"]))

    with pytest.raises(ValidationError):
        ExternalCommissions.model_validate(external_payload(drop=["replenishment"]))


def test_mapper_does_not_validate_ranges():
    internal = to_internal(external({"exchange": "5", "transfer.BTC.BTC": "-1"}))

    assert internal.exchange == Decimal("5")
    assert internal.transfer["BTC"] == Decimal("-1")


def test_commission_set_rejects_currencies_outside_their_group():
    # SWP.SS only exists as a withdraw method.
    with pytest.raises(ValidationError):
        CommissionSet(transfer={"SWP_SS": Decimal("1")})

    with pytest.raises(ValidationError):
        CommissionSet(withdraw={"DOGE": Decimal("1")})

    assert CommissionSet(withdraw={"SWP_SS": Decimal("1")}).withdraw == {"SWP_SS": Decimal("1")}
