"""Unit tests for override reconciliation on global commission changes."""

from decimal import Decimal

from feedesk.features.commissions.mapper import to_internal
from feedesk.features.commissions.merge import overlay, reconcile, reconcile_all
from feedesk.features.commissions.schemas import CommissionSet
from tests.fakes import external

D = Decimal


def _global(changes=None) -> CommissionSet:
    return to_internal(external(changes))


def test_reconcile_with_unchanged_global_is_identity():
    g = _global()
    overrides = [
        CommissionSet(transfer={"USD": D("1"), "BTC": D("0.1")}, exchange=D("0.5")),
        to_internal(external({"transfer.ETH.ERC20": "0.02"})),
        CommissionSet(withdraw={"SWP_SS": D("9")}),
    ]
    for o in overrides:
        assert reconcile(g, g, o) == o


def test_customized_leaf_is_preserved():
    old = _global()
    new = _global({"transfer.USD.SW": "2", "exchange": "0.997"})
    o = CommissionSet(transfer={"USD": D("5")}, exchange=D("0.9"))

    out = reconcile(old, new, o)

    assert out.transfer["USD"] == D("5")
    assert out.exchange == D("0.9")


def test_leaf_equal_to_old_global_follows_new_global():
    old = _global()
    new = _global({"transfer.USD.SW": "2", "exchange": "0.997"})
    o = CommissionSet(transfer={"USD": D("1")}, exchange=D("0.996"))

    out = reconcile(old, new, o)

    assert out.transfer["USD"] == D("2")
    assert out.exchange == D("0.997")


def test_absent_leaf_stays_absent_and_inherits_through_overlay():
    old = _global()
    new = _global({"transfer.ETH.ERC20": "0.02"})
    o = CommissionSet(transfer={"BTC": D("0.1")})

    out = reconcile(old, new, o)

    assert "ETH" not in out.transfer
    assert out.withdraw is None
    assert overlay(new, out).transfer["ETH"] == D("0.02")


def test_leaves_are_reconciled_independently():
    old = _global()
    new = _global({"transfer.BTC.BTC": "0.001", "transfer.ETH.ERC20": "0.02"})
    # BTC customized, ETH coincidentally equal to the old default.
    o = CommissionSet(
        transfer={"BTC": D("0.0007"), "ETH": D("0.008")},
        withdraw={"BTC": D("0.0005"), "ETH": D("0.5")},
    )

    out = reconcile(old, new, o)

    assert out.transfer["BTC"] == D("0.0007")
    assert out.transfer["ETH"] == D("0.02")
    assert out.withdraw["BTC"] == D("0.001")
    assert out.withdraw["ETH"] == D("0.5")


def test_equality_is_exact():
    old = _global()
    new = _global({"transfer.USD.SW": "2"})
    o = CommissionSet(transfer={"USD": D("1.0000001")})

    assert reconcile(old, new, o).transfer["USD"] == D("1.0000001")


def test_equal_value_with_different_scale_counts_as_equal():
    old = _global()
    new = _global({"transfer.USD.SW": "2"})
    o = CommissionSet(transfer={"USD": D("1.00")})

    assert reconcile(old, new, o).transfer["USD"] == D("2")


def test_no_previous_global_keeps_override():
    new = _global()
    o = CommissionSet(transfer={"USD": D("1")}, replenishment=D("7"))

    assert reconcile(None, new, o) == o


def test_reconcile_all_returns_only_changed_overrides():
    old = _global()
    new = _global({"transfer.USD.SW": "2"})
    overrides = [
        ("coincidental", CommissionSet(transfer={"USD": D("1")})),
        ("diverged", CommissionSet(transfer={"USD": D("5")})),
        ("other-field", CommissionSet(replenishment=D("3"))),
    ]

    changed = reconcile_all(old, new, overrides)

    assert list(changed) == ["coincidental"]
    assert changed["coincidental"].transfer["USD"] == D("2")


def test_overlay_prefers_override_leaves():
    g = _global()
    o = CommissionSet(transfer={"USD": D("9")}, exchange=D("0.5"))

    eff = overlay(g, o)

    assert eff.transfer["USD"] == D("9")
    assert eff.exchange == D("0.5")
    assert eff.transfer["EUR"] == g.transfer["EUR"]
    assert eff.withdraw == g.withdraw
    assert eff.replenishment == g.replenishment
