"""
Override reconciliation.

When the global commission set changes, every per-user override is re-examined
leaf by leaf (transfer.BTC and transfer.ETH are independent):

- absent leaf            -> stays absent (keeps inheriting the new global value)
- equal to old global    -> was never a real customization; follows the new global value
- differs from old global -> deliberate customization; kept as is

Equality is Decimal value equality with no tolerance. A user who deliberately
picked the old default is indistinguishable from one who never customized and
will follow the new global value too.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Tuple

from feedesk.features.commissions.schemas import CommissionSet

logger = logging.getLogger(__name__)


def reconcile(
    old_global: Optional[CommissionSet],
    new_global: CommissionSet,
    override: CommissionSet,
) -> CommissionSet:
    old_leaves = old_global.leaves() if old_global is not None else {}
    new_leaves = new_global.leaves()

    leaves = override.leaves()
    for path, value in list(leaves.items()):
        if path not in old_leaves or path not in new_leaves:
            continue
        if value == old_leaves[path]:
            leaves[path] = new_leaves[path]

    return CommissionSet.from_leaves(leaves)


def reconcile_all(
    old_global: Optional[CommissionSet],
    new_global: CommissionSet,
    overrides: Iterable[Tuple[str, CommissionSet]],
) -> Dict[str, CommissionSet]:
    """
    Reconcile every override; return only those whose leaves actually changed,
    keyed by user_id.
    """
    changed: Dict[str, CommissionSet] = {}
    total = 0
    for user_id, override in overrides:
        total += 1
        updated = reconcile(old_global, new_global, override)
        if updated.leaves() != override.leaves():
            changed[user_id] = updated

    logger.info("reconcile_all overrides=%s changed=%s", total, len(changed))
    return changed


def overlay(global_set: Optional[CommissionSet], override: CommissionSet) -> CommissionSet:
    """Effective commissions for a user: override leaves on top of the global ones."""
    base = global_set.leaves() if global_set is not None else {}
    return CommissionSet.from_leaves({**base, **override.leaves()})
