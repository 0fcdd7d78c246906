"""
Commission persistence.

`CommissionsPersistence` is what the store and service depend on;
`MongoCommissionsPersistence` is the production implementation on top of the
global_settings / user_settings / users collections.

Storage format:
- Leaf values are BSON Decimal128 (exact; never floats).
- An empty override is stored as null.
- Every PyMongoError is re-raised as PersistenceError.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple

from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import OperationFailure, PyMongoError

from feedesk.core.errors import ConflictError, PersistenceError
from feedesk.features.commissions.schemas import CommissionSet
from feedesk.features.commissions.types import TRANSFER_KEYS, WITHDRAW_KEYS, CommissionGroup
from feedesk.features.global_settings.repo import GlobalSettingsRepo, version_conflict
from feedesk.features.users.repo import UsersRepo
from feedesk.features.users.schemas import UserIdentity
from feedesk.features.users.settings_repo import UserSettingsRepo

logger = logging.getLogger(__name__)

GLOBAL_COMMISSIONS_KEY = "commissions"

# Mongo server code for a write conflict between concurrent transactions.
WRITE_CONFLICT = 112

KNOWN_KEYS = {CommissionGroup.TRANSFER.value: TRANSFER_KEYS, CommissionGroup.WITHDRAW.value: WITHDRAW_KEYS}


class CommissionsPersistence(Protocol):
    async def load_global(self) -> Optional[CommissionSet]: ...

    async def load_global_versioned(self) -> Tuple[Optional[CommissionSet], int]: ...

    async def apply_global_change(
        self,
        commissions: CommissionSet,
        overrides: Mapping[str, CommissionSet],
        *,
        expected_version: int,
    ) -> int: ...

    async def load_override(self, user_id: str) -> Optional[CommissionSet]: ...

    async def save_override(self, user_id: str, commissions: Optional[CommissionSet]) -> bool: ...

    async def list_non_empty_overrides(self) -> List[Tuple[str, CommissionSet]]: ...

    async def find_user(self, user_id: str) -> Optional[UserIdentity]: ...

    async def find_users(self, user_ids: Iterable[str]) -> Dict[str, UserIdentity]: ...

    async def has_user_settings(self, user_id: str) -> bool: ...


# ---------------------------------------------------------------------------
# Document <-> model
# ---------------------------------------------------------------------------


def encode_commissions(commissions: Optional[CommissionSet]) -> Optional[Dict[str, Any]]:
    if commissions is None or commissions.is_empty():
        return None

    doc: Dict[str, Any] = {}
    for name, value in commissions.model_dump(exclude_none=True).items():
        if isinstance(value, dict):
            doc[name] = {currency: Decimal128(leaf) for currency, leaf in value.items()}
        else:
            doc[name] = Decimal128(value)
    return doc


def _decode_leaf(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Legacy documents written before Decimal128 storage.
        return Decimal(str(value))
    return value


def decode_commissions(raw: Any) -> Optional[CommissionSet]:
    if not raw or not isinstance(raw, dict):
        return None

    fields: Dict[str, Any] = {}
    for name, value in raw.items():
        if isinstance(value, dict):
            known = KNOWN_KEYS.get(name, ())
            dropped = sorted(set(value) - set(known))
            if dropped:
                logger.warning("decode_commissions:unknown_keys group=%s keys=%s", name, dropped)
            fields[name] = {
                currency: _decode_leaf(leaf) for currency, leaf in value.items() if leaf is not None and currency in known
            }
        else:
            fields[name] = _decode_leaf(value)
    commissions = CommissionSet.model_validate(fields)
    return None if commissions.is_empty() else commissions


def _is_write_conflict(exc: OperationFailure) -> bool:
    return exc.code == WRITE_CONFLICT or exc.has_error_label("TransientTransactionError")


@contextmanager
def _storage_errors(operation: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.error("commissions_storage_failed op=%s context=%s error=%s", operation, context, exc)
        raise PersistenceError(details={"operation": operation, **context}) from exc


# ---------------------------------------------------------------------------
# Mongo implementation
# ---------------------------------------------------------------------------


class MongoCommissionsPersistence:
    def __init__(self, db: AsyncIOMotorDatabase, *, use_transactions: bool = True):
        self._db = db
        self._use_transactions = use_transactions
        self._global = GlobalSettingsRepo(db)
        self._settings = UserSettingsRepo(db)
        self._users = UsersRepo(db)

    async def load_global(self) -> Optional[CommissionSet]:
        with _storage_errors("load_global"):
            raw = await self._global.get(GLOBAL_COMMISSIONS_KEY)
        return decode_commissions(raw)

    async def load_global_versioned(self) -> Tuple[Optional[CommissionSet], int]:
        with _storage_errors("load_global_versioned"):
            raw, version = await self._global.get_versioned(GLOBAL_COMMISSIONS_KEY)
        return decode_commissions(raw), version

    async def apply_global_change(
        self,
        commissions: CommissionSet,
        overrides: Mapping[str, CommissionSet],
        *,
        expected_version: int,
    ) -> int:
        """
        Write all reconciled overrides and the new global set as one unit.

        With transactions enabled this is a single Mongo transaction. Without
        them, overrides are written one by one and restored to their previous
        values if anything fails (including a version conflict on the global doc).
        """
        if self._use_transactions:
            return await self._apply_in_transaction(commissions, overrides, expected_version=expected_version)
        return await self._apply_with_rollback(commissions, overrides, expected_version=expected_version)

    async def _apply_in_transaction(
        self,
        commissions: CommissionSet,
        overrides: Mapping[str, CommissionSet],
        *,
        expected_version: int,
    ) -> int:
        with _storage_errors("apply_global_change", overrides=len(overrides)):
            try:
                async with await self._db.client.start_session() as session:
                    async with session.start_transaction():
                        for user_id, override in overrides.items():
                            matched = await self._settings.set_commissions(
                                user_id, encode_commissions(override), session=session
                            )
                            if not matched:
                                logger.warning("apply_global_change:settings_missing user_id=%s", user_id)
                        return await self._global.set_versioned(
                            GLOBAL_COMMISSIONS_KEY,
                            encode_commissions(commissions),
                            expected_version=expected_version,
                            session=session,
                        )
            except OperationFailure as exc:
                if not _is_write_conflict(exc):
                    raise
                # Another process's transaction touched the same documents first.
                logger.info("apply_global_change:write_conflict code=%s", exc.code)
                raise version_conflict(GLOBAL_COMMISSIONS_KEY, expected_version) from exc

    async def _apply_with_rollback(
        self,
        commissions: CommissionSet,
        overrides: Mapping[str, CommissionSet],
        *,
        expected_version: int,
    ) -> int:
        written: List[Tuple[str, Optional[Dict[str, Any]]]] = []
        try:
            for user_id, override in overrides.items():
                previous = await self._settings.get_commissions(user_id)
                await self._settings.set_commissions(user_id, encode_commissions(override))
                written.append((user_id, previous))

            return await self._global.set_versioned(
                GLOBAL_COMMISSIONS_KEY,
                encode_commissions(commissions),
                expected_version=expected_version,
            )
        except ConflictError:
            await self._rollback_overrides(written)
            raise
        except PyMongoError as exc:
            logger.error("apply_global_change:failed written=%s error=%s; rolling back", len(written), exc)
            await self._rollback_overrides(written)
            raise PersistenceError(details={"operation": "apply_global_change", "overrides": len(overrides)}) from exc

    async def _rollback_overrides(self, written: List[Tuple[str, Optional[Dict[str, Any]]]]) -> None:
        for user_id, previous in reversed(written):
            try:
                await self._settings.set_commissions(user_id, previous)
            except PyMongoError:
                logger.exception("apply_global_change:rollback_failed user_id=%s", user_id)

    async def load_override(self, user_id: str) -> Optional[CommissionSet]:
        with _storage_errors("load_override", user_id=user_id):
            raw = await self._settings.get_commissions(user_id)
        return decode_commissions(raw)

    async def save_override(self, user_id: str, commissions: Optional[CommissionSet]) -> bool:
        with _storage_errors("save_override", user_id=user_id):
            return await self._settings.set_commissions(user_id, encode_commissions(commissions))

    async def list_non_empty_overrides(self) -> List[Tuple[str, CommissionSet]]:
        with _storage_errors("list_non_empty_overrides"):
            docs = await self._settings.list_with_commissions()

        out: List[Tuple[str, CommissionSet]] = []
        for doc in docs:
            commissions = decode_commissions(doc.get("commissions"))
            if commissions is not None:
                out.append((str(doc["user_id"]), commissions))
        return out

    async def find_user(self, user_id: str) -> Optional[UserIdentity]:
        with _storage_errors("find_user", user_id=user_id):
            doc = await self._users.get(user_id)
        return UserIdentity.from_doc(doc) if doc else None

    async def find_users(self, user_ids: Iterable[str]) -> Dict[str, UserIdentity]:
        with _storage_errors("find_users"):
            docs = await self._users.get_many(user_ids)
        return {user_id: UserIdentity.from_doc(doc) for user_id, doc in docs.items()}

    async def has_user_settings(self, user_id: str) -> bool:
        with _storage_errors("has_user_settings", user_id=user_id):
            return await self._settings.exists(user_id)
