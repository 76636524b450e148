"""Usage ledger: per-account monthly consumption of gated capabilities."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, select

from volley_coach.pipeline.models import UsageCheck
from volley_coach.storage.common import as_utc, build_sqlite_engine, utc_now
from volley_coach.storage.sqlmodel_models import UsageRecord
from volley_coach.tiers import UNLIMITED, Capability, Tier, capability_limit


def quota_allows(*, used: int, limit: int) -> bool:
    """-1 is unlimited, 0 is disabled, otherwise ``used < limit``."""

    if limit == UNLIMITED:
        return True
    if limit == 0:
        return False
    return used < limit


class UsageLedger:
    """Usage counters backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        self.engine.dispose()

    async def check(self, account_id: str, capability: str, *, limit: int | None = None) -> UsageCheck:
        """Read-only quota check.

        ``limit`` is the tier-derived limit; when omitted the stored limit is used.
        """

        return await asyncio.to_thread(self._check, account_id, capability, limit)

    async def increment(self, account_id: str, capability: str, *, limit: int) -> int:
        """Atomically add one use and return the new ``used`` value."""

        return await asyncio.to_thread(self._increment, account_id, capability, limit)

    async def upsert_record(
        self,
        account_id: str,
        capability: str,
        *,
        limit: int,
        used: int = 0,
        period_end: datetime | None = None,
    ) -> None:
        """Create or overwrite one usage record (billing sync and seeding)."""

        await asyncio.to_thread(self._upsert_record, account_id, capability, limit, used, period_end)

    async def ensure_period(
        self,
        account_id: str,
        capability: Capability,
        *,
        tier: Tier,
        period_end: datetime | None,
    ) -> UsageCheck:
        """Sync the stored limit with the tier table, keeping the ``used`` counter."""

        limit = capability_limit(tier, capability)
        await asyncio.to_thread(self._ensure_period, account_id, capability.value, limit, period_end)
        return await self.check(account_id, capability.value, limit=limit)

    async def reset_period(
        self,
        account_id: str,
        capability: str,
        *,
        period_end: datetime | None,
    ) -> None:
        """Zero the counter for a new billing period."""

        await asyncio.to_thread(self._reset_period, account_id, capability, period_end)

    def _check(self, account_id: str, capability: str, limit: int | None) -> UsageCheck:
        with Session(self.engine) as session:
            row = session.exec(
                select(UsageRecord).where(
                    UsageRecord.account_id == account_id,
                    UsageRecord.capability == capability,
                ),
            ).one_or_none()
        used = row.used if row is not None else 0
        effective_limit = limit if limit is not None else (row.limit_value if row is not None else 0)
        return UsageCheck(
            allowed=quota_allows(used=used, limit=effective_limit),
            used=used,
            limit=effective_limit,
            period_end=as_utc(row.period_end) if row is not None else None,
        )

    def _increment(self, account_id: str, capability: str, limit: int) -> int:
        now = utc_now()
        statement = sqlite_insert(UsageRecord).values(
            account_id=account_id,
            capability=capability,
            used=1,
            limit_value=limit,
            updated_at=now,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["account_id", "capability"],
            set_={
                "used": col(UsageRecord.used) + 1,
                "limit_value": statement.excluded.limit_value,
                "updated_at": statement.excluded.updated_at,
            },
        )
        with Session(self.engine) as session:
            session.exec(statement)  # type: ignore[call-overload]
            used = session.exec(
                select(UsageRecord.used).where(
                    UsageRecord.account_id == account_id,
                    UsageRecord.capability == capability,
                ),
            ).one()
            session.commit()
            return int(used)

    def _upsert_record(
        self,
        account_id: str,
        capability: str,
        limit: int,
        used: int,
        period_end: datetime | None,
    ) -> None:
        if used < 0:
            raise ValueError("used must be >= 0")
        with Session(self.engine) as session:
            row = session.get(UsageRecord, (account_id, capability))
            if row is None:
                row = UsageRecord(account_id=account_id, capability=capability, updated_at=utc_now())
            row.used = used
            row.limit_value = limit
            row.period_end = period_end
            row.updated_at = utc_now()
            session.add(row)
            session.commit()

    def _ensure_period(
        self,
        account_id: str,
        capability: str,
        limit: int,
        period_end: datetime | None,
    ) -> None:
        with Session(self.engine) as session:
            row = session.get(UsageRecord, (account_id, capability))
            if row is None:
                row = UsageRecord(account_id=account_id, capability=capability, used=0)
            row.limit_value = limit
            row.period_end = period_end
            row.updated_at = utc_now()
            session.add(row)
            session.commit()

    def _reset_period(self, account_id: str, capability: str, period_end: datetime | None) -> None:
        with Session(self.engine) as session:
            row = session.get(UsageRecord, (account_id, capability))
            if row is None:
                return
            row.used = 0
            row.period_end = period_end
            row.updated_at = utc_now()
            session.add(row)
            session.commit()
