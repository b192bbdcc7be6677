"""Sequence Service - human-readable, collision-free ids (BR-000123, TT-000123)"""

from sqlalchemy import update, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.sequence import SequenceCounter

BILL_SEQUENCE = "bill_request"
ORDER_SEQUENCE = "order"

_PREFIXES = {
    BILL_SEQUENCE: "BR",
    ORDER_SEQUENCE: "TT",
}


class SequenceService:
    @staticmethod
    async def next_value(db: AsyncSession, name: str) -> int:
        """
        Atomically increment and return the named counter.

        A single UPDATE ... RETURNING is the only read of the counter, so two
        concurrent callers can never observe the same value. The first call
        for a name creates the row; losing that insert race just falls back to
        the increment.
        """
        stmt = (
            update(SequenceCounter)
            .where(SequenceCounter.name == name)
            .values(value=SequenceCounter.value + 1)
            .returning(SequenceCounter.value)
        )
        value = (await db.execute(stmt)).scalar_one_or_none()
        if value is not None:
            return value

        try:
            async with db.begin_nested():
                await db.execute(insert(SequenceCounter).values(name=name, value=1))
            return 1
        except IntegrityError:
            return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def next_id(db: AsyncSession, name: str) -> str:
        """Next formatted id for the sequence, e.g. ``BR-000042``"""
        value = await SequenceService.next_value(db, name)
        return f"{_PREFIXES[name]}-{value:06d}"
