"""Unit tests for SequenceService."""

import pytest

from app.services.sequence_service import BILL_SEQUENCE, ORDER_SEQUENCE, SequenceService


@pytest.mark.asyncio
async def test_first_value_creates_counter(db):
    assert await SequenceService.next_value(db, BILL_SEQUENCE) == 1
    assert await SequenceService.next_value(db, BILL_SEQUENCE) == 2


@pytest.mark.asyncio
async def test_sequences_are_independent(db):
    await SequenceService.next_value(db, BILL_SEQUENCE)
    await SequenceService.next_value(db, BILL_SEQUENCE)
    assert await SequenceService.next_value(db, ORDER_SEQUENCE) == 1


@pytest.mark.asyncio
async def test_formatted_ids(db):
    assert await SequenceService.next_id(db, BILL_SEQUENCE) == "BR-000001"
    assert await SequenceService.next_id(db, ORDER_SEQUENCE) == "TT-000001"
    assert await SequenceService.next_id(db, ORDER_SEQUENCE) == "TT-000002"


@pytest.mark.asyncio
async def test_values_survive_across_sessions(session_factory):
    async with session_factory() as first:
        await SequenceService.next_value(first, BILL_SEQUENCE)
        await first.commit()
    async with session_factory() as second:
        assert await SequenceService.next_value(second, BILL_SEQUENCE) == 2
        await second.commit()


@pytest.mark.asyncio
async def test_rolled_back_value_is_reissued(session_factory):
    async with session_factory() as first:
        await SequenceService.next_value(first, BILL_SEQUENCE)
        await first.commit()
    async with session_factory() as aborted:
        assert await SequenceService.next_value(aborted, BILL_SEQUENCE) == 2
        await aborted.rollback()
    async with session_factory() as retried:
        assert await SequenceService.next_value(retried, BILL_SEQUENCE) == 2
