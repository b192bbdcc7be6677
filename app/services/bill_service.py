"""Bill Service - bill requests, QR tokens and single-use consumption"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    BillAlreadyUsedError,
    BillCancelledError,
    BillExpiredError,
    ForbiddenError,
    InvalidBillTokenError,
    InvalidInputError,
    InvalidStateError,
    MerchantInactiveError,
    NotFoundError,
)
from app.core.qr_token import encode_bill_token, decode_bill_token
from app.models.bill_request import BillRequest
from app.models.enums import BillStatus
from app.models.partner import Partner
from app.services.sequence_service import SequenceService, BILL_SEQUENCE
from app.services.settlement import Split, compute_split
from app.utils.time import get_utc_now, to_epoch_seconds

logger = logging.getLogger(__name__)


@dataclass
class ValidatedBill:
    """A scanned bill that may be paid, with amounts from its locked rate"""
    bill: BillRequest
    partner: Partner
    split: Split


def effective_status(bill: BillRequest, now: datetime) -> BillStatus:
    """
    Status a bill really has at ``now``.

    An ACTIVE bill at or past ``expires_at`` is EXPIRED whatever the stored
    row says. The instant ``now == expires_at`` already counts as expired, the
    same boundary the QR token uses (``exp <= now`` is rejected), so a token
    and its bill never disagree. Terminal states are returned unchanged.
    """
    if bill.status == BillStatus.ACTIVE and now >= bill.expires_at:
        return BillStatus.EXPIRED
    return bill.status


def _raise_for_status(status: BillStatus) -> None:
    if status == BillStatus.EXPIRED:
        raise BillExpiredError()
    if status == BillStatus.USED:
        raise BillAlreadyUsedError()
    if status == BillStatus.CANCELLED:
        raise BillCancelledError()


class BillService:
    """Service layer for bill requests"""

    @staticmethod
    def preview_split(amount: int, discount_rate: Decimal) -> Split:
        """Amounts shown for a bill; the same computation the payment order uses"""
        return compute_split(amount, discount_rate, settings.PLATFORM_FEE_RATE)

    @staticmethod
    async def create_bill(
        db: AsyncSession,
        partner: Partner,
        amount: int,
        discount_rate: Decimal,
        description: Optional[str] = None,
        expiry_minutes: Optional[int] = None,
    ) -> BillRequest:
        """
        Create an ACTIVE bill and its QR token.

        The row is flushed to claim its sequence id, the token is signed over
        that id and stored, and only then is the transaction committed. Other
        sessions never see a bill without its token.

        Raises:
            ForbiddenError: partner is not active
            InvalidInputError: amount, discount rate or expiry out of range
        """
        if not partner.is_active:
            raise ForbiddenError("Your partner account is not active")

        expiry_minutes = expiry_minutes or settings.DEFAULT_BILL_EXPIRY_MINUTES
        discount_rate = Decimal(discount_rate)
        if not settings.MIN_BILL_AMOUNT <= amount <= settings.MAX_BILL_AMOUNT:
            raise InvalidInputError(
                f"Amount must be between {settings.MIN_BILL_AMOUNT} and {settings.MAX_BILL_AMOUNT} paise",
                field="amount",
            )
        if not Decimal(0) <= discount_rate <= settings.MAX_BILL_DISCOUNT_RATE:
            raise InvalidInputError(
                f"Discount must be between 0 and {settings.MAX_BILL_DISCOUNT_RATE}%",
                field="discount_rate",
            )
        if not 1 <= expiry_minutes <= settings.MAX_BILL_EXPIRY_MINUTES:
            raise InvalidInputError(
                f"Expiry must be between 1 and {settings.MAX_BILL_EXPIRY_MINUTES} minutes",
                field="expiry_minutes",
            )

        # Whole seconds so the stored expiry and the token's exp agree exactly
        expires_at = get_utc_now().replace(microsecond=0) + timedelta(minutes=expiry_minutes)

        bill = BillRequest(
            bill_id=await SequenceService.next_id(db, BILL_SEQUENCE),
            partner_id=partner.id,
            amount=amount,
            discount_rate=discount_rate,
            description=description,
            status=BillStatus.ACTIVE,
            expires_at=expires_at,
        )
        db.add(bill)
        await db.flush()

        bill.qr_token = encode_bill_token(
            bill_id=bill.bill_id,
            partner_id=str(partner.id),
            amount=amount,
            exp=to_epoch_seconds(expires_at),
        )
        await db.commit()
        await db.refresh(bill)

        logger.info(
            "Bill created",
            extra={
                "bill_id": bill.bill_id,
                "partner_id": str(partner.id),
                "amount": amount,
                "discount_rate": str(discount_rate),
                "expires_at": expires_at.isoformat(),
            },
        )
        return bill

    @staticmethod
    async def get_bill_by_bill_id(db: AsyncSession, bill_id: str) -> Optional[BillRequest]:
        result = await db.execute(select(BillRequest).where(BillRequest.bill_id == bill_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_active(db: AsyncSession, partner_id: UUID) -> List[BillRequest]:
        """Partner's ACTIVE, unexpired bills, newest first"""
        result = await db.execute(
            select(BillRequest)
            .where(
                BillRequest.partner_id == partner_id,
                BillRequest.status == BillStatus.ACTIVE,
                BillRequest.expires_at > get_utc_now(),
            )
            .order_by(BillRequest.created_at.desc(), BillRequest.bill_id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def mark_expired(db: AsyncSession, bill: BillRequest) -> None:
        """Persist the lazy ACTIVE -> EXPIRED correction (flushed, not committed)"""
        result = await db.execute(
            update(BillRequest)
            .where(BillRequest.id == bill.id, BillRequest.status == BillStatus.ACTIVE)
            .values(status=BillStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(
                "Bill expired on read",
                extra={"bill_id": bill.bill_id, "expires_at": bill.expires_at.isoformat()},
            )
        await db.refresh(bill)

    @staticmethod
    async def cancel_bill(db: AsyncSession, partner_id: UUID, bill_id: str) -> BillRequest:
        """
        Cancel one of the partner's ACTIVE bills.

        Raises:
            NotFoundError: no such bill for this partner
            InvalidStateError: bill is not ACTIVE (including lazily expired)
        """
        result = await db.execute(
            select(BillRequest).where(
                BillRequest.bill_id == bill_id,
                BillRequest.partner_id == partner_id,
            )
        )
        bill = result.scalar_one_or_none()
        if not bill:
            raise NotFoundError("Bill not found")

        now = get_utc_now()
        if effective_status(bill, now) == BillStatus.EXPIRED and bill.status == BillStatus.ACTIVE:
            await BillService.mark_expired(db, bill)
            await db.commit()
            raise InvalidStateError("Bill is not active")
        if bill.status != BillStatus.ACTIVE:
            raise InvalidStateError("Bill is not active")

        # Conditional on ACTIVE so a concurrent payment wins cleanly
        result = await db.execute(
            update(BillRequest)
            .where(BillRequest.id == bill.id, BillRequest.status == BillStatus.ACTIVE)
            .values(status=BillStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateError("Bill is not active")

        await db.commit()
        await db.refresh(bill)
        logger.info("Bill cancelled", extra={"bill_id": bill.bill_id, "partner_id": str(partner_id)})
        return bill

    @staticmethod
    async def _check_payable(db: AsyncSession, bill: BillRequest) -> Partner:
        """Shared gate for validate and consume; returns the bill's partner"""
        now = get_utc_now()
        status = effective_status(bill, now)
        if status != bill.status:
            await BillService.mark_expired(db, bill)
            await db.commit()
        _raise_for_status(status)

        partner = await db.get(Partner, bill.partner_id)
        if not partner or not partner.can_accept_orders:
            raise MerchantInactiveError()
        return partner

    @staticmethod
    async def validate_token(db: AsyncSession, token: str) -> ValidatedBill:
        """
        Validate a scanned QR token. Does not change the bill, apart from
        persisting a lazy expiry.

        Raises:
            InvalidBillTokenError: token malformed, forged or expired
            NotFoundError: bill referenced by the token does not exist
            BillExpiredError / BillAlreadyUsedError / BillCancelledError
            MerchantInactiveError: partner can no longer accept payments
        """
        # Expiry is judged from the stored bill below, so a late scan is
        # reported as expired and the row is corrected
        payload = decode_bill_token(token, verify_exp=False)
        if payload is None:
            logger.warning("Rejected QR token", extra={"token_prefix": (token or "")[:12]})
            raise InvalidBillTokenError()

        bill = await BillService.get_bill_by_bill_id(db, payload.bill_id)
        if not bill or str(bill.partner_id) != payload.partner_id or bill.amount != payload.amount:
            raise NotFoundError("Bill not found")

        partner = await BillService._check_payable(db, bill)
        # Locked rate from the bill, never the partner's live rate
        split = BillService.preview_split(bill.amount, bill.discount_rate)
        return ValidatedBill(bill=bill, partner=partner, split=split)

    @staticmethod
    async def consume_bill(
        db: AsyncSession,
        bill_id: str,
        user_id: UUID,
        order_id: UUID,
    ) -> ValidatedBill:
        """
        Mark a bill USED by ``user_id`` for the order about to be created.

        Part of the order-creation transaction: the change is flushed but not
        committed. The flip to USED is a single UPDATE conditional on the bill
        still being ACTIVE and unexpired, so of two concurrent scans exactly
        one succeeds and the other gets BillAlreadyUsedError.
        """
        bill = await BillService.get_bill_by_bill_id(db, bill_id)
        if not bill:
            raise NotFoundError("Bill not found")
        partner = await BillService._check_payable(db, bill)

        now = get_utc_now()
        result = await db.execute(
            update(BillRequest)
            .where(
                BillRequest.id == bill.id,
                BillRequest.status == BillStatus.ACTIVE,
                BillRequest.expires_at > now,
            )
            .values(status=BillStatus.USED, used_by=user_id, used_at=now, order_id=order_id)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(bill)

        if result.rowcount != 1:
            # Lost a race (or the clock passed expiry in between)
            logger.info(
                "Bill consumption lost",
                extra={"bill_id": bill_id, "user_id": str(user_id), "status": bill.status.value},
            )
            _raise_for_status(effective_status(bill, now))
            raise BillAlreadyUsedError()

        logger.info(
            "Bill consumed",
            extra={"bill_id": bill_id, "user_id": str(user_id), "order_id": str(order_id)},
        )
        split = BillService.preview_split(bill.amount, bill.discount_rate)
        return ValidatedBill(bill=bill, partner=partner, split=split)

    @staticmethod
    async def purge_stale_bills(db: AsyncSession, grace_hours: Optional[int] = None) -> int:
        """Delete bills that expired more than ``grace_hours`` ago. Returns the count."""
        grace_hours = settings.BILL_PURGE_GRACE_HOURS if grace_hours is None else grace_hours
        cutoff = get_utc_now() - timedelta(hours=grace_hours)
        result = await db.execute(
            delete(BillRequest)
            .where(BillRequest.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info("Purged stale bills", extra={"count": result.rowcount, "cutoff": cutoff.isoformat()})
        return result.rowcount
