"""Bill QR token codec.

A token is the URL-safe base64 of ``{"billId", "partnerId", "amount", "exp",
"sig"}`` where ``sig`` is a truncated HMAC-SHA256 over the canonical JSON of
the other four fields. Decoding never raises: every failure (bad encoding,
bad shape, bad signature, expired) is reported as ``None`` so callers cannot
tell the reasons apart.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from app.config import settings


@dataclass(frozen=True)
class BillTokenPayload:
    bill_id: str
    partner_id: str
    amount: int
    exp: int

    def as_claims(self) -> dict:
        return {
            "billId": self.bill_id,
            "partnerId": self.partner_id,
            "amount": self.amount,
            "exp": self.exp,
        }


def _canonical(claims: dict) -> bytes:
    return json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _sign(claims: dict, secret: str, length: int) -> str:
    digest = hmac.new(secret.encode("utf-8"), _canonical(claims), hashlib.sha256).hexdigest()
    return digest[:length]


def encode_bill_token(
    bill_id: str,
    partner_id: str,
    amount: int,
    exp: int,
    secret: Optional[str] = None,
) -> str:
    """Sign and encode a bill payload into an ASCII token suitable for a QR image"""
    secret = secret or settings.qr_signing_key
    payload = BillTokenPayload(bill_id=bill_id, partner_id=partner_id, amount=amount, exp=exp)
    claims = payload.as_claims()
    claims["sig"] = _sign(payload.as_claims(), secret, settings.QR_SIGNATURE_LENGTH)
    return base64.urlsafe_b64encode(_canonical(claims)).decode("ascii")


def decode_bill_token(
    token: str,
    now: Optional[int] = None,
    secret: Optional[str] = None,
    verify_exp: bool = True,
) -> Optional[BillTokenPayload]:
    """
    Verify and decode a bill token.

    Args:
        token: Token as scanned from the QR code
        now: Current Unix time in seconds (defaults to the wall clock)
        secret: Signing secret (defaults to the configured QR secret)
        verify_exp: Reject tokens at or past ``exp``. Callers that hold the
            authoritative expiry elsewhere may turn this off.

    Returns:
        The payload, or None if the token is malformed, forged or expired
    """
    secret = secret or settings.qr_signing_key
    now = int(time.time()) if now is None else now

    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        claims = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError, AttributeError):
        return None

    if not isinstance(claims, dict) or set(claims) != {"billId", "partnerId", "amount", "exp", "sig"}:
        return None

    sig = claims.pop("sig")
    bill_id, partner_id = claims["billId"], claims["partnerId"]
    amount, exp = claims["amount"], claims["exp"]
    if not (
        isinstance(sig, str)
        and isinstance(bill_id, str)
        and isinstance(partner_id, str)
        # bool is an int subclass; reject it explicitly
        and isinstance(amount, int) and not isinstance(amount, bool)
        and isinstance(exp, int) and not isinstance(exp, bool)
    ):
        return None

    expected = _sign(claims, secret, settings.QR_SIGNATURE_LENGTH)
    if not hmac.compare_digest(sig.encode("utf-8"), expected.encode("utf-8")):
        return None

    if verify_exp and exp <= now:
        return None

    return BillTokenPayload(bill_id=bill_id, partner_id=partner_id, amount=amount, exp=exp)
