import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ngnasoro.core.config import settings
from ngnasoro.deps import get_db
from ngnasoro.models.deposit import MobileMoneyWebhook
from ngnasoro.models.transaction import TransactionType
from ngnasoro.services import ledger
from ngnasoro.services.clients import find_client_by_phone, normalize_phone

logger = logging.getLogger("ngnasoro.mobile_money")

router = APIRouter(prefix="/webhooks", tags=["Mobile money"])

CREDIT_STATUSES = ("completed", "success")


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """HMAC-SHA256 of the raw body, hex encoded, as sent in ``X-Signature``."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return hmac.compare_digest(expected, signature.strip().lower())


def safe_json_load(body: bytes):
    """
    Operators sometimes wrap the JSON in extra characters.
    Extracts the first JSON object only.
    """
    text = body.decode("utf-8", errors="ignore").strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start == -1 or end == 0:
        return None
    try:
        data = json.loads(text[start:end])
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


@router.post("/mobile-money")
async def mobile_money_webhook(
    request: Request,
    x_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    body = await request.body()

    secret = settings.MOBILE_MONEY_WEBHOOK_SECRET
    if secret and not verify_signature(body, x_signature, secret):
        logger.warning("Rejected mobile money webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    data = safe_json_load(body)
    if not data:
        return {"status": "invalid_json"}

    operator = str(data.get("operator") or "").strip().lower()
    transaction_id = str(data.get("transaction_id") or "").strip()
    event_type = str(data.get("event_type") or "deposit").strip().lower()
    event_status = str(data.get("status") or "").strip().lower()
    phone = normalize_phone(data.get("phone_number"))
    if not operator or not transaction_id:
        return {"status": "invalid_payload"}
    try:
        amount = ledger.to_amount(data.get("amount"))
    except ledger.LedgerError:
        return {"status": "invalid_payload"}
    if amount <= 0:
        return {"status": "invalid_payload"}

    exists = db.query(MobileMoneyWebhook).filter_by(operator=operator, transaction_id=transaction_id).first()
    if exists:
        return {"status": "duplicate"}

    hook = MobileMoneyWebhook(
        operator=operator,
        transaction_id=transaction_id,
        event_type=event_type,
        amount=amount,
        phone_number=phone,
        status=event_status,
        payload=data,
        processed=False,
    )
    db.add(hook)

    outcome = "stored"
    try:
        db.flush()
        if event_type == "deposit" and event_status in CREDIT_STATUSES:
            client = find_client_by_phone(db, phone) if phone else None
            if client and client.user_id:
                result = ledger.update_balance(
                    db,
                    client.user_id,
                    amount,
                    description=f"Dépôt Mobile Money ({operator})",
                    sfd_id=client.sfd_id,
                    tx_type=TransactionType.DEPOSIT,
                    payment_method="mobile_money",
                    reference_id=transaction_id,
                    commit=False,
                )
                hook.matched_user_id = client.user_id
                hook.ledger_transaction_id = result.transaction_id
                outcome = "credited"
            else:
                outcome = "unmatched"
        hook.processed = True
        db.commit()
    except IntegrityError:
        # Same operator transaction delivered twice concurrently
        db.rollback()
        return {"status": "duplicate"}

    logger.info("Mobile money %s %s from %s: %s", operator, transaction_id, phone, outcome)
    response = {"status": outcome, "operator": operator, "transaction_id": transaction_id, "amount": float(amount)}
    if outcome == "credited":
        response["ledger_transaction_id"] = str(hook.ledger_transaction_id)
    return response
