import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability, Role
from ngnasoro.deps import get_auth_context, get_db
from ngnasoro.schemas.transaction import TransactionRead
from ngnasoro.schemas.wallet import ClientAccountAction
from ngnasoro.services import ledger

logger = logging.getLogger("ngnasoro.client_accounts")

router = APIRouter(tags=["Client accounts"])

READ_ACTIONS = {"getBalance", "getTransactions"}
MUTATION_CAPABILITIES = {
    "deposit": Capability.PERFORM_TRANSACTIONS,
    "withdrawal": Capability.PERFORM_TRANSACTIONS,
    "updateBalance": Capability.ADJUST_BALANCES,
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _failure(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "message": message})


def _validate(payload: ClientAccountAction, ctx: AuthContext) -> str | None:
    if payload.action in READ_ACTIONS:
        if not payload.clientId and not payload.userId and ctx.role not in (Role.CLIENT, Role.USER):
            return "Either userId or clientId is required"
        return None

    if not payload.clientId and not payload.userId:
        return "Either userId or clientId is required"
    if payload.amount is None:
        return "Amount is required"
    if not payload.amount.is_finite():
        return "Invalid amount"
    if payload.action == "updateBalance":
        if payload.amount == 0:
            return "Amount must not be zero"
    elif payload.amount <= 0:
        return "Amount must be greater than 0"
    return None


def _authorize(ctx: AuthContext, action: str, target_user_id, target_sfd_id) -> bool:
    if action in READ_ACTIONS:
        if target_user_id == ctx.user_id and ctx.can(Capability.VIEW_OWN_ACCOUNT):
            return True
        if not ctx.can(Capability.VIEW_BALANCES):
            return False
    elif not ctx.can(MUTATION_CAPABILITIES[action]):
        return False
    return ctx.can_access_sfd(target_sfd_id)


@router.post("/client-accounts")
async def client_accounts(
    request: Request,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """
    Account operations in one action-style endpoint:
    getBalance | updateBalance | deposit | withdrawal | getTransactions.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Invalid JSON body")

    try:
        payload = ClientAccountAction.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "body"
        return _error(400, f"Invalid parameter {field}: {first['msg']}")

    message = _validate(payload, ctx)
    if message:
        return _error(400, message)

    # Role gate before touching any account
    if payload.action not in READ_ACTIONS and not ctx.can(MUTATION_CAPABILITIES[payload.action]):
        return _error(403, "Permission denied")

    try:
        if not payload.clientId and not payload.userId:
            target_user_id, target_sfd_id = ctx.user_id, ctx.sfd_id
        else:
            target_user_id, target_sfd_id = ledger.resolve_user_id(
                db,
                client_id=payload.clientId,
                user_id=payload.userId,
                require_user=payload.action not in READ_ACTIONS,
            )

        if not _authorize(ctx, payload.action, target_user_id, target_sfd_id):
            return _error(403, "Permission denied")

        if payload.action == "getBalance":
            balance = ledger.get_balance(db, target_user_id)
            return {"success": True, **jsonable_encoder(balance)}

        if payload.action == "getTransactions":
            rows = ledger.get_transactions(db, target_user_id, limit=max(1, min(payload.limit, 200)))
            return jsonable_encoder([TransactionRead.model_validate(tx) for tx in rows])

        options = dict(
            description=payload.description,
            sfd_id=payload.sfdId or target_sfd_id,
            performed_by=ctx.user_id,
        )
        if payload.action == "deposit":
            result = ledger.process_deposit(db, target_user_id, payload.amount, **options)
            done = "Dépôt effectué avec succès"
        elif payload.action == "withdrawal":
            result = ledger.process_withdrawal(db, target_user_id, payload.amount, **options)
            done = "Retrait effectué avec succès"
        else:
            result = ledger.update_balance(db, target_user_id, payload.amount, **options)
            done = "Solde mis à jour avec succès"

        return jsonable_encoder({
            "success": True,
            "balance": result.balance,
            "transaction_id": result.transaction_id,
            "message": done,
        })

    except ledger.LedgerError as e:
        logger.warning("client-accounts %s rejected: %s", payload.action, e)
        return _failure(str(e))
    except Exception:
        logger.exception("client-accounts %s failed", payload.action)
        return _failure("An unexpected error occurred")
