import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability, Role
from ngnasoro.deps import get_auth_context, get_db
from ngnasoro.schemas.credit import (
    CreditApplicationCreate,
    CreditApplicationFilter,
    CreditApplicationRead,
    CreditDecision,
)
from ngnasoro.schemas.transaction import LoanRead
from ngnasoro.services import credit
from ngnasoro.services.ledger import LedgerError

logger = logging.getLogger("ngnasoro.credit_manager")

router = APIRouter(tags=["Credit manager"])

ACTIONS = ("create_application", "get_applications", "approve_application", "reject_application")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _failure(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "message": message})


def _invalid(e: ValidationError) -> JSONResponse:
    first = e.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "payload"
    return _error(400, f"Invalid parameter {field}: {first['msg']}")


def _create(db: Session, ctx: AuthContext, payload: dict):
    if not ctx.can(Capability.SUBMIT_CREDIT):
        return _error(403, "Permission denied")
    data = CreditApplicationCreate.model_validate(payload)
    application = credit.create_application(
        db,
        client_id=data.client_id,
        amount=data.amount,
        purpose=data.purpose,
        duration_months=data.duration_months,
        interest_rate=data.interest_rate,
        created_by=ctx.user_id,
        sfd_id=None if ctx.is_admin else ctx.sfd_id,
    )
    return CreditApplicationRead.model_validate(application)


def _list(db: Session, ctx: AuthContext, payload: dict):
    if not (ctx.can(Capability.APPROVE_CREDIT) or ctx.can(Capability.SUBMIT_CREDIT)):
        return _error(403, "Permission denied")
    filters = CreditApplicationFilter.model_validate(payload)
    sfd_id = filters.sfd_id if ctx.is_admin else ctx.sfd_id
    applications = credit.get_applications(
        db,
        sfd_id=sfd_id,
        status=filters.status.value if filters.status else None,
        limit=filters.limit,
    )
    return [CreditApplicationRead.model_validate(a) for a in applications]


def _approve(db: Session, ctx: AuthContext, payload: dict):
    decision = CreditDecision.model_validate(payload)
    application, loan = credit.approve_application(db, decision.application_id, reviewer_id=ctx.user_id)
    return {
        "application": CreditApplicationRead.model_validate(application),
        "loan": LoanRead.model_validate(loan),
    }


def _reject(db: Session, ctx: AuthContext, payload: dict):
    decision = CreditDecision.model_validate(payload)
    if not decision.reason or not decision.reason.strip():
        return _error(400, "Rejection reason is required")
    application = credit.reject_application(db, decision.application_id, ctx.user_id, decision.reason)
    return CreditApplicationRead.model_validate(application)


HANDLERS = {
    "create_application": _create,
    "get_applications": _list,
    "approve_application": _approve,
    "reject_application": _reject,
}


@router.post("/credit-manager")
async def credit_manager(
    request: Request,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """
    Credit application workflow: create_application | get_applications |
    approve_application | reject_application.
    Approving and rejecting are reserved to the MEREF admin role.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Invalid JSON body")
    if not isinstance(body, dict):
        return _error(400, "Request body must be an object")

    action = body.get("action")
    payload = body.get("payload") or {}
    if action not in HANDLERS:
        return _error(400, f"Unknown action: {action}")
    if not isinstance(payload, dict):
        return _error(400, "payload must be an object")

    if action in ("approve_application", "reject_application") and ctx.role != Role.ADMIN:
        logger.warning("User %s (%s) attempted %s", ctx.user_id, ctx.role.value, action)
        return _error(403, "Admin access required")

    try:
        data = HANDLERS[action](db, ctx, payload)
    except ValidationError as e:
        return _invalid(e)
    except (credit.WorkflowError, LedgerError) as e:
        logger.warning("credit-manager %s rejected: %s", action, e)
        return _failure(str(e))
    except Exception:
        logger.exception("credit-manager %s failed", action)
        return _failure("An unexpected error occurred")

    if isinstance(data, JSONResponse):
        return data
    return {"success": True, "data": jsonable_encoder(data)}
