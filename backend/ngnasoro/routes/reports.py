from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability
from ngnasoro.deps import get_auth_context, get_db, require_capability
from ngnasoro.schemas.transaction import TransactionRead
from ngnasoro.services.reports import financial_overview, render_transactions_csv, transaction_report

router = APIRouter(prefix="/reports", tags=["Reports"])


def _scoped_sfd(ctx: AuthContext, requested: Optional[UUID]) -> Optional[UUID]:
    if ctx.is_admin:
        return requested
    if requested and requested != ctx.sfd_id:
        raise HTTPException(status_code=403, detail="Permission denied")
    return ctx.sfd_id


def _csv(content: str, name: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{name}_{datetime.now(timezone.utc):%Y%m%d}.csv"'},
    )


@router.get("/overview")
def overview(
    sfd_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.EXPORT_REPORTS)),
):
    """
    Money movement per period (today / week / month / year), plus holdings,
    outstanding loans and approved subsidies, which are the same across periods.
    """
    return jsonable_encoder(financial_overview(db, sfd_id=_scoped_sfd(ctx, sfd_id)))


@router.get("/transactions")
def transactions(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    sfd_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    format: Literal["json", "csv"] = Query("json"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.EXPORT_REPORTS)),
):
    rows = transaction_report(
        db, start_date=start_date, end_date=end_date, sfd_id=_scoped_sfd(ctx, sfd_id), user_id=user_id
    )
    if format == "csv":
        return _csv(render_transactions_csv(rows), "transactions")
    return jsonable_encoder([TransactionRead.model_validate(tx) for tx in rows])


@router.get("/me/transactions")
def my_statement(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    format: Literal["json", "csv"] = Query("json"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    rows = transaction_report(db, start_date=start_date, end_date=end_date, user_id=ctx.user_id)
    if format == "csv":
        return _csv(render_transactions_csv(rows), "releve")
    return jsonable_encoder([TransactionRead.model_validate(tx) for tx in rows])
