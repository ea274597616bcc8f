from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability
from ngnasoro.deps import get_auth_context, get_db, require_capability
from ngnasoro.models.loan import LoanStatus, SfdLoan
from ngnasoro.models.sfd import SfdClient
from ngnasoro.models.transaction import TransactionStatus, TransactionType
from ngnasoro.schemas.transaction import (
    LoanOperationResult,
    LoanRead,
    LoanRepayment,
    TransactionPage,
    TransactionRead,
)
from ngnasoro.services import ledger

router = APIRouter(tags=["Transactions"])


def _scoped_sfd(ctx: AuthContext, requested: Optional[UUID]) -> Optional[UUID]:
    if ctx.is_admin:
        return requested
    if requested and requested != ctx.sfd_id:
        raise HTTPException(status_code=403, detail="Permission denied")
    return ctx.sfd_id


@router.get("/transactions", response_model=TransactionPage)
def list_transactions(
    type: Optional[TransactionType] = Query(None),
    status: Optional[TransactionStatus] = Query(None),
    sfd_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.VIEW_BALANCES)),
):
    """Paginated ledger for supervision; SFD staff only see their own SFD."""
    total, rows = ledger.list_transactions(
        db,
        sfd_id=_scoped_sfd(ctx, sfd_id),
        user_id=user_id,
        tx_type=type.value if type else None,
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )
    return {"total": total, "skip": skip, "limit": limit, "transactions": rows}


@router.get("/transactions/me", response_model=list[TransactionRead])
def my_transactions(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return ledger.get_transactions(db, ctx.user_id, limit=limit)


# --- Loans ---
@router.get("/loans", response_model=list[LoanRead])
def list_loans(
    status: Optional[LoanStatus] = Query(None),
    sfd_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    query = db.query(SfdLoan)
    if ctx.can(Capability.VIEW_BALANCES):
        scoped = _scoped_sfd(ctx, sfd_id)
        if scoped:
            query = query.filter(SfdLoan.sfd_id == scoped)
    else:
        # Borrowers see the loans attached to their own client file
        query = query.join(SfdClient, SfdLoan.client_id == SfdClient.id).filter(SfdClient.user_id == ctx.user_id)
    if status:
        query = query.filter(SfdLoan.status == status)
    return query.order_by(SfdLoan.created_at.desc()).all()


def _loan_for(db: Session, loan_id: UUID, ctx: AuthContext) -> SfdLoan:
    loan = db.query(SfdLoan).filter(SfdLoan.id == loan_id).first()
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    if not ctx.can_access_sfd(loan.sfd_id):
        raise HTTPException(status_code=403, detail="Permission denied")
    return loan


@router.post("/loans/{loan_id}/disburse", response_model=LoanOperationResult)
def disburse_loan(
    loan_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.PERFORM_TRANSACTIONS)),
):
    loan = _loan_for(db, loan_id, ctx)
    try:
        result = ledger.process_loan_disbursement(db, loan.id, performed_by=ctx.user_id)
    except ledger.LoanStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ledger.LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    db.refresh(loan)
    return {"success": True, "loan": loan, "balance": result.balance, "transaction_id": result.transaction_id}


@router.post("/loans/{loan_id}/repay", response_model=LoanOperationResult)
def repay_loan(
    loan_id: UUID,
    payload: LoanRepayment,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    loan = db.query(SfdLoan).filter(SfdLoan.id == loan_id).first()
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    borrower_id = db.query(SfdClient.user_id).filter(SfdClient.id == loan.client_id).scalar()
    # Borrowers repay their own loans; staff need cash desk rights in the loan's SFD
    if borrower_id != ctx.user_id and not (
        ctx.can(Capability.PERFORM_TRANSACTIONS) and ctx.can_access_sfd(loan.sfd_id)
    ):
        raise HTTPException(status_code=403, detail="Permission denied")
    try:
        result = ledger.process_loan_repayment(db, loan.id, payload.amount, performed_by=ctx.user_id)
    except ledger.LoanStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ledger.LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    db.refresh(loan)
    return {
        "success": True,
        "loan": loan,
        "balance": result.balance,
        "transaction_id": result.transaction_id,
        "penalty": result.penalty,
    }
