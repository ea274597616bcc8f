import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import extract, update
from sqlalchemy.orm import Session

from ngnasoro.models.audit import AuditLogCategory
from ngnasoro.models.loan import ApplicationStatus, CreditApplication, LoanStatus, SfdLoan
from ngnasoro.models.sfd import SfdClient
from ngnasoro.services.audit import log_audit_event
from ngnasoro.services.ledger import ClientNotFound, to_amount
from ngnasoro.services.notifications import format_fcfa, notify

logger = logging.getLogger("ngnasoro.credit")

MAX_DURATION_MONTHS = 120
KYC_SCORES = {0: 0, 1: 60, 2: 80, 3: 100}


class WorkflowError(ValueError):
    pass


class ApplicationNotFound(WorkflowError):
    pass


def compute_score(amount: Decimal, duration_months: int, kyc_level: int) -> int:
    """Weighted 0..100 score: smaller amounts, shorter terms and higher KYC score better."""
    amount_score = max(Decimal("0"), 100 - amount / 100000)
    kyc_score = KYC_SCORES.get(kyc_level, 100 if kyc_level > 3 else 0)
    duration_score = max(0, 100 - duration_months * 2)
    score = amount_score * Decimal("0.4") + Decimal(kyc_score) * Decimal("0.4") + Decimal(duration_score) * Decimal("0.2")
    return int(score.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def monthly_payment(amount: Decimal, annual_rate: Decimal, duration_months: int) -> Decimal:
    """Amortised monthly instalment, rounded to the whole franc."""
    if annual_rate <= 0:
        value = amount / duration_months
    else:
        rate = annual_rate / Decimal(100) / Decimal(12)
        factor = (1 + rate) ** duration_months
        value = amount * rate * factor / (factor - 1)
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _next_reference(db: Session) -> str:
    year = datetime.now(timezone.utc).year
    count = (
        db.query(CreditApplication)
        .filter(extract("year", CreditApplication.created_at) == year)
        .count()
    )
    return f"CR-{year}-{count + 1:04d}"


def create_application(
    db: Session,
    client_id,
    amount,
    purpose: str,
    duration_months: int,
    created_by,
    interest_rate=Decimal("0"),
    sfd_id=None,
) -> CreditApplication:
    value = to_amount(amount)
    if value <= 0:
        raise WorkflowError("Amount must be greater than 0")
    if not 1 <= int(duration_months) <= MAX_DURATION_MONTHS:
        raise WorkflowError(f"Duration must be between 1 and {MAX_DURATION_MONTHS} months")
    if not purpose or not purpose.strip():
        raise WorkflowError("Purpose is required")
    rate = Decimal(str(interest_rate))
    if rate < 0:
        raise WorkflowError("Interest rate cannot be negative")

    client = db.query(SfdClient).filter(SfdClient.id == client_id).first()
    if not client:
        raise ClientNotFound("Client not found")
    if sfd_id is not None and client.sfd_id != sfd_id:
        raise ClientNotFound("Client not found")

    application = CreditApplication(
        reference=_next_reference(db),
        sfd_id=client.sfd_id,
        client_id=client.id,
        amount=value,
        purpose=purpose.strip(),
        duration_months=int(duration_months),
        interest_rate=rate,
        score=compute_score(value, int(duration_months), client.kyc_level or 0),
        status=ApplicationStatus.PENDING,
        created_by=created_by,
    )
    db.add(application)
    db.flush()
    log_audit_event(
        db,
        action="credit_application_created",
        category=AuditLogCategory.FINANCIAL,
        user_id=created_by,
        target_resource=f"credit_applications/{application.id}",
        details={"reference": application.reference, "client_id": client.id, "amount": value},
    )
    db.commit()
    db.refresh(application)
    logger.info("Credit application %s created for client %s", application.reference, client.id)
    return application


def get_applications(db: Session, sfd_id=None, status: Optional[str] = None, limit: int = 100):
    query = db.query(CreditApplication)
    if sfd_id:
        query = query.filter(CreditApplication.sfd_id == sfd_id)
    if status:
        query = query.filter(CreditApplication.status == status)
    return query.order_by(CreditApplication.created_at.desc()).limit(limit).all()


def get_application(db: Session, application_id) -> CreditApplication:
    application = db.query(CreditApplication).filter(CreditApplication.id == application_id).first()
    if not application:
        raise ApplicationNotFound("Application not found")
    return application


def _transition(db: Session, application: CreditApplication, status: ApplicationStatus, reviewer_id, reason=None):
    # Only one reviewer can move an application out of pending
    result = db.execute(
        update(CreditApplication)
        .where(CreditApplication.id == application.id, CreditApplication.status == ApplicationStatus.PENDING)
        .values(status=status, reviewed_by=reviewer_id, reviewed_at=datetime.now(timezone.utc), rejection_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise WorkflowError(f"Application is not pending (current status: {application.status.value})")


def approve_application(db: Session, application_id, reviewer_id) -> tuple[CreditApplication, SfdLoan]:
    application = get_application(db, application_id)
    if application.status != ApplicationStatus.PENDING:
        raise WorkflowError(f"Application is not pending (current status: {application.status.value})")

    try:
        _transition(db, application, ApplicationStatus.APPROVED, reviewer_id)

        amount = Decimal(application.amount)
        rate = Decimal(application.interest_rate or 0)
        instalment = monthly_payment(amount, rate, application.duration_months)
        total_due = amount if rate <= 0 else instalment * application.duration_months
        loan = SfdLoan(
            sfd_id=application.sfd_id,
            client_id=application.client_id,
            application_id=application.id,
            amount=amount,
            interest_rate=rate,
            duration_months=application.duration_months,
            monthly_payment=instalment,
            remaining_amount=total_due,
            status=LoanStatus.APPROVED,
        )
        db.add(loan)
        db.flush()

        if application.created_by:
            notify(
                db,
                recipient_id=application.created_by,
                sender_id=reviewer_id,
                title="Demande de crédit approuvée",
                message=f"La demande {application.reference} de {format_fcfa(amount)} FCFA a été approuvée",
                type="credit",
                action_url=f"/sfd/loans/{loan.id}",
            )
        log_audit_event(
            db,
            action="credit_approval",
            category=AuditLogCategory.FINANCIAL,
            user_id=reviewer_id,
            target_resource=f"credit_applications/{application.id}",
            details={"reference": application.reference, "amount": amount, "loan_id": loan.id},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    db.refresh(loan)
    logger.info("Credit application %s approved, loan %s", application.reference, loan.id)
    return application, loan


def reject_application(db: Session, application_id, reviewer_id, reason: str) -> CreditApplication:
    if not reason or not reason.strip():
        raise WorkflowError("Rejection reason is required")
    application = get_application(db, application_id)
    if application.status != ApplicationStatus.PENDING:
        raise WorkflowError(f"Application is not pending (current status: {application.status.value})")

    try:
        _transition(db, application, ApplicationStatus.REJECTED, reviewer_id, reason.strip())
        if application.created_by:
            notify(
                db,
                recipient_id=application.created_by,
                sender_id=reviewer_id,
                title="Demande de crédit rejetée",
                message=f"La demande {application.reference} a été rejetée: {reason.strip()}",
                type="credit",
            )
        log_audit_event(
            db,
            action="credit_rejection",
            category=AuditLogCategory.FINANCIAL,
            user_id=reviewer_id,
            target_resource=f"credit_applications/{application.id}",
            details={"reference": application.reference, "reason": reason.strip()},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(application)
    logger.info("Credit application %s rejected", application.reference)
    return application
