from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.contribution import Contribution
from app.models.enums import (
    FlowSource,
    LoanStatus,
    RoleName,
    TreasuryFlowCategory,
    TreasuryFlowType,
    WithdrawalStatus,
)
from app.models.loan import Loan, RepaymentSchedule
from app.models.tenant import Role, Tenant, UserRole
from app.models.treasury import TreasuryFlow
from app.models.user import User
from app.models.withdrawal import WithdrawalRequest
from app.utils.decimal_math import money

DEMO_INSTALLMENTS = 10


def _get_or_create_tenant(db: Session, *, code: str, name: str) -> Tenant:
    tenant = db.scalar(select(Tenant).where(Tenant.code == code))
    if tenant is not None:
        return tenant

    tenant = Tenant(code=code, name=name, currency="EUR", is_active=True)
    db.add(tenant)
    db.flush()
    return tenant


def _get_or_create_role(db: Session, *, role_name: RoleName) -> Role:
    role = db.scalar(select(Role).where(Role.name == role_name.value))
    if role is not None:
        return role

    role = Role(name=role_name.value, description=role_name.value.replace("_", " ").title())
    db.add(role)
    db.flush()
    return role


def _get_or_create_user(
    db: Session,
    *,
    email: str,
    full_name: str,
    role: RoleName,
) -> User:
    user = db.scalar(select(User).where(User.email == email))
    if user is not None:
        return user

    user = User(email=email, full_name=full_name, role=role, is_active=True)
    db.add(user)
    db.flush()
    return user


def _ensure_user_role(db: Session, *, tenant_id: int, user_id: int, role_id: int) -> None:
    exists = db.scalar(
        select(UserRole.id).where(
            UserRole.tenant_id == tenant_id,
            UserRole.user_id == user_id,
            UserRole.role_id == role_id,
        )
    )
    if exists is None:
        db.add(UserRole(tenant_id=tenant_id, user_id=user_id, role_id=role_id))


def _ensure_loan(
    db: Session,
    *,
    tenant_id: int,
    borrower_user_id: int | None,
    loan_number: str,
    amount: Decimal,
    status: LoanStatus,
    approval_date: date | None,
    disbursement_date: date | None,
    paid_installments: int = 0,
) -> Loan:
    loan = db.scalar(select(Loan).where(Loan.tenant_id == tenant_id, Loan.loan_number == loan_number))
    if loan is not None:
        return loan

    loan = Loan(
        tenant_id=tenant_id,
        borrower_user_id=borrower_user_id,
        loan_number=loan_number,
        amount=money(amount),
        status=status,
        approval_date=approval_date,
        disbursement_date=disbursement_date,
    )
    db.add(loan)
    db.flush()

    if disbursement_date is None:
        return loan

    installment = money(amount / DEMO_INSTALLMENTS)
    for number in range(1, DEMO_INSTALLMENTS + 1):
        due_date = disbursement_date + timedelta(days=30 * number)
        paid = number <= paid_installments
        db.add(
            RepaymentSchedule(
                tenant_id=tenant_id,
                loan_id=loan.id,
                installment_number=number,
                due_date=due_date,
                amount=installment,
                is_paid=paid,
                paid_date=due_date if paid else None,
            )
        )
    return loan


def _ensure_contribution(
    db: Session,
    *,
    tenant_id: int,
    contributor_name: str,
    amount: Decimal,
    pledge_date: date,
    received_date: date | None,
) -> None:
    exists = db.scalar(
        select(Contribution.id).where(
            Contribution.tenant_id == tenant_id,
            Contribution.contributor_name == contributor_name,
            Contribution.pledge_date == pledge_date,
        )
    )
    if exists is None:
        db.add(
            Contribution(
                tenant_id=tenant_id,
                contributor_name=contributor_name,
                amount=money(amount),
                pledge_date=pledge_date,
                received_date=received_date,
            )
        )


def _ensure_withdrawal(
    db: Session,
    *,
    tenant_id: int,
    request_number: str,
    amount: Decimal,
    reason: str,
    status: WithdrawalStatus,
    planned_date: date,
) -> None:
    exists = db.scalar(
        select(WithdrawalRequest.id).where(
            WithdrawalRequest.tenant_id == tenant_id,
            WithdrawalRequest.request_number == request_number,
        )
    )
    if exists is None:
        db.add(
            WithdrawalRequest(
                tenant_id=tenant_id,
                request_number=request_number,
                amount=money(amount),
                reason=reason,
                status=status,
                planned_date=planned_date,
                completed_date=planned_date if status == WithdrawalStatus.completed else None,
            )
        )


def _ensure_flow(
    db: Session,
    *,
    tenant_id: int,
    flow_type: TreasuryFlowType,
    category: TreasuryFlowCategory,
    amount: Decimal,
    description: str,
    expected_date: date,
    probability: Decimal,
    confidence: Decimal,
) -> None:
    exists = db.scalar(
        select(TreasuryFlow.id).where(
            TreasuryFlow.tenant_id == tenant_id,
            TreasuryFlow.description == description,
        )
    )
    if exists is None:
        db.add(
            TreasuryFlow(
                tenant_id=tenant_id,
                type=flow_type,
                category=category,
                amount=money(amount),
                description=description,
                expected_date=expected_date,
                is_actual=False,
                probability=probability,
                confidence=confidence,
                source=FlowSource.manual,
                tags=[category.value.lower()],
            )
        )


def seed_demo_data(db: Session, *, today: date | None = None) -> None:
    today = today or date.today()
    tenant = _get_or_create_tenant(db, code="GMAH", name="GMAH Demo Fund")

    roles = {
        role_name: _get_or_create_role(db, role_name=role_name)
        for role_name in [RoleName.admin, RoleName.treasurer, RoleName.committee_member, RoleName.borrower]
    }

    admin = _get_or_create_user(db, email="admin@gmah.local", full_name="Administrator", role=RoleName.admin)
    treasurer = _get_or_create_user(
        db,
        email="treasurer@gmah.local",
        full_name="Fund Treasurer",
        role=RoleName.treasurer,
    )
    committee = _get_or_create_user(
        db,
        email="committee@gmah.local",
        full_name="Committee Member",
        role=RoleName.committee_member,
    )
    borrower = _get_or_create_user(
        db,
        email="borrower@gmah.local",
        full_name="Demo Borrower",
        role=RoleName.borrower,
    )

    _ensure_user_role(db, tenant_id=tenant.id, user_id=admin.id, role_id=roles[RoleName.admin].id)
    _ensure_user_role(db, tenant_id=tenant.id, user_id=treasurer.id, role_id=roles[RoleName.treasurer].id)
    _ensure_user_role(
        db, tenant_id=tenant.id, user_id=committee.id, role_id=roles[RoleName.committee_member].id
    )
    _ensure_user_role(db, tenant_id=tenant.id, user_id=borrower.id, role_id=roles[RoleName.borrower].id)

    _ensure_loan(
        db,
        tenant_id=tenant.id,
        borrower_user_id=borrower.id,
        loan_number="LN-0001",
        amount=Decimal("30000.00"),
        status=LoanStatus.active,
        approval_date=today - timedelta(days=95),
        disbursement_date=today - timedelta(days=90),
        paid_installments=2,
    )
    _ensure_loan(
        db,
        tenant_id=tenant.id,
        borrower_user_id=borrower.id,
        loan_number="LN-0002",
        amount=Decimal("12000.00"),
        status=LoanStatus.active,
        approval_date=today - timedelta(days=50),
        disbursement_date=today - timedelta(days=45),
        paid_installments=1,
    )
    _ensure_loan(
        db,
        tenant_id=tenant.id,
        borrower_user_id=None,
        loan_number="LN-0003",
        amount=Decimal("18000.00"),
        status=LoanStatus.approved,
        approval_date=today - timedelta(days=1),
        disbursement_date=None,
    )

    for months_back in range(1, 7):
        pledged = today - timedelta(days=30 * months_back)
        _ensure_contribution(
            db,
            tenant_id=tenant.id,
            contributor_name="Cohen Family Trust",
            amount=Decimal("8000.00"),
            pledge_date=pledged,
            received_date=pledged,
        )
    _ensure_contribution(
        db,
        tenant_id=tenant.id,
        contributor_name="Levi Foundation",
        amount=Decimal("15000.00"),
        pledge_date=today + timedelta(days=12),
        received_date=None,
    )

    _ensure_withdrawal(
        db,
        tenant_id=tenant.id,
        request_number="WD-0001",
        amount=Decimal("5000.00"),
        reason="Depositor repayment",
        status=WithdrawalStatus.completed,
        planned_date=today - timedelta(days=20),
    )
    _ensure_withdrawal(
        db,
        tenant_id=tenant.id,
        request_number="WD-0002",
        amount=Decimal("9000.00"),
        reason="Depositor repayment",
        status=WithdrawalStatus.approved,
        planned_date=today + timedelta(days=7),
    )

    _ensure_flow(
        db,
        tenant_id=tenant.id,
        flow_type=TreasuryFlowType.inflow,
        category=TreasuryFlowCategory.interest_earned,
        amount=Decimal("450.00"),
        description="Bank deposit interest",
        expected_date=today + timedelta(days=25),
        probability=Decimal("95"),
        confidence=Decimal("90"),
    )
    _ensure_flow(
        db,
        tenant_id=tenant.id,
        flow_type=TreasuryFlowType.outflow,
        category=TreasuryFlowCategory.operational_expense,
        amount=Decimal("1200.00"),
        description="Annual audit fee",
        expected_date=today + timedelta(days=18),
        probability=Decimal("100"),
        confidence=Decimal("95"),
    )
    db.commit()
