from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
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
from app.models.tenant import Tenant
from app.models.treasury import TreasuryFlow
from app.models.user import User
from app.models.withdrawal import WithdrawalRequest
from app.services.flow_aggregator import aggregate_flows
from app.services.flow_reader import SqlFlowReader
from app.utils.decimal_math import money


START = date(2026, 3, 1)
END = date(2026, 3, 31)


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _seed(db: Session) -> None:
    db.add_all(
        [
            Tenant(id=1, code="T1", name="Tenant 1", is_active=True),
            Tenant(id=2, code="T2", name="Tenant 2", is_active=True),
            User(email="admin@test.com", full_name="Admin", role=RoleName.admin, is_active=True),
        ]
    )
    db.flush()

    active = Loan(
        tenant_id=1,
        loan_number="L-1",
        amount=money("3000"),
        status=LoanStatus.active,
        approval_date=date(2026, 1, 10),
        disbursement_date=date(2026, 1, 15),
    )
    pending_early = Loan(
        tenant_id=1,
        loan_number="L-2",
        amount=money("5000"),
        status=LoanStatus.approved,
        approval_date=date(2026, 2, 20),
    )
    pending_late = Loan(
        tenant_id=1,
        loan_number="L-3",
        amount=money("7000"),
        status=LoanStatus.approved,
        approval_date=date(2026, 3, 10),
    )
    disbursed_in_window = Loan(
        tenant_id=1,
        loan_number="L-4",
        amount=money("2500"),
        status=LoanStatus.disbursed,
        approval_date=date(2026, 2, 28),
        disbursement_date=date(2026, 3, 2),
    )
    other_tenant = Loan(
        tenant_id=2,
        loan_number="L-1",
        amount=money("9999"),
        status=LoanStatus.approved,
        approval_date=date(2026, 3, 1),
    )
    db.add_all([active, pending_early, pending_late, disbursed_in_window, other_tenant])
    db.flush()

    db.add_all(
        [
            RepaymentSchedule(
                tenant_id=1,
                loan_id=active.id,
                installment_number=1,
                due_date=date(2026, 2, 15),
                amount=money("1000"),
                is_paid=True,
                paid_date=date(2026, 2, 15),
            ),
            RepaymentSchedule(
                tenant_id=1,
                loan_id=active.id,
                installment_number=2,
                due_date=date(2026, 2, 25),
                amount=money("1000"),
                is_paid=False,
            ),
            RepaymentSchedule(
                tenant_id=1,
                loan_id=active.id,
                installment_number=3,
                due_date=date(2026, 3, 15),
                amount=money("1000"),
                is_paid=False,
            ),
            RepaymentSchedule(
                tenant_id=1,
                loan_id=active.id,
                installment_number=4,
                due_date=date(2026, 4, 15),
                amount=money("1000"),
                is_paid=False,
            ),
            Contribution(
                tenant_id=1,
                contributor_name="Received",
                amount=money("4000"),
                pledge_date=date(2026, 3, 5),
                received_date=date(2026, 3, 5),
            ),
            Contribution(
                tenant_id=1,
                contributor_name="Pledged",
                amount=money("1500"),
                pledge_date=date(2026, 3, 20),
            ),
            Contribution(
                tenant_id=1,
                contributor_name="History",
                amount=money("6000"),
                pledge_date=date(2026, 2, 1),
                received_date=date(2026, 2, 1),
            ),
            WithdrawalRequest(
                tenant_id=1,
                request_number="W-1",
                amount=money("800"),
                status=WithdrawalStatus.pending,
                planned_date=date(2026, 3, 12),
            ),
            WithdrawalRequest(
                tenant_id=1,
                request_number="W-2",
                amount=money("900"),
                status=WithdrawalStatus.approved,
                planned_date=date(2026, 3, 8),
            ),
            WithdrawalRequest(
                tenant_id=1,
                request_number="W-3",
                amount=money("300"),
                status=WithdrawalStatus.completed,
                planned_date=date(2026, 3, 1),
                completed_date=date(2026, 3, 3),
            ),
            WithdrawalRequest(
                tenant_id=1,
                request_number="W-4",
                amount=money("100"),
                status=WithdrawalStatus.rejected,
                planned_date=date(2026, 3, 4),
            ),
            TreasuryFlow(
                tenant_id=1,
                type=TreasuryFlowType.inflow,
                category=TreasuryFlowCategory.fee_income,
                amount=money("250"),
                description="Membership fees",
                expected_date=date(2026, 3, 20),
                probability=Decimal("90"),
                confidence=Decimal("80"),
                source=FlowSource.manual,
                tags=["fee_income"],
            ),
        ]
    )
    db.commit()


def _by_description(flows):
    return {flow.description: flow for flow in flows}


def test_reader_maps_domain_rows_to_flows() -> None:
    db = _session()
    _seed(db)
    flows = _by_description(SqlFlowReader(db, 1).read_flows(START, END))

    assert set(flows) == {
        "Loan repayment - L-1 #2",
        "Loan repayment - L-1 #3",
        "Loan disbursement - L-2",
        "Loan disbursement - L-3",
        "Loan disbursement - L-4",
        "Contribution - Received",
        "Contribution - Pledged",
        "Withdrawal request - W-1",
        "Withdrawal request - W-2",
        "Withdrawal request - W-3",
        "Membership fees",
    }

    repayment = flows["Loan repayment - L-1 #3"]
    assert repayment.type == TreasuryFlowType.inflow
    assert (repayment.probability, repayment.confidence) == (Decimal("85"), Decimal("90"))

    pledged = flows["Contribution - Pledged"]
    assert (pledged.probability, pledged.confidence) == (Decimal("70"), Decimal("60"))
    received = flows["Contribution - Received"]
    assert received.is_actual is True
    assert received.actual_date == date(2026, 3, 5)

    assert flows["Withdrawal request - W-1"].probability == Decimal("70")
    assert flows["Withdrawal request - W-2"].probability == Decimal("95")
    completed = flows["Withdrawal request - W-3"]
    assert completed.is_actual is True
    assert completed.effective_date == date(2026, 3, 3)

    recorded = flows["Membership fees"]
    assert recorded.treasury_flow_id is not None
    assert recorded.source == FlowSource.manual


def test_pending_disbursements_use_approval_lag_clamped_to_window() -> None:
    db = _session()
    _seed(db)
    flows = _by_description(SqlFlowReader(db, 1, disbursement_lag_days=3).read_flows(START, END))

    assert flows["Loan disbursement - L-2"].expected_date == START
    assert flows["Loan disbursement - L-3"].expected_date == date(2026, 3, 13)
    disbursed = flows["Loan disbursement - L-4"]
    assert disbursed.is_actual is True
    assert disbursed.amount == money("2500")


def test_reader_is_tenant_scoped() -> None:
    db = _session()
    _seed(db)
    flows = SqlFlowReader(db, 2).read_flows(START, END)
    assert [flow.amount for flow in flows] == [money("9999")]


def test_overdue_installment_is_marked_by_aggregation() -> None:
    db = _session()
    _seed(db)
    flows = _by_description(aggregate_flows(SqlFlowReader(db, 1), START, 30))
    overdue = flows["Loan repayment - L-1 #2"]
    assert overdue.overdue is True
    assert overdue.probability == Decimal("60")
    assert flows["Loan repayment - L-1 #3"].overdue is False


def test_contribution_total_counts_received_amounts_only() -> None:
    db = _session()
    _seed(db)
    reader = SqlFlowReader(db, 1)
    assert reader.contribution_total(date(2026, 1, 1), START) == money("6000")
    assert reader.contribution_total(START, date(2026, 4, 1)) == money("4000")
