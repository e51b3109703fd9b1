from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Protocol

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from app.models.contribution import Contribution
from app.models.enums import (
    LoanStatus,
    TreasuryFlowCategory,
    TreasuryFlowType,
    WithdrawalStatus,
)
from app.models.loan import Loan, RepaymentSchedule
from app.models.treasury import TreasuryFlow, TreasuryForecast
from app.models.user import User
from app.models.withdrawal import WithdrawalRequest
from app.services.audit import log_audit
from app.services.flow_aggregator import FlowInput
from app.utils.decimal_math import money


logger = logging.getLogger(__name__)

CERTAIN = Decimal("100")
REPAYMENT_PROBABILITY = (Decimal("85"), Decimal("90"))
DISBURSEMENT_PROBABILITY = (Decimal("90"), Decimal("85"))
PLEDGE_PROBABILITY = (Decimal("70"), Decimal("60"))
PENDING_WITHDRAWAL_PROBABILITY = (Decimal("70"), Decimal("85"))
APPROVED_WITHDRAWAL_PROBABILITY = (Decimal("95"), Decimal("85"))

REPAYING_LOAN_STATUSES = (LoanStatus.active, LoanStatus.disbursed)
DISBURSED_LOAN_STATUSES = (
    LoanStatus.disbursed,
    LoanStatus.active,
    LoanStatus.completed,
    LoanStatus.defaulted,
)
OPEN_WITHDRAWAL_STATUSES = (WithdrawalStatus.pending, WithdrawalStatus.under_review)


class ForecastWriter(Protocol):
    def save(self, forecast: TreasuryForecast, *, actor: User | None = None) -> TreasuryForecast:
        """Persist the forecast with its alerts and flow snapshots atomically."""


class SqlFlowReader:
    """Reads forecast flows for one tenant from the loan, contribution and withdrawal tables."""

    def __init__(self, db: Session, tenant_id: int, *, disbursement_lag_days: int = 3) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.disbursement_lag_days = disbursement_lag_days

    def read_flows(self, start: date, end: date) -> list[FlowInput]:
        flows: list[FlowInput] = []
        flows.extend(self._repayments(start, end))
        flows.extend(self._disbursements(start, end))
        flows.extend(self._contributions(start, end))
        flows.extend(self._withdrawals(start, end))
        flows.extend(self._recorded_flows(start, end))
        logger.debug("Read %s candidate flows for tenant %s (%s..%s)", len(flows), self.tenant_id, start, end)
        return flows

    def contribution_total(self, since: date, until: date) -> Decimal:
        total = self.db.scalar(
            select(func.coalesce(func.sum(Contribution.amount), 0)).where(
                Contribution.tenant_id == self.tenant_id,
                Contribution.received_date.is_not(None),
                Contribution.received_date >= since,
                Contribution.received_date < until,
            )
        )
        return money(total or 0)

    def _repayments(self, start: date, end: date) -> list[FlowInput]:
        rows = self.db.execute(
            select(RepaymentSchedule, Loan.loan_number)
            .join(Loan, Loan.id == RepaymentSchedule.loan_id)
            .where(
                RepaymentSchedule.tenant_id == self.tenant_id,
                or_(
                    and_(
                        RepaymentSchedule.is_paid.is_(False),
                        RepaymentSchedule.due_date <= end,
                        Loan.status.in_(REPAYING_LOAN_STATUSES),
                    ),
                    and_(
                        RepaymentSchedule.is_paid.is_(True),
                        RepaymentSchedule.paid_date >= start,
                        RepaymentSchedule.paid_date <= end,
                    ),
                ),
            )
            .order_by(RepaymentSchedule.due_date, RepaymentSchedule.id)
        ).all()

        flows: list[FlowInput] = []
        for schedule, loan_number in rows:
            description = f"Loan repayment - {loan_number} #{schedule.installment_number}"
            if schedule.is_paid:
                flows.append(
                    FlowInput(
                        type=TreasuryFlowType.inflow,
                        category=TreasuryFlowCategory.loan_repayment,
                        amount=money(schedule.amount),
                        description=description,
                        expected_date=schedule.due_date,
                        actual_date=schedule.paid_date,
                        is_actual=True,
                        probability=CERTAIN,
                        confidence=CERTAIN,
                        loan_id=schedule.loan_id,
                        payment_id=schedule.payment_id,
                        tags=("loan_repayment",),
                    )
                )
                continue
            probability, confidence = REPAYMENT_PROBABILITY
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.inflow,
                    category=TreasuryFlowCategory.loan_repayment,
                    amount=money(schedule.amount),
                    description=description,
                    expected_date=schedule.due_date,
                    probability=probability,
                    confidence=confidence,
                    loan_id=schedule.loan_id,
                    tags=("loan_repayment",),
                )
            )
        return flows

    def _disbursements(self, start: date, end: date) -> list[FlowInput]:
        pending = self.db.scalars(
            select(Loan)
            .where(
                Loan.tenant_id == self.tenant_id,
                Loan.status == LoanStatus.approved,
                Loan.disbursement_date.is_(None),
            )
            .order_by(Loan.id)
        ).all()
        disbursed = self.db.scalars(
            select(Loan)
            .where(
                Loan.tenant_id == self.tenant_id,
                Loan.status.in_(DISBURSED_LOAN_STATUSES),
                Loan.disbursement_date >= start,
                Loan.disbursement_date <= end,
            )
            .order_by(Loan.id)
        ).all()

        flows: list[FlowInput] = []
        probability, confidence = DISBURSEMENT_PROBABILITY
        for loan in pending:
            approved_on = loan.approval_date or loan.created_at.date()
            estimated = approved_on + timedelta(days=self.disbursement_lag_days)
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.outflow,
                    category=TreasuryFlowCategory.loan_disbursement,
                    amount=money(loan.amount),
                    description=f"Loan disbursement - {loan.loan_number}",
                    expected_date=max(estimated, start),
                    probability=probability,
                    confidence=confidence,
                    loan_id=loan.id,
                    tags=("loan_disbursement",),
                )
            )
        for loan in disbursed:
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.outflow,
                    category=TreasuryFlowCategory.loan_disbursement,
                    amount=money(loan.amount),
                    description=f"Loan disbursement - {loan.loan_number}",
                    expected_date=loan.disbursement_date,
                    actual_date=loan.disbursement_date,
                    is_actual=True,
                    probability=CERTAIN,
                    confidence=CERTAIN,
                    loan_id=loan.id,
                    tags=("loan_disbursement",),
                )
            )
        return flows

    def _contributions(self, start: date, end: date) -> list[FlowInput]:
        rows = self.db.scalars(
            select(Contribution)
            .where(
                Contribution.tenant_id == self.tenant_id,
                or_(
                    and_(Contribution.received_date.is_(None), Contribution.pledge_date <= end),
                    and_(Contribution.received_date >= start, Contribution.received_date <= end),
                ),
            )
            .order_by(Contribution.pledge_date, Contribution.id)
        ).all()

        flows: list[FlowInput] = []
        for row in rows:
            received = row.received_date is not None
            probability, confidence = (CERTAIN, CERTAIN) if received else PLEDGE_PROBABILITY
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.inflow,
                    category=TreasuryFlowCategory.contribution,
                    amount=money(row.amount),
                    description=f"Contribution - {row.contributor_name}",
                    expected_date=row.pledge_date,
                    actual_date=row.received_date,
                    is_actual=received,
                    probability=probability,
                    confidence=confidence,
                    contribution_id=row.id,
                    tags=("contribution",),
                )
            )
        return flows

    def _withdrawals(self, start: date, end: date) -> list[FlowInput]:
        rows = self.db.scalars(
            select(WithdrawalRequest)
            .where(
                WithdrawalRequest.tenant_id == self.tenant_id,
                or_(
                    WithdrawalRequest.status.in_((*OPEN_WITHDRAWAL_STATUSES, WithdrawalStatus.approved)),
                    and_(
                        WithdrawalRequest.status == WithdrawalStatus.completed,
                        WithdrawalRequest.completed_date >= start,
                        WithdrawalRequest.completed_date <= end,
                    ),
                ),
            )
            .order_by(WithdrawalRequest.id)
        ).all()

        flows: list[FlowInput] = []
        for row in rows:
            planned = row.planned_date or row.created_at.date()
            description = f"Withdrawal request - {row.request_number}"
            if row.status == WithdrawalStatus.completed:
                flows.append(
                    FlowInput(
                        type=TreasuryFlowType.outflow,
                        category=TreasuryFlowCategory.deposit_withdrawal,
                        amount=money(row.amount),
                        description=description,
                        expected_date=planned,
                        actual_date=row.completed_date,
                        is_actual=True,
                        probability=CERTAIN,
                        confidence=CERTAIN,
                        withdrawal_id=row.id,
                        tags=("deposit_withdrawal",),
                    )
                )
                continue
            if row.status == WithdrawalStatus.approved:
                probability, confidence = APPROVED_WITHDRAWAL_PROBABILITY
            else:
                probability, confidence = PENDING_WITHDRAWAL_PROBABILITY
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.outflow,
                    category=TreasuryFlowCategory.deposit_withdrawal,
                    amount=money(row.amount),
                    description=description,
                    expected_date=planned,
                    probability=probability,
                    confidence=confidence,
                    withdrawal_id=row.id,
                    tags=("deposit_withdrawal",),
                )
            )
        return flows

    def _recorded_flows(self, start: date, end: date) -> list[FlowInput]:
        rows = self.db.scalars(
            select(TreasuryFlow)
            .where(
                TreasuryFlow.tenant_id == self.tenant_id,
                or_(
                    and_(TreasuryFlow.is_actual.is_(False), TreasuryFlow.expected_date <= end),
                    and_(
                        TreasuryFlow.is_actual.is_(True),
                        TreasuryFlow.actual_date >= start,
                        TreasuryFlow.actual_date <= end,
                    ),
                ),
            )
            .order_by(TreasuryFlow.expected_date, TreasuryFlow.id)
        ).all()
        return [
            FlowInput(
                type=row.type,
                category=row.category,
                amount=money(row.amount),
                description=row.description,
                expected_date=row.expected_date,
                actual_date=row.actual_date,
                is_actual=row.is_actual,
                probability=Decimal(str(row.probability)),
                confidence=Decimal(str(row.confidence)),
                loan_id=row.loan_id,
                payment_id=row.payment_id,
                contribution_id=row.contribution_id,
                withdrawal_id=row.withdrawal_id,
                treasury_flow_id=row.id,
                source=row.source,
                tags=tuple(row.tags or ()),
            )
            for row in rows
        ]


class SqlForecastWriter:
    """Inserts a forecast, its children and the audit row in one transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def save(self, forecast: TreasuryForecast, *, actor: User | None = None) -> TreasuryForecast:
        try:
            self.db.add(forecast)
            self.db.flush()
            log_audit(
                self.db,
                actor=actor,
                tenant_id=forecast.tenant_id,
                action="treasury_forecast.generate",
                entity_type="treasury_forecast",
                entity_id=str(forecast.id),
                after_state={
                    "scenario": forecast.scenario.value,
                    "period_days": forecast.period_days,
                    "projected_balance": str(forecast.projected_balance),
                    "alerts": len(forecast.alerts),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Rolled back forecast persistence for tenant %s", forecast.tenant_id)
            raise
        return forecast
