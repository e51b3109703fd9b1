import enum


class RoleName(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    treasurer = "treasurer"
    secretary = "secretary"
    committee_member = "committee_member"
    borrower = "borrower"
    guarantor = "guarantor"
    depositor = "depositor"


class LoanStatus(str, enum.Enum):
    draft = "DRAFT"
    submitted = "SUBMITTED"
    under_review = "UNDER_REVIEW"
    approved = "APPROVED"
    rejected = "REJECTED"
    disbursed = "DISBURSED"
    active = "ACTIVE"
    completed = "COMPLETED"
    defaulted = "DEFAULTED"
    cancelled = "CANCELLED"


class WithdrawalStatus(str, enum.Enum):
    pending = "PENDING"
    under_review = "UNDER_REVIEW"
    approved = "APPROVED"
    rejected = "REJECTED"
    completed = "COMPLETED"
    cancelled = "CANCELLED"


class ForecastScenario(str, enum.Enum):
    optimistic = "OPTIMISTIC"
    realistic = "REALISTIC"
    pessimistic = "PESSIMISTIC"


class TreasuryFlowType(str, enum.Enum):
    inflow = "INFLOW"
    outflow = "OUTFLOW"


class TreasuryFlowCategory(str, enum.Enum):
    loan_disbursement = "LOAN_DISBURSEMENT"
    loan_repayment = "LOAN_REPAYMENT"
    contribution = "CONTRIBUTION"
    deposit_withdrawal = "DEPOSIT_WITHDRAWAL"
    operational_expense = "OPERATIONAL_EXPENSE"
    interest_earned = "INTEREST_EARNED"
    fee_income = "FEE_INCOME"
    other = "OTHER"


class FlowSource(str, enum.Enum):
    system = "SYSTEM"
    manual = "MANUAL"
    imported = "IMPORT"
    projection = "PROJECTION"


class AlertType(str, enum.Enum):
    low_cash_flow = "LOW_CASH_FLOW"
    negative_balance = "NEGATIVE_BALANCE"
    high_demand = "HIGH_DEMAND"
    liquidity_warning = "LIQUIDITY_WARNING"
    payment_delay = "PAYMENT_DELAY"


class AlertSeverity(str, enum.Enum):
    info = "INFO"
    warning = "WARNING"
    critical = "CRITICAL"
    urgent = "URGENT"


SEVERITY_RANK = {
    AlertSeverity.info: 1,
    AlertSeverity.warning: 2,
    AlertSeverity.critical: 3,
    AlertSeverity.urgent: 4,
}


def db_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]
