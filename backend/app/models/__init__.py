from app.models.audit import AuditLog
from app.models.contribution import Contribution
from app.models.enums import (
    AlertSeverity,
    AlertType,
    FlowSource,
    ForecastScenario,
    LoanStatus,
    RoleName,
    TreasuryFlowCategory,
    TreasuryFlowType,
    WithdrawalStatus,
)
from app.models.loan import Loan, RepaymentSchedule
from app.models.tenant import Role, Tenant, UserRole
from app.models.treasury import ForecastAlert, ForecastFlow, TreasuryFlow, TreasuryForecast
from app.models.user import User
from app.models.withdrawal import WithdrawalRequest

__all__ = [
    "AuditLog",
    "Contribution",
    "AlertSeverity",
    "AlertType",
    "FlowSource",
    "ForecastScenario",
    "LoanStatus",
    "RoleName",
    "TreasuryFlowCategory",
    "TreasuryFlowType",
    "WithdrawalStatus",
    "Loan",
    "RepaymentSchedule",
    "Tenant",
    "Role",
    "UserRole",
    "ForecastAlert",
    "ForecastFlow",
    "TreasuryFlow",
    "TreasuryForecast",
    "User",
    "WithdrawalRequest",
]
