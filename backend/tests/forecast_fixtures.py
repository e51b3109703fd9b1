from datetime import date
from decimal import Decimal

from app.models.enums import TreasuryFlowCategory, TreasuryFlowType
from app.services.flow_aggregator import FlowInput


class StaticFlowReader:
    def __init__(self, flows: list[FlowInput], contributions: Decimal = Decimal("0")) -> None:
        self.flows = flows
        self.contributions = contributions
        self.calls: list[tuple[date, date]] = []

    def read_flows(self, start: date, end: date) -> list[FlowInput]:
        self.calls.append((start, end))
        return list(self.flows)

    def contribution_total(self, since: date, until: date) -> Decimal:
        return self.contributions


def inflow(amount: str, expected: date, **kwargs) -> FlowInput:
    kwargs.setdefault("category", TreasuryFlowCategory.loan_repayment)
    kwargs.setdefault("description", f"Inflow {amount}")
    return FlowInput(type=TreasuryFlowType.inflow, amount=Decimal(amount), expected_date=expected, **kwargs)


def outflow(amount: str, expected: date, **kwargs) -> FlowInput:
    kwargs.setdefault("category", TreasuryFlowCategory.loan_disbursement)
    kwargs.setdefault("description", f"Outflow {amount}")
    return FlowInput(type=TreasuryFlowType.outflow, amount=Decimal(amount), expected_date=expected, **kwargs)
