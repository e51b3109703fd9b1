from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.treasury import TreasuryFlow
from app.models.user import User
from app.schemas.treasury import TreasuryFlowCreate, TreasuryFlowRealize
from app.services.audit import log_audit
from app.utils.decimal_math import money


def _flow_state(flow: TreasuryFlow) -> dict:
    return {
        "type": flow.type.value,
        "category": flow.category.value,
        "amount": str(money(flow.amount)),
        "expected_date": flow.expected_date.isoformat(),
        "actual_date": flow.actual_date.isoformat() if flow.actual_date else None,
        "is_actual": flow.is_actual,
    }


def get_flow_or_404(db: Session, tenant_id: int, flow_id: int) -> TreasuryFlow:
    flow = db.scalar(
        select(TreasuryFlow).where(TreasuryFlow.id == flow_id, TreasuryFlow.tenant_id == tenant_id)
    )
    if flow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Treasury flow not found.")
    return flow


def record_flow(db: Session, tenant_id: int, actor: User, payload: TreasuryFlowCreate) -> TreasuryFlow:
    flow = TreasuryFlow(
        tenant_id=tenant_id,
        type=payload.type,
        category=payload.category,
        amount=money(payload.amount),
        description=payload.description.strip(),
        expected_date=payload.expected_date,
        is_actual=False,
        probability=Decimal(payload.probability),
        confidence=Decimal(payload.confidence),
        loan_id=payload.loan_id,
        payment_id=payload.payment_id,
        contribution_id=payload.contribution_id,
        withdrawal_id=payload.withdrawal_id,
        source=payload.source,
        tags=payload.tags or [payload.category.value.lower()],
    )
    db.add(flow)
    db.flush()
    log_audit(
        db,
        actor=actor,
        tenant_id=tenant_id,
        action="treasury_flow.record",
        entity_type="treasury_flow",
        entity_id=str(flow.id),
        after_state=_flow_state(flow),
    )
    db.commit()
    return flow


def realize_flow(
    db: Session,
    tenant_id: int,
    actor: User,
    flow_id: int,
    payload: TreasuryFlowRealize,
) -> TreasuryFlow:
    flow = get_flow_or_404(db, tenant_id, flow_id)
    if flow.is_actual:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Flow is already realized and can no longer change.",
        )
    before = _flow_state(flow)
    flow.is_actual = True
    flow.actual_date = payload.actual_date
    if payload.amount is not None:
        flow.amount = money(payload.amount)
    flow.probability = Decimal("100")
    flow.confidence = Decimal("100")
    log_audit(
        db,
        actor=actor,
        tenant_id=tenant_id,
        action="treasury_flow.realize",
        entity_type="treasury_flow",
        entity_id=str(flow.id),
        before_state=before,
        after_state=_flow_state(flow),
    )
    db.commit()
    return flow


def list_flows(
    db: Session,
    tenant_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
) -> list[TreasuryFlow]:
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must be <= end.")
    stmt = select(TreasuryFlow).where(TreasuryFlow.tenant_id == tenant_id)
    if start is not None:
        stmt = stmt.where(TreasuryFlow.expected_date >= start)
    if end is not None:
        stmt = stmt.where(TreasuryFlow.expected_date <= end)
    return list(db.scalars(stmt.order_by(TreasuryFlow.expected_date, TreasuryFlow.id)).all())
