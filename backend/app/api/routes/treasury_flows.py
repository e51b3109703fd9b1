from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_tenant_id
from app.core.security import TREASURY_MANAGERS, require_roles
from app.models.user import User
from app.schemas.treasury import TreasuryFlowCreate, TreasuryFlowOut, TreasuryFlowRealize
from app.services.treasury_flows import list_flows, realize_flow, record_flow


router = APIRouter(prefix="/treasury/flows", tags=["treasury-flows"])


@router.get("", response_model=list[TreasuryFlowOut])
def read_flows(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> list[TreasuryFlowOut]:
    require_roles(current_user, TREASURY_MANAGERS)
    rows = list_flows(db, tenant_id, start=start, end=end)
    return [TreasuryFlowOut.model_validate(row) for row in rows]


@router.post("", response_model=TreasuryFlowOut, status_code=status.HTTP_201_CREATED)
def create_flow(
    payload: TreasuryFlowCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> TreasuryFlowOut:
    require_roles(current_user, TREASURY_MANAGERS)
    return TreasuryFlowOut.model_validate(record_flow(db, tenant_id, current_user, payload))


@router.post("/{flow_id}/realize", response_model=TreasuryFlowOut)
def mark_flow_realized(
    flow_id: int,
    payload: TreasuryFlowRealize,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> TreasuryFlowOut:
    require_roles(current_user, TREASURY_MANAGERS)
    return TreasuryFlowOut.model_validate(realize_flow(db, tenant_id, current_user, flow_id, payload))
