from __future__ import annotations

import logging

from sqlalchemy import select

from app.db.session import SessionLocal
from app.models.tenant import Tenant
from app.services.treasury_forecast import monitor_treasury_balance


logger = logging.getLogger("gmah.balance_monitor")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    flagged = 0
    with SessionLocal() as db:
        tenant_ids = list(db.scalars(select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)).all())
        for tenant_id in tenant_ids:
            check = monitor_treasury_balance(db, tenant_id)
            if check.severity is not None:
                flagged += 1
                logger.warning(
                    "Tenant %s: balance %s below %s",
                    tenant_id,
                    check.balance,
                    check.threshold,
                )
    print(f"Balance monitor checked {len(tenant_ids)} tenants, {flagged} below reserve.")


if __name__ == "__main__":
    main()
