from __future__ import annotations

import logging

from sqlalchemy import select

from app.db.session import SessionLocal
from app.models.tenant import Tenant
from app.services.treasury_forecast import run_daily_treasury_check


logger = logging.getLogger("gmah.daily_check")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    with SessionLocal() as db:
        tenant_ids = list(db.scalars(select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)).all())
        for tenant_id in tenant_ids:
            forecast = run_daily_treasury_check(db, tenant_id)
            logger.info(
                "Tenant %s: forecast %s projects %s with liquidity risk %s",
                tenant_id,
                forecast.id,
                forecast.projected_balance,
                forecast.liquidity_risk,
            )
    print(f"Daily treasury check completed for {len(tenant_ids)} tenants.")


if __name__ == "__main__":
    main()
