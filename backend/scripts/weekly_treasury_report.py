from __future__ import annotations

import logging

from sqlalchemy import select

from app.db.session import SessionLocal
from app.models.tenant import Tenant
from app.services.treasury_forecast import run_weekly_treasury_report


logger = logging.getLogger("gmah.weekly_report")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    with SessionLocal() as db:
        tenant_ids = list(db.scalars(select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)).all())
        for tenant_id in tenant_ids:
            report = run_weekly_treasury_report(db, tenant_id)
            logger.info(
                "Tenant %s: %s forecasts, average liquidity risk %s, next critical date %s",
                tenant_id,
                len(report.forecasts),
                report.summary.average_liquidity_risk,
                report.summary.next_critical_date,
            )
    print(f"Weekly treasury report completed for {len(tenant_ids)} tenants.")


if __name__ == "__main__":
    main()
