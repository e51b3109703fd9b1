from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import LoanStatus, db_values


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        UniqueConstraint("tenant_id", "loan_number", name="uq_loans_tenant_number"),
        CheckConstraint("amount >= 0", name="ck_loans_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        default=1,
    )
    borrower_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    loan_number: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    status: Mapped[LoanStatus] = mapped_column(
        Enum(LoanStatus, name="loan_status", values_callable=db_values),
        default=LoanStatus.draft,
        nullable=False,
        index=True,
    )
    approval_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    disbursement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    schedules: Mapped[list["RepaymentSchedule"]] = relationship(
        "RepaymentSchedule",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="RepaymentSchedule.installment_number",
    )


class RepaymentSchedule(Base):
    __tablename__ = "repayment_schedules"
    __table_args__ = (
        UniqueConstraint("loan_id", "installment_number", name="uq_repayment_schedules_loan_installment"),
        CheckConstraint("amount >= 0", name="ck_repayment_schedules_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        default=1,
    )
    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    loan: Mapped["Loan"] = relationship("Loan", back_populates="schedules")
