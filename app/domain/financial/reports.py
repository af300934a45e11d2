"""
Financial reporting: cash flow, daily closing and revenue analytics.

All figures come from COMPLETED (or partially refunded) payments unless
stated otherwise; refunds are subtracted where a report shows net revenue.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import User
from ...models_financial import CashFlowEntry, DailyClosing, Invoice, Payment
from ...shared.dates import end_of_day, start_of_day
from .ledger import current_balance
from .schemas import CashFlowCreate

logger = logging.getLogger(__name__)

PAID_STATUSES = ("COMPLETED", "PARTIALLY_REFUNDED", "REFUNDED")
CARD_METHODS = ("CREDIT_CARD", "DEBIT_CARD")


def percentage_change(current: float, previous: float) -> float:
    if not previous:
        return 100.0 if current else 0.0
    return round((current - previous) / previous * 100, 2)


def _paid_payments(db: Session, tenant_id: str, start: datetime, end: datetime) -> list[Payment]:
    return (
        db.query(Payment)
        .filter(
            Payment.tenant_id == tenant_id,
            Payment.status.in_(PAID_STATUSES),
            Payment.paid_at >= start,
            Payment.paid_at <= end,
        )
        .all()
    )


def closing_report(db: Session, tenant_id: str, day: date) -> dict:
    start = datetime.combine(day, datetime.min.time())
    payments = _paid_payments(db, tenant_id, start, end_of_day(start))
    totals = {"cash_total": 0.0, "card_total": 0.0, "pix_total": 0.0, "other_total": 0.0}
    tips = discounts = 0.0
    for payment in payments:
        amount = payment.amount - (payment.refunded_amount or 0)
        if payment.method == "CASH":
            totals["cash_total"] += amount
        elif payment.method in CARD_METHODS:
            totals["card_total"] += amount
        elif payment.method == "PIX":
            totals["pix_total"] += amount
        else:
            totals["other_total"] += amount
        tips += payment.tip or 0
        discounts += payment.discount or 0
    total_sales = sum(totals.values())
    return {
        "date": day,
        **{key: round(value, 2) for key, value in totals.items()},
        "total_sales": round(total_sales, 2),
        "sales_count": len(payments),
        "total_tips": round(tips, 2),
        "total_discounts": round(discounts, 2),
        "net_amount": round(total_sales + tips - discounts, 2),
    }


class FinancialReportService:
    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # Cash flow
    # ========================================================================

    def create_cash_flow(self, data: CashFlowCreate, user: User) -> CashFlowEntry:
        entry = CashFlowEntry(tenant_id=user.tenant_id, created_by=user.id, **data.model_dump())
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def cash_flow_query(self, user: User, start=None, end=None, include_projected: bool = True):
        query = self.db.query(CashFlowEntry).filter(CashFlowEntry.tenant_id == user.tenant_id)
        if start:
            query = query.filter(CashFlowEntry.date >= start)
        if end:
            query = query.filter(CashFlowEntry.date <= end)
        if not include_projected:
            query = query.filter(CashFlowEntry.is_projected.is_(False))
        return query.order_by(CashFlowEntry.date)

    def cash_flow_summary(self, user: User, start: datetime, end: datetime, include_projected: bool = True) -> dict:
        entries = self.cash_flow_query(user, start, end, include_projected).all()
        inflow = outflow = 0.0
        by_category: dict[str, dict] = defaultdict(lambda: {"inflow": 0.0, "outflow": 0.0})
        daily: dict[date, float] = defaultdict(float)
        for entry in entries:
            signed = entry.amount if entry.type == "INFLOW" else -entry.amount
            if entry.type == "INFLOW":
                inflow += entry.amount
                by_category[entry.category]["inflow"] += entry.amount
            else:
                outflow += entry.amount
                by_category[entry.category]["outflow"] += entry.amount
            daily[entry.date.date()] += signed

        net = inflow - outflow
        opening = current_balance(self.db, user.tenant_id) - net
        running = opening
        flow = []
        for day in sorted(daily):
            running += daily[day]
            flow.append({"date": day, "net": round(daily[day], 2), "balance": round(running, 2)})
        return {
            "start": start,
            "end": end,
            "opening_balance": round(opening, 2),
            "total_inflow": round(inflow, 2),
            "total_outflow": round(outflow, 2),
            "net_flow": round(net, 2),
            "closing_balance": round(opening + net, 2),
            "by_category": {
                name: {k: round(v, 2) for k, v in values.items()} for name, values in by_category.items()
            },
            "daily": flow,
        }

    # ========================================================================
    # Daily closing
    # ========================================================================

    def close_day(self, user: User, day: Optional[date] = None, notes: Optional[str] = None) -> DailyClosing:
        day = day or datetime.utcnow().date()
        existing = (
            self.db.query(DailyClosing)
            .filter(DailyClosing.tenant_id == user.tenant_id, DailyClosing.date == day)
            .first()
        )
        if existing:
            raise HTTPException(status_code=409, detail=f"{day.isoformat()} is already closed")

        report = closing_report(self.db, user.tenant_id, day)
        report.pop("date")
        closing = DailyClosing(tenant_id=user.tenant_id, date=day, notes=notes, closed_by=user.id, **report)
        self.db.add(closing)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail=f"{day.isoformat()} is already closed") from e
        self.db.refresh(closing)
        logger.info(f"🔒 Day {day} closed for tenant {user.tenant_id}: {closing.net_amount:.2f}")
        return closing

    def get_closing(self, user: User, day: date) -> dict:
        closing = (
            self.db.query(DailyClosing)
            .filter(DailyClosing.tenant_id == user.tenant_id, DailyClosing.date == day)
            .first()
        )
        if not closing:
            return {**closing_report(self.db, user.tenant_id, day), "closed": False}
        return {
            "date": closing.date,
            "cash_total": closing.cash_total,
            "card_total": closing.card_total,
            "pix_total": closing.pix_total,
            "other_total": closing.other_total,
            "total_sales": closing.total_sales,
            "sales_count": closing.sales_count,
            "total_tips": closing.total_tips,
            "total_discounts": closing.total_discounts,
            "net_amount": closing.net_amount,
            "notes": closing.notes,
            "closed": True,
            "closed_by": closing.closed_by,
            "closed_at": closing.closed_at,
        }

    # ========================================================================
    # Revenue
    # ========================================================================

    def _revenue(self, tenant_id: str, start: datetime, end: datetime) -> dict:
        payments = _paid_payments(self.db, tenant_id, start, end)
        by_method: dict[str, dict] = defaultdict(lambda: {"count": 0, "total": 0.0})
        gross = refunds = tips = 0.0
        for payment in payments:
            by_method[payment.method]["count"] += 1
            by_method[payment.method]["total"] += payment.amount
            gross += payment.amount
            refunds += payment.refunded_amount or 0
            tips += payment.tip or 0
        return {
            "gross_revenue": round(gross, 2),
            "refunds": round(refunds, 2),
            "net_revenue": round(gross - refunds, 2),
            "tips": round(tips, 2),
            "payment_count": len(payments),
            "average_ticket": round(gross / len(payments), 2) if payments else 0,
            "by_method": {m: {"count": v["count"], "total": round(v["total"], 2)} for m, v in by_method.items()},
        }

    def revenue_report(self, user: User, start: datetime, end: datetime, compare: bool = False) -> dict:
        if end < start:
            raise HTTPException(status_code=400, detail="end must be after start")
        report = {"start": start, "end": end, **self._revenue(user.tenant_id, start, end)}
        if compare:
            length = end - start
            previous = self._revenue(user.tenant_id, start - length, start)
            report["comparison"] = {
                "previous_start": start - length,
                "previous_end": start,
                "previous_net_revenue": previous["net_revenue"],
                "change_percentage": percentage_change(report["net_revenue"], previous["net_revenue"]),
            }
        return report

    def revenue_trends(self, user: User, days: int = 30, now: Optional[datetime] = None) -> list[dict]:
        now = now or datetime.utcnow()
        start = start_of_day(now - timedelta(days=days - 1))
        per_day: dict[date, dict] = {
            (start + timedelta(days=i)).date(): {"revenue": 0.0, "count": 0} for i in range(days)
        }
        for payment in _paid_payments(self.db, user.tenant_id, start, end_of_day(now)):
            bucket = per_day.get(payment.paid_at.date())
            if bucket is not None:
                bucket["revenue"] += payment.amount - (payment.refunded_amount or 0)
                bucket["count"] += 1
        return [{"date": d, "revenue": round(v["revenue"], 2), "count": v["count"]} for d, v in per_day.items()]

    def payment_stats(self, user: User) -> dict:
        rows = (
            self.db.query(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.tenant_id == user.tenant_id)
            .group_by(Payment.status)
            .all()
        )
        return {
            "by_status": {status: {"count": count, "total": round(float(total), 2)} for status, count, total in rows},
            "balance": current_balance(self.db, user.tenant_id),
        }

    def invoice_stats(self, user: User) -> dict:
        rows = (
            self.db.query(
                Invoice.status,
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.total), 0),
                func.coalesce(func.sum(Invoice.amount_due), 0),
            )
            .filter(Invoice.tenant_id == user.tenant_id)
            .group_by(Invoice.status)
            .all()
        )
        by_status = {
            status: {"count": count, "total": round(float(total), 2), "due": round(float(due), 2)}
            for status, count, total, due in rows
        }
        outstanding = sum(v["due"] for s, v in by_status.items() if s in ("PENDING", "SENT", "PARTIAL", "OVERDUE"))
        return {"by_status": by_status, "outstanding": round(outstanding, 2)}
