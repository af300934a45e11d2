"""Commission service - Rules, professional configs, entries, payouts and goals"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ...models import Professional, Service, User
from ...models_commission import (
    CommissionAdjustment,
    CommissionEntry,
    CommissionGoal,
    CommissionPayment,
    CommissionRule,
    ProfessionalCommissionConfig,
)
from ..financial.ledger import record_transaction
from . import goals
from .calculation import build_entry, calculate_commission
from .schemas import (
    AdjustmentRequest,
    CalculateRequest,
    EntryCreate,
    GoalCreate,
    GoalUpdate,
    PaymentCreate,
    ProfessionalConfigCreate,
    ProfessionalConfigUpdate,
    RuleCreate,
    RuleUpdate,
)

logger = logging.getLogger(__name__)

ADJUSTMENT_SIGN = {"BONUS": 1, "DEDUCTION": -1, "CORRECTION": 1}


def adjusted_amount(calculated: float, adjustments: list[CommissionAdjustment]) -> float:
    total = calculated + sum(ADJUSTMENT_SIGN[a.type] * a.amount for a in adjustments)
    return round(max(0.0, total), 2)


class CommissionService:
    def __init__(self, db: Session):
        self.db = db

    def _professional(self, tenant_id: str, professional_id: str) -> Professional:
        professional = (
            self.db.query(Professional)
            .filter(Professional.id == professional_id, Professional.tenant_id == tenant_id)
            .first()
        )
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")
        return professional

    # ========================================================================
    # Rules
    # ========================================================================

    def _rule(self, rule_id: str, tenant_id: str) -> CommissionRule:
        rule = (
            self.db.query(CommissionRule)
            .filter(CommissionRule.id == rule_id, CommissionRule.tenant_id == tenant_id)
            .first()
        )
        if not rule:
            raise HTTPException(status_code=404, detail="Commission rule not found")
        return rule

    def _clear_defaults(self, tenant_id: str, trigger: str, keep_id: Optional[str] = None) -> None:
        query = self.db.query(CommissionRule).filter(
            CommissionRule.tenant_id == tenant_id,
            CommissionRule.trigger == trigger,
            CommissionRule.is_default.is_(True),
        )
        if keep_id:
            query = query.filter(CommissionRule.id != keep_id)
        query.update({CommissionRule.is_default: False}, synchronize_session=False)

    def list_rules(self, user: User, trigger: Optional[str] = None, active_only: bool = False):
        query = self.db.query(CommissionRule).filter(CommissionRule.tenant_id == user.tenant_id)
        if trigger:
            query = query.filter(CommissionRule.trigger == trigger.upper())
        if active_only:
            query = query.filter(CommissionRule.is_active.is_(True))
        return query.order_by(CommissionRule.priority.desc(), CommissionRule.name).all()

    def get_rule(self, rule_id: str, user: User) -> CommissionRule:
        return self._rule(rule_id, user.tenant_id)

    def create_rule(self, data: RuleCreate, user: User) -> CommissionRule:
        values = data.model_dump(exclude={"tiers", "conditions", "valid_from"})
        if data.is_default:
            self._clear_defaults(user.tenant_id, data.trigger)
        rule = CommissionRule(
            tenant_id=user.tenant_id,
            tiers=[t.model_dump() for t in data.tiers],
            conditions=data.conditions.model_dump() if data.conditions else {},
            valid_from=data.valid_from or datetime.utcnow(),
            **values,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"✅ Commission rule {rule.id} ({rule.type}) created")
        return rule

    def update_rule(self, rule_id: str, data: RuleUpdate, user: User) -> CommissionRule:
        rule = self._rule(rule_id, user.tenant_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("is_default"):
            self._clear_defaults(user.tenant_id, rule.trigger, keep_id=rule.id)
        if "tiers" in changes and data.tiers is not None:
            changes["tiers"] = [t.model_dump() for t in data.tiers]
        if "conditions" in changes and data.conditions is not None:
            changes["conditions"] = data.conditions.model_dump()
        for key, value in changes.items():
            setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete_rule(self, rule_id: str, user: User) -> dict:
        rule = self._rule(rule_id, user.tenant_id)
        self.db.delete(rule)
        self.db.commit()
        return {"message": "Commission rule deleted"}

    # ========================================================================
    # Professional configs
    # ========================================================================

    def _config(self, professional_id: str, tenant_id: str) -> ProfessionalCommissionConfig:
        config = (
            self.db.query(ProfessionalCommissionConfig)
            .filter(
                ProfessionalCommissionConfig.professional_id == professional_id,
                ProfessionalCommissionConfig.tenant_id == tenant_id,
            )
            .first()
        )
        if not config:
            raise HTTPException(status_code=404, detail="Commission config not found")
        return config

    def list_configs(self, user: User) -> list[ProfessionalCommissionConfig]:
        return (
            self.db.query(ProfessionalCommissionConfig)
            .filter(ProfessionalCommissionConfig.tenant_id == user.tenant_id)
            .all()
        )

    def get_config(self, professional_id: str, user: User) -> ProfessionalCommissionConfig:
        return self._config(professional_id, user.tenant_id)

    def create_config(self, data: ProfessionalConfigCreate, user: User) -> ProfessionalCommissionConfig:
        self._professional(user.tenant_id, data.professional_id)
        existing = (
            self.db.query(ProfessionalCommissionConfig)
            .filter(ProfessionalCommissionConfig.professional_id == data.professional_id)
            .first()
        )
        if existing:
            raise HTTPException(status_code=409, detail="Professional already has a commission config")
        config = ProfessionalCommissionConfig(
            tenant_id=user.tenant_id,
            professional_id=data.professional_id,
            default_percentage=data.default_percentage,
            service_overrides={k: v.model_dump() for k, v in data.service_overrides.items()},
            product_overrides={k: v.model_dump() for k, v in data.product_overrides.items()},
            is_active=data.is_active,
        )
        self.db.add(config)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Professional already has a commission config") from e
        self.db.refresh(config)
        return config

    def update_config(self, professional_id: str, data: ProfessionalConfigUpdate, user: User):
        config = self._config(professional_id, user.tenant_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("service_overrides", "product_overrides"):
            if key in changes and changes[key] is not None:
                changes[key] = {k: dict(v) for k, v in changes[key].items()}
        for key, value in changes.items():
            setattr(config, key, value)
        self.db.commit()
        self.db.refresh(config)
        return config

    def delete_config(self, professional_id: str, user: User) -> dict:
        self.db.delete(self._config(professional_id, user.tenant_id))
        self.db.commit()
        return {"message": "Commission config deleted"}

    # ========================================================================
    # Entries
    # ========================================================================

    def _entry(self, entry_id: str, tenant_id: str) -> CommissionEntry:
        entry = (
            self.db.query(CommissionEntry)
            .options(selectinload(CommissionEntry.adjustments))
            .filter(CommissionEntry.id == entry_id, CommissionEntry.tenant_id == tenant_id)
            .first()
        )
        if not entry:
            raise HTTPException(status_code=404, detail="Commission entry not found")
        return entry

    def calculate(self, data: CalculateRequest, user: User) -> dict:
        self._professional(user.tenant_id, data.professional_id)
        return calculate_commission(
            self.db,
            user.tenant_id,
            data.professional_id,
            data.base_amount,
            data.source_type,
            data.service_id,
            data.product_id,
        )

    def entries_query(self, user: User, professional_id=None, status=None, start=None, end=None):
        query = (
            self.db.query(CommissionEntry)
            .options(selectinload(CommissionEntry.adjustments))
            .filter(CommissionEntry.tenant_id == user.tenant_id)
        )
        if user.role == "PROFESSIONAL":
            professional = self.db.query(Professional).filter(Professional.user_id == user.id).first()
            professional_id = professional.id if professional else "-"
        if professional_id:
            query = query.filter(CommissionEntry.professional_id == professional_id)
        if status:
            query = query.filter(CommissionEntry.status == status.upper())
        if start:
            query = query.filter(CommissionEntry.reference_date >= start)
        if end:
            query = query.filter(CommissionEntry.reference_date <= end)
        return query.order_by(CommissionEntry.reference_date.desc())

    def get_entry(self, entry_id: str, user: User) -> CommissionEntry:
        return self._entry(entry_id, user.tenant_id)

    def create_entry(self, data: EntryCreate, user: User) -> CommissionEntry:
        self._professional(user.tenant_id, data.professional_id)
        entry = build_entry(
            self.db,
            user.tenant_id,
            data.professional_id,
            data.base_amount,
            data.source_type,
            source_id=data.source_id,
            service_id=data.service_id,
            product_id=data.product_id,
            description=data.description,
        )
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def approve(self, entry_ids: list[str], user: User) -> list[CommissionEntry]:
        entries = [self._entry(entry_id, user.tenant_id) for entry_id in entry_ids]
        not_pending = [e.id for e in entries if e.status != "PENDING"]
        if not_pending:
            raise HTTPException(
                status_code=400, detail=f"Only PENDING entries can be approved: {', '.join(not_pending)}"
            )
        now = datetime.utcnow()
        for entry in entries:
            entry.status = "APPROVED"
            entry.approved_by = user.id
            entry.approved_at = now
        self.db.commit()
        logger.info(f"✅ {len(entries)} commission entr(ies) approved by {user.id}")
        return entries

    def adjust(self, entry_id: str, data: AdjustmentRequest, user: User) -> CommissionEntry:
        entry = self._entry(entry_id, user.tenant_id)
        if entry.status == "PAID":
            raise HTTPException(status_code=400, detail="Paid commissions cannot be adjusted")
        entry.adjustments.append(
            CommissionAdjustment(
                tenant_id=user.tenant_id,
                type=data.type,
                amount=data.amount,
                reason=data.reason,
                created_by=user.id,
            )
        )
        entry.final_amount = adjusted_amount(entry.calculated_amount, entry.adjustments)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def cancel_entry(self, entry_id: str, reason: Optional[str], user: User) -> CommissionEntry:
        entry = self._entry(entry_id, user.tenant_id)
        if entry.status == "PAID":
            raise HTTPException(status_code=400, detail="Paid commissions cannot be cancelled")
        entry.status = "CANCELLED"
        entry.cancelled_at = datetime.utcnow()
        entry.cancel_reason = reason
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def hold(self, entry_id: str, user: User) -> CommissionEntry:
        entry = self._entry(entry_id, user.tenant_id)
        if entry.status not in ("PENDING", "APPROVED"):
            raise HTTPException(status_code=400, detail=f"Cannot hold a {entry.status} commission")
        entry.status = "ON_HOLD"
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def release(self, entry_id: str, user: User) -> CommissionEntry:
        entry = self._entry(entry_id, user.tenant_id)
        if entry.status != "ON_HOLD":
            raise HTTPException(status_code=400, detail="Commission is not on hold")
        entry.status = "APPROVED" if entry.approved_at else "PENDING"
        self.db.commit()
        self.db.refresh(entry)
        return entry

    # ========================================================================
    # Payments
    # ========================================================================

    def _payment(self, payment_id: str, tenant_id: str) -> CommissionPayment:
        payment = (
            self.db.query(CommissionPayment)
            .filter(CommissionPayment.id == payment_id, CommissionPayment.tenant_id == tenant_id)
            .first()
        )
        if not payment:
            raise HTTPException(status_code=404, detail="Commission payment not found")
        return payment

    def _payment_entries(self, payment_id: str) -> list[CommissionEntry]:
        return self.db.query(CommissionEntry).filter(CommissionEntry.payment_id == payment_id).all()

    def list_payments(self, user: User, professional_id=None, status=None):
        query = self.db.query(CommissionPayment).filter(CommissionPayment.tenant_id == user.tenant_id)
        if professional_id:
            query = query.filter(CommissionPayment.professional_id == professional_id)
        if status:
            query = query.filter(CommissionPayment.status == status.upper())
        return query.order_by(CommissionPayment.created_at.desc())

    def create_payment(self, data: PaymentCreate, user: User) -> CommissionPayment:
        self._professional(user.tenant_id, data.professional_id)
        query = self.db.query(CommissionEntry).filter(
            CommissionEntry.tenant_id == user.tenant_id,
            CommissionEntry.professional_id == data.professional_id,
            CommissionEntry.status == "APPROVED",
            CommissionEntry.payment_id.is_(None),
        )
        if data.entry_ids:
            query = query.filter(CommissionEntry.id.in_(data.entry_ids))
        else:
            query = query.filter(
                CommissionEntry.reference_date >= data.period_start,
                CommissionEntry.reference_date <= data.period_end,
            )
        entries = query.all()
        if not entries:
            raise HTTPException(status_code=400, detail="No approved unpaid commissions to pay")
        if data.entry_ids and len(entries) != len(set(data.entry_ids)):
            raise HTTPException(status_code=400, detail="Some entries are not approved or already paid")

        gross = round(sum(e.final_amount for e in entries), 2)
        payment = CommissionPayment(
            tenant_id=user.tenant_id,
            professional_id=data.professional_id,
            period_start=data.period_start or min(e.reference_date for e in entries),
            period_end=data.period_end or max(e.reference_date for e in entries),
            gross_amount=gross,
            deductions=data.deductions,
            bonuses=data.bonuses,
            net_amount=round(gross - data.deductions + data.bonuses, 2),
            entry_count=len(entries),
            payment_method=data.payment_method,
            status="PENDING",
            notes=data.notes,
        )
        self.db.add(payment)
        self.db.flush()
        for entry in entries:
            entry.payment_id = payment.id
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"💸 Commission payment {payment.id}: {payment.net_amount:.2f} for {len(entries)} entries")
        return payment

    def process_payment(self, payment_id: str, user: User) -> CommissionPayment:
        payment = self._payment(payment_id, user.tenant_id)
        if payment.status != "PENDING":
            raise HTTPException(status_code=400, detail="Only pending payments can be processed")
        now = datetime.utcnow()
        payment.status = "PAID"
        payment.paid_at = now
        payment.paid_by = user.id
        for entry in self._payment_entries(payment.id):
            entry.status = "PAID"
            entry.paid_at = now
        record_transaction(
            self.db,
            user.tenant_id,
            "COMMISSION",
            payment.net_amount,
            category="EXPENSE",
            description=f"Commission payment to professional {payment.professional_id}",
            reference_id=payment.id,
            created_by=user.id,
        )
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def cancel_payment(self, payment_id: str, user: User) -> CommissionPayment:
        payment = self._payment(payment_id, user.tenant_id)
        if payment.status == "PAID":
            raise HTTPException(status_code=400, detail="Paid commission payments cannot be cancelled")
        payment.status = "CANCELLED"
        for entry in self._payment_entries(payment.id):
            entry.payment_id = None
        self.db.commit()
        self.db.refresh(payment)
        return payment

    # ========================================================================
    # Goals
    # ========================================================================

    def _goal(self, goal_id: str, tenant_id: str) -> CommissionGoal:
        goal = (
            self.db.query(CommissionGoal)
            .filter(CommissionGoal.id == goal_id, CommissionGoal.tenant_id == tenant_id)
            .first()
        )
        if not goal:
            raise HTTPException(status_code=404, detail="Goal not found")
        return goal

    def list_goals(self, user: User, professional_id=None, active_only: bool = False) -> list[CommissionGoal]:
        query = self.db.query(CommissionGoal).filter(CommissionGoal.tenant_id == user.tenant_id)
        if professional_id:
            query = query.filter(CommissionGoal.professional_id == professional_id)
        if active_only:
            query = query.filter(CommissionGoal.is_active.is_(True))
        return query.order_by(CommissionGoal.start_date.desc()).all()

    def create_goal(self, data: GoalCreate, user: User) -> CommissionGoal:
        if data.professional_id:
            self._professional(user.tenant_id, data.professional_id)
        goal = CommissionGoal(tenant_id=user.tenant_id, **data.model_dump())
        self.db.add(goal)
        self.db.commit()
        self.db.refresh(goal)
        return goal

    def update_goal(self, goal_id: str, data: GoalUpdate, user: User) -> CommissionGoal:
        goal = self._goal(goal_id, user.tenant_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(goal, key, value)
        self.db.commit()
        self.db.refresh(goal)
        return goal

    def delete_goal(self, goal_id: str, user: User) -> dict:
        self.db.delete(self._goal(goal_id, user.tenant_id))
        self.db.commit()
        return {"message": "Goal deleted"}

    def goal_progress(self, goal_id: str, user: User) -> dict:
        return goals.goal_progress(self.db, self._goal(goal_id, user.tenant_id))

    def check_goal(self, goal_id: str, user: User) -> dict:
        return goals.check_goal_achievement(self.db, self._goal(goal_id, user.tenant_id))

    # ========================================================================
    # Summary and reports
    # ========================================================================

    def summary(self, user: User, professional_id=None, start=None, end=None) -> dict:
        entries = self.entries_query(user, professional_id, None, start, end).all()
        by_status: dict[str, float] = defaultdict(float)
        by_service: dict[str, dict] = defaultdict(lambda: {"count": 0, "total": 0.0})
        for entry in entries:
            by_status[entry.status] += entry.final_amount
            if entry.service_id:
                by_service[entry.service_id]["count"] += 1
                by_service[entry.service_id]["total"] += entry.final_amount

        names = {}
        if by_service:
            names = dict(
                self.db.query(Service.id, Service.name).filter(Service.id.in_(list(by_service.keys()))).all()
            )
        top = sorted(by_service.items(), key=lambda item: item[1]["total"], reverse=True)[:5]
        active = [e for e in entries if e.status != "CANCELLED"]
        return {
            "total_pending": round(by_status.get("PENDING", 0), 2),
            "total_approved": round(by_status.get("APPROVED", 0), 2),
            "total_paid": round(by_status.get("PAID", 0), 2),
            "total_on_hold": round(by_status.get("ON_HOLD", 0), 2),
            "total_cancelled": round(by_status.get("CANCELLED", 0), 2),
            "entry_count": len(entries),
            "average_commission": round(sum(e.final_amount for e in active) / len(active), 2) if active else 0,
            "top_services": [
                {
                    "service_id": service_id,
                    "name": names.get(service_id),
                    "count": values["count"],
                    "total": round(values["total"], 2),
                }
                for service_id, values in top
            ],
        }

    def report(self, user: User, start: datetime, end: datetime) -> dict:
        entries = [e for e in self.entries_query(user, None, None, start, end).all() if e.status != "CANCELLED"]
        per_professional: dict[str, dict] = defaultdict(lambda: {"entries": 0, "total": 0.0, "base": 0.0})
        per_day: dict = defaultdict(float)
        for entry in entries:
            row = per_professional[entry.professional_id]
            row["entries"] += 1
            row["total"] += entry.final_amount
            row["base"] += entry.base_amount
            per_day[entry.reference_date.date()] += entry.final_amount

        names = {}
        if per_professional:
            names = dict(
                self.db.query(Professional.id, Professional.name)
                .filter(Professional.id.in_(list(per_professional.keys())))
                .all()
            )
        days = []
        day = start.date()
        while day <= end.date():
            days.append({"date": day, "total": round(per_day.get(day, 0.0), 2)})
            day += timedelta(days=1)
        return {
            "start": start,
            "end": end,
            "total": round(sum(e.final_amount for e in entries), 2),
            "by_professional": [
                {
                    "professional_id": professional_id,
                    "name": names.get(professional_id),
                    "entries": row["entries"],
                    "total": round(row["total"], 2),
                    "revenue_base": round(row["base"], 2),
                    "commission_rate": round(row["total"] / row["base"] * 100, 2) if row["base"] else 0,
                }
                for professional_id, row in per_professional.items()
            ],
            "trends": days,
        }
