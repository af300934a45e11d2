"""Unit tests for commission calculation and the entry/payout lifecycle."""

from datetime import datetime

import pytest
from fastapi import HTTPException

from app.domain.commissions.calculation import apply_rule, calculate_commission, calculate_tiered, conditions_match
from app.domain.commissions.schemas import AdjustmentRequest, EntryCreate, PaymentCreate
from app.domain.commissions.service import CommissionService
from app.models_commission import CommissionRule, ProfessionalCommissionConfig
from app.models_financial import Transaction

SINCE = datetime(2020, 1, 1)
# A Sunday
NOW = datetime(2026, 10, 18, 12, 0)


def _rule(db, tenant, **kwargs) -> CommissionRule:
    values = {
        "tenant_id": tenant.id,
        "name": "Rule",
        "type": "PERCENTAGE",
        "trigger": "APPOINTMENT_COMPLETED",
        "percentage": 10.0,
        "priority": 0,
        "is_active": True,
        "valid_from": SINCE,
        "conditions": {},
        "tiers": [],
    }
    values.update(kwargs)
    rule = CommissionRule(**values)
    db.add(rule)
    db.commit()
    return rule


@pytest.mark.unit
class TestPureCalculation:
    def test_tiered_charges_each_band(self):
        tiers = [
            {"min_value": 0, "max_value": 1000, "percentage": 10},
            {"min_value": 1000, "max_value": None, "percentage": 15},
        ]
        amount, breakdown = calculate_tiered(1500, tiers)
        assert amount == 175.0
        assert [line["value"] for line in breakdown] == [100.0, 75.0]

    def test_tiered_below_second_band(self):
        tiers = [
            {"min_value": 0, "max_value": 1000, "percentage": 10},
            {"min_value": 1000, "percentage": 15},
        ]
        assert calculate_tiered(400, tiers)[0] == 40.0

    def test_mixed_rule(self):
        rule = CommissionRule(id="r1", type="MIXED", percentage=10.0, fixed_amount=5.0)
        result = apply_rule(rule, 200)
        assert result["amount"] == 25.0
        assert len(result["breakdown"]) == 2

    def test_fixed_rule_ignores_base(self):
        rule = CommissionRule(id="r2", type="FIXED", fixed_amount=12.5)
        assert apply_rule(rule, 999)["amount"] == 12.5

    def test_conditions(self):
        assert conditions_match({}, "p1", 50)
        assert not conditions_match({"min_transaction_value": 100}, "p1", 50)
        assert not conditions_match({"professional_ids": ["p2"]}, "p1", 50)
        assert conditions_match({"days_of_week": [0]}, "p1", 50, now=NOW)
        assert not conditions_match({"days_of_week": [1, 2]}, "p1", 50, now=NOW)


@pytest.mark.unit
class TestResolution:
    def test_nothing_configured_earns_zero(self, db, tenant, make_professional):
        professional = make_professional()
        result = calculate_commission(db, tenant.id, professional.id, 100, "APPOINTMENT", now=NOW)
        assert result["amount"] == 0.0

    def test_default_percentage(self, db, tenant, make_professional):
        professional = make_professional()
        db.add(ProfessionalCommissionConfig(tenant_id=tenant.id, professional_id=professional.id, default_percentage=40))
        db.commit()
        result = calculate_commission(db, tenant.id, professional.id, 150, "APPOINTMENT", now=NOW)
        assert result["amount"] == 60.0

    def test_highest_priority_matching_rule_wins(self, db, tenant, make_professional):
        professional = make_professional()
        _rule(db, tenant, name="Base", percentage=10.0, priority=1)
        _rule(db, tenant, name="Big tickets", percentage=20.0, priority=5, conditions={"min_transaction_value": 500})
        _rule(db, tenant, name="Expired", percentage=90.0, priority=9, valid_to=datetime(2021, 1, 1))

        small = calculate_commission(db, tenant.id, professional.id, 100, "APPOINTMENT", now=NOW)
        large = calculate_commission(db, tenant.id, professional.id, 600, "APPOINTMENT", now=NOW)

        assert small["amount"] == 10.0
        assert large["amount"] == 120.0

    def test_rule_trigger_must_match_source(self, db, tenant, make_professional):
        professional = make_professional()
        _rule(db, tenant, trigger="PRODUCT_SOLD")
        result = calculate_commission(db, tenant.id, professional.id, 100, "APPOINTMENT", now=NOW)
        assert result["amount"] == 0.0

    def test_service_override_beats_rules(self, db, tenant, make_professional, make_service):
        service = make_service()
        professional = make_professional(services=[service])
        _rule(db, tenant, percentage=10.0, priority=10)
        db.add(
            ProfessionalCommissionConfig(
                tenant_id=tenant.id,
                professional_id=professional.id,
                service_overrides={service.id: {"type": "FIXED", "value": 30}},
            )
        )
        db.commit()
        result = calculate_commission(
            db, tenant.id, professional.id, 100, "APPOINTMENT", service_id=service.id, now=NOW
        )
        assert result["amount"] == 30.0
        assert result["rule_id"] is None


@pytest.mark.unit
class TestEntriesAndPayouts:
    def _entry(self, service, professional, user, amount=200.0):
        return service.create_entry(
            EntryCreate(professional_id=professional.id, base_amount=amount, source_type="APPOINTMENT"), user
        )

    def test_adjustments_change_final_amount(self, db, tenant, owner, make_professional):
        professional = make_professional()
        db.add(ProfessionalCommissionConfig(tenant_id=tenant.id, professional_id=professional.id, default_percentage=50))
        db.commit()
        service = CommissionService(db)

        entry = self._entry(service, professional, owner)
        assert entry.calculated_amount == 100.0

        entry = service.adjust(entry.id, AdjustmentRequest(type="DEDUCTION", amount=30, reason="Product damage"), owner)
        assert entry.final_amount == 70.0
        entry = service.adjust(entry.id, AdjustmentRequest(type="BONUS", amount=5, reason="Great review"), owner)
        assert entry.final_amount == 75.0

    def test_only_pending_entries_are_approved(self, db, tenant, owner, make_professional):
        professional = make_professional()
        service = CommissionService(db)
        entry = self._entry(service, professional, owner)
        service.approve([entry.id], owner)

        with pytest.raises(HTTPException) as exc:
            service.approve([entry.id], owner)
        assert exc.value.status_code == 400

    def test_payout_marks_entries_paid_and_records_expense(self, db, tenant, owner, make_professional):
        professional = make_professional()
        db.add(ProfessionalCommissionConfig(tenant_id=tenant.id, professional_id=professional.id, default_percentage=10))
        db.commit()
        service = CommissionService(db)
        first = self._entry(service, professional, owner, 100)
        second = self._entry(service, professional, owner, 300)
        service.approve([first.id, second.id], owner)

        payment = service.create_payment(
            PaymentCreate(professional_id=professional.id, entry_ids=[first.id, second.id], deductions=5), owner
        )
        assert payment.gross_amount == 40.0
        assert payment.net_amount == 35.0
        assert payment.entry_count == 2

        paid = service.process_payment(payment.id, owner)
        assert paid.status == "PAID"
        db.refresh(first)
        assert first.status == "PAID"
        assert db.query(Transaction).filter(Transaction.reference_id == payment.id).count() == 1

        with pytest.raises(HTTPException):
            service.cancel_payment(payment.id, owner)

    def test_unapproved_entries_cannot_be_paid(self, db, tenant, owner, make_professional):
        professional = make_professional()
        service = CommissionService(db)
        entry = self._entry(service, professional, owner)

        with pytest.raises(HTTPException) as exc:
            service.create_payment(PaymentCreate(professional_id=professional.id, entry_ids=[entry.id]), owner)
        assert exc.value.status_code == 400
