"""Tests for the scheduled housekeeping jobs and commission goals"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from app import worker
from app.domain.appointments.jobs import auto_cancel_unconfirmed, auto_mark_no_show, cleanup_old_appointments
from app.domain.commissions.goals import build_progress, check_active_goals, check_goal_achievement, goal_progress
from app.models_appointment import Appointment
from app.models_commission import CommissionEntry, CommissionGoal

NOW = datetime(2026, 10, 18, 12, 0)


@pytest.fixture
def make_appointment(db, tenant, make_customer, make_professional):
    customer = make_customer()
    professional = make_professional()

    def factory(scheduled_at, status="PENDING", created_at=None, final_price=100.0, **kwargs) -> Appointment:
        appointment = Appointment(
            tenant_id=tenant.id,
            customer_id=customer.id,
            professional_id=professional.id,
            scheduled_at=scheduled_at,
            end_time=scheduled_at + timedelta(minutes=60),
            total_duration=60,
            total_price=final_price,
            final_price=final_price,
            status=status,
            created_at=created_at or scheduled_at - timedelta(days=3),
            **kwargs,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    factory.professional = professional
    return factory


@pytest.mark.unit
class TestAppointmentJobs:
    def test_auto_cancel_only_stale_pending(self, db, make_appointment):
        stale = make_appointment(NOW + timedelta(days=2), created_at=NOW - timedelta(days=2))
        fresh = make_appointment(NOW + timedelta(days=2), created_at=NOW - timedelta(hours=2))
        confirmed = make_appointment(NOW + timedelta(days=2), status="CONFIRMED", created_at=NOW - timedelta(days=5))

        assert auto_cancel_unconfirmed(db, now=NOW) == {"cancelled": 1}

        db.refresh(stale)
        assert stale.status == "CANCELLED"
        assert stale.cancellation_reason == "AUTO_CANCELLED"
        assert stale.hours_before_scheduled == 48.0
        assert db.get(Appointment, fresh.id).status == "PENDING"
        assert db.get(Appointment, confirmed.id).status == "CONFIRMED"

    def test_auto_cancel_scoped_to_tenant(self, db, make_appointment):
        make_appointment(NOW + timedelta(days=2), created_at=NOW - timedelta(days=2))
        assert auto_cancel_unconfirmed(db, tenant_id="other-tenant", now=NOW) == {"cancelled": 0}

    def test_no_show(self, db, make_appointment):
        missed = make_appointment(NOW - timedelta(hours=1), status="CONFIRMED")
        waiting = make_appointment(NOW - timedelta(minutes=10), status="WAITING")

        assert auto_mark_no_show(db, now=NOW) == {"marked": 1}
        assert db.get(Appointment, missed.id).status == "NO_SHOW"
        assert db.get(Appointment, waiting.id).status == "WAITING"

    def test_archive_old_finished(self, db, make_appointment):
        old = make_appointment(NOW - timedelta(days=400), status="COMPLETED")
        make_appointment(NOW - timedelta(days=400), status="CONFIRMED")
        make_appointment(NOW - timedelta(days=10), status="COMPLETED")

        assert cleanup_old_appointments(db, now=NOW) == {"archived": 1}
        db.refresh(old)
        assert old.archived_at == NOW

    async def test_worker_task_uses_own_session(self, engine, db, monkeypatch, make_appointment):
        make_appointment(datetime.utcnow() - timedelta(hours=2), status="CONFIRMED")
        monkeypatch.setattr(worker, "SessionLocal", sessionmaker(bind=engine))

        assert await worker.no_show_task({}) == {"marked": 1}


@pytest.mark.unit
class TestGoals:
    def test_build_progress(self):
        start = datetime(2026, 10, 1)
        progress = build_progress(600, 1000, start, start + timedelta(days=30), start + timedelta(days=10), previous=500)

        assert progress["percentage"] == 60.0
        assert progress["is_achieved"] is False
        assert progress["remaining_days"] == 20
        assert progress["projected_value"] == 1800.0
        assert progress["trend"] == "UP"

    def test_zero_target(self):
        start = datetime(2026, 10, 1)
        assert build_progress(10, 0, start, start, start)["percentage"] == 0

    def _goal(self, db, tenant, professional, **kwargs) -> CommissionGoal:
        goal = CommissionGoal(
            tenant_id=tenant.id,
            professional_id=professional.id,
            name="Outubro",
            type=kwargs.pop("type", "REVENUE"),
            target_value=kwargs.pop("target_value", 250),
            start_date=datetime(2026, 10, 1),
            end_date=datetime(2026, 10, 31, 23, 59),
            **kwargs,
        )
        db.add(goal)
        db.commit()
        return goal

    def test_revenue_goal_pays_bonus_once(self, db, tenant, make_appointment):
        professional = make_appointment.professional
        for day in (3, 5, 9):
            start = datetime(2026, 10, day, 10)
            make_appointment(start, status="COMPLETED", completed_at=start + timedelta(hours=1))
        goal = self._goal(db, tenant, professional, bonus_amount=50)

        assert goal_progress(db, goal, NOW)["current"] == 300.0

        first = check_goal_achievement(db, goal, NOW)
        second = check_goal_achievement(db, goal, NOW)
        assert first["is_achieved"] and first["bonus"] == 50
        assert second["is_achieved"]

        entries = db.query(CommissionEntry).filter(CommissionEntry.source_type == "BONUS").all()
        assert len(entries) == 1
        assert entries[0].final_amount == 50
        assert goal.bonus_entry_id == entries[0].id

    def test_appointment_goal_not_reached(self, db, tenant, make_appointment):
        start = datetime(2026, 10, 3, 10)
        make_appointment(start, status="COMPLETED", completed_at=start)
        goal = self._goal(db, tenant, make_appointment.professional, type="APPOINTMENTS", target_value=10)

        assert check_active_goals(db, now=NOW) == {"achieved": 0}
        db.refresh(goal)
        assert goal.current_value == 1
        assert goal.achieved_at is None
