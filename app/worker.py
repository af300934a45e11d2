"""
ARQ Background Worker for Async Jobs
Drains the notification and webhook outboxes and runs the scheduled housekeeping jobs
"""

import logging
import os

from arq.cron import cron

from .config import AUTO_CANCEL_MINUTES, CLEANUP_DAYS, NO_SHOW_MINUTES

# Import all model files so SQLAlchemy can resolve relationships
from . import models  # noqa: F401
from . import models_appointment  # noqa: F401
from . import models_commission  # noqa: F401
from . import models_customer  # noqa: F401
from . import models_financial  # noqa: F401
from . import models_integration  # noqa: F401
from . import models_inventory  # noqa: F401
from . import models_marketing  # noqa: F401
from . import models_notification  # noqa: F401
from .database import SessionLocal
from .domain.appointments.jobs import auto_cancel_unconfirmed, auto_mark_no_show, cleanup_old_appointments
from .domain.commissions.goals import check_active_goals
from .domain.customers.segmentation import SegmentService
from .domain.financial.service import mark_overdue_invoices
from .domain.integrations.webhooks import process_due_deliveries
from .domain.marketing.service import expire_referrals
from .domain.notifications.service import NotificationService
from .task_queue import get_redis_settings

logger = logging.getLogger(__name__)


def _run_sync(name: str, job, **kwargs) -> dict:
    db = SessionLocal()
    try:
        summary = job(db, **kwargs)
        logger.info(f"✅ {name} complete: {summary}")
        return summary
    except Exception as e:
        logger.error(f"❌ {name} failed: {str(e)}")
        raise
    finally:
        db.close()


# ============================================================================
# Outboxes
# ============================================================================


async def process_notifications_task(ctx, limit: int = 100):
    """Dispatch due PENDING notifications through their channel senders"""
    db = SessionLocal()
    try:
        return await NotificationService(db).process_queue(limit)
    except Exception as e:
        logger.error(f"❌ Notification processing failed: {str(e)}")
        raise
    finally:
        db.close()


async def process_webhooks_task(ctx, limit: int = 100):
    """Deliver due PENDING / RETRYING webhook deliveries"""
    db = SessionLocal()
    try:
        summary = await process_due_deliveries(db, limit)
        if summary["processed"]:
            logger.info(f"🔗 Webhook deliveries: {summary}")
        return summary
    except Exception as e:
        logger.error(f"❌ Webhook processing failed: {str(e)}")
        raise
    finally:
        db.close()


# ============================================================================
# Housekeeping
# ============================================================================


async def auto_cancel_task(ctx):
    return _run_sync("Auto-cancel", auto_cancel_unconfirmed, minutes=AUTO_CANCEL_MINUTES)


async def no_show_task(ctx):
    return _run_sync("No-show marking", auto_mark_no_show, minutes=NO_SHOW_MINUTES)


async def cleanup_appointments_task(ctx):
    return _run_sync("Appointment cleanup", cleanup_old_appointments, days=CLEANUP_DAYS)


async def overdue_invoices_task(ctx):
    return _run_sync("Overdue invoices", mark_overdue_invoices)


async def expire_referrals_task(ctx):
    return _run_sync("Referral expiry", expire_referrals)


async def check_goals_task(ctx):
    return _run_sync("Goal check", check_active_goals)


async def evaluate_segments_task(ctx):
    """Nightly re-evaluation of every rule based segment"""
    db = SessionLocal()
    try:
        summary = SegmentService(db).evaluate_all()
        logger.info(f"📊 Segment evaluation complete: {summary}")
        return summary
    except Exception as e:
        logger.error(f"❌ Segment evaluation failed: {str(e)}")
        raise
    finally:
        db.close()


class WorkerSettings:
    """ARQ Worker Settings"""

    functions = [
        process_notifications_task,
        process_webhooks_task,
        auto_cancel_task,
        no_show_task,
        cleanup_appointments_task,
        overdue_invoices_task,
        expire_referrals_task,
        check_goals_task,
        evaluate_segments_task,
    ]
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "600"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))

    health_check_interval = 60

    # Retry failed jobs up to 3 times
    max_tries = 3

    cron_jobs = [
        cron(process_notifications_task, second={0, 30}),  # every 30 seconds
        cron(process_webhooks_task, second=15),  # every minute
        cron(auto_cancel_task, minute={0, 15, 30, 45}),
        cron(no_show_task, minute={5, 20, 35, 50}),
        cron(check_goals_task, minute=10),  # hourly
        cron(cleanup_appointments_task, hour=3, minute=0),  # 3 AM UTC
        cron(evaluate_segments_task, hour=4, minute=0),
        cron(overdue_invoices_task, hour=0, minute=5),
        cron(expire_referrals_task, hour=0, minute=10),
    ]

    logger.info(f"🔧 ARQ Worker configured: max_jobs={max_jobs}, timeout={job_timeout}s")
