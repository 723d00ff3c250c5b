# EquipTrack - Equipment Inventory and Calibration Tracking
# Copyright (C) 2025 EquipTrack contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""Scheduler service using APScheduler."""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_session_local
from app.models.auth import AuthToken, CronJob, MagicLink
from app.models.notification import Notification

logger = logging.getLogger(__name__)

# Fallback schedules when a job row is missing
DEFAULT_SCHEDULES = {
    "daily_notifications": "0 6 * * *",
    "daily_cleanup": "30 6 * * *",
}

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def run_cron_job(job_key: str, db: Session) -> Dict[str, Any]:
    """Run a cron job by key and record the outcome on its CronJob row.

    Raises:
        ValueError: for an unknown job key.
    """
    start_time = time.time()

    if job_key == "daily_notifications":
        runner = _run_daily_notifications
    elif job_key == "daily_cleanup":
        runner = _run_daily_cleanup
    else:
        raise ValueError(f"Unknown job key: {job_key}")

    try:
        result = await runner(db)
    except Exception:
        db.rollback()
        job = db.query(CronJob).filter(CronJob.job_key == job_key).first()
        if job:
            job.last_run_at = datetime.utcnow()
            job.last_run_status = "error"
            job.last_run_duration_ms = int((time.time() - start_time) * 1000)
            job.total_runs += 1
            job.total_errors += 1
            db.commit()
        logger.exception("Cron job %s failed", job_key)
        raise

    job = db.query(CronJob).filter(CronJob.job_key == job_key).first()
    if job:
        job.last_run_at = datetime.utcnow()
        job.last_run_status = "success"
        job.last_run_duration_ms = int((time.time() - start_time) * 1000)
        job.total_runs += 1
        db.commit()

    logger.info("Cron job %s finished: %s", job_key, result)
    return result


async def _run_daily_notifications(db: Session) -> Dict[str, Any]:
    """Generate system alerts and email them to subscribed users."""
    from app.services.notifications import generate_system_notifications, send_alert_digests

    created = generate_system_notifications(db)
    digest = await send_alert_digests(db, created)
    return {"created": len(created), "emails": digest}


async def _run_daily_cleanup(db: Session) -> Dict[str, Any]:
    """Clean up expired tokens and old read notifications."""
    settings = get_settings()
    results = {}
    now = datetime.utcnow()

    token_cutoff = now - timedelta(days=settings.cleanup.auth_token_retention_days)
    magic_cutoff = now - timedelta(days=settings.cleanup.magic_link_retention_days)
    notification_cutoff = now - timedelta(days=settings.cleanup.read_notification_retention_days)

    results["expired_tokens_deleted"] = (
        db.query(AuthToken)
        .filter(AuthToken.expires_at < token_cutoff)
        .delete(synchronize_session=False)
    )

    results["revoked_tokens_deleted"] = (
        db.query(AuthToken)
        .filter(AuthToken.is_revoked.is_(True), AuthToken.created_at < token_cutoff)
        .delete(synchronize_session=False)
    )

    results["magic_links_deleted"] = (
        db.query(MagicLink)
        .filter(MagicLink.expires_at < magic_cutoff)
        .delete(synchronize_session=False)
    )

    results["notifications_deleted"] = (
        db.query(Notification)
        .filter(Notification.is_read.is_(True), Notification.created_at < notification_cutoff)
        .delete(synchronize_session=False)
    )

    db.commit()
    return results


async def run_job(job_key: str) -> None:
    """Run a scheduled job in its own session if it is enabled."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        job = db.query(CronJob).filter(CronJob.job_key == job_key).first()
        if job and not job.is_enabled:
            logger.info("Skipping disabled cron job %s", job_key)
            return
        await run_cron_job(job_key, db)
    except Exception:
        # Already recorded on the job row; keep the scheduler running
        logger.error("Scheduled run of %s did not complete", job_key)
    finally:
        db.close()


def setup_scheduler():
    """Register cron jobs using the schedules stored in the cron_jobs table."""
    sched = get_scheduler()

    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        schedules = {job.job_key: job.cron_schedule for job in db.query(CronJob).all()}
    finally:
        db.close()

    for job_key, default in DEFAULT_SCHEDULES.items():
        expression = schedules.get(job_key, default)
        sched.add_job(
            run_job,
            CronTrigger.from_crontab(expression),
            args=[job_key],
            id=job_key,
            replace_existing=True,
        )
        logger.info("Scheduled %s (%s)", job_key, expression)

    return sched


def start_scheduler():
    """Start the scheduler."""
    sched = setup_scheduler()
    if not sched.running:
        sched.start()
    return sched


def stop_scheduler():
    """Stop the scheduler."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown()
