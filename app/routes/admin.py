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


"""Admin routes for system maintenance."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.triggers.cron import CronTrigger
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.auth import require_admin
from app.models.auth import AuthToken, CronJob, MagicLink
from app.models.user import User
from app.services.scheduler import get_scheduler, run_cron_job, run_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin")


class CronJobUpdate(BaseModel):
    """Cron job update request."""

    is_enabled: Optional[bool] = None
    cron_schedule: Optional[str] = Field(None, max_length=50)


class TokenDeleteRequest(BaseModel):
    """Token cleanup request."""

    days: int = 7


def _get_job(db: Session, job_id: int) -> CronJob:
    job = db.query(CronJob).filter(CronJob.id == job_id).first()
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cron job not found",
        )
    return job


# Token Management Routes
@router.post("/tokens/delete-old")
async def delete_old_tokens(
    data: Optional[TokenDeleteRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Delete auth tokens and magic links created more than ``days`` ago."""
    days = data.days if data else 7

    if days < 0 or days > 180:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Days must be between 0 and 180",
        )

    cutoff = datetime.utcnow() - timedelta(days=days)

    affected_users = (
        db.query(AuthToken.user_id)
        .filter(AuthToken.created_at < cutoff)
        .distinct()
        .count()
    )

    tokens_deleted = (
        db.query(AuthToken)
        .filter(AuthToken.created_at < cutoff)
        .delete(synchronize_session=False)
    )

    magic_deleted = (
        db.query(MagicLink)
        .filter(MagicLink.created_at < cutoff)
        .delete(synchronize_session=False)
    )

    db.commit()

    logger.info("Admin %s deleted %d tokens older than %d days", current_user.email, tokens_deleted, days)

    return {
        "success": True,
        "deleted_count": tokens_deleted,
        "affected_users": affected_users,
        "magic_links_deleted": magic_deleted,
        "days": days,
        "message": f"Deleted {tokens_deleted} tokens older than {days} days",
    }


# Cron Job Management Routes
@router.get("/cron-jobs")
async def list_cron_jobs(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """List all cron jobs."""
    jobs = db.query(CronJob).order_by(CronJob.job_key).all()
    return {
        "success": True,
        "jobs": [j.to_dict() for j in jobs],
    }


@router.put("/cron-jobs/{job_id}")
async def update_cron_job(
    job_id: int,
    data: CronJobUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Enable, disable or reschedule a cron job."""
    job = _get_job(db, job_id)

    trigger = None
    if data.cron_schedule is not None:
        try:
            trigger = CronTrigger.from_crontab(data.cron_schedule)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid cron schedule: {e}",
            )
        job.cron_schedule = data.cron_schedule

    if data.is_enabled is not None:
        job.is_enabled = data.is_enabled

    db.commit()
    db.refresh(job)

    sched = get_scheduler()
    if trigger is not None and sched.running:
        sched.add_job(run_job, trigger, args=[job.job_key], id=job.job_key, replace_existing=True)
        logger.info("Rescheduled %s (%s)", job.job_key, job.cron_schedule)

    return {
        "success": True,
        "job": job.to_dict(),
        "message": f"Cron job '{job.job_name}' {'enabled' if job.is_enabled else 'disabled'}",
    }


@router.post("/cron-jobs/{job_id}/trigger")
async def trigger_cron_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Manually trigger a cron job."""
    job = _get_job(db, job_id)

    if not job.is_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot trigger disabled cron job",
        )

    try:
        result = await run_cron_job(job.job_key, db)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run cron job: {str(e)}",
        )

    return {
        "success": True,
        "message": f"Cron job '{job.job_name}' triggered successfully",
        "result": result,
    }
