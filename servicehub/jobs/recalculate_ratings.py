"""
Rating Recalculation Job - rebuild every cached rating aggregate.

Recomputes the rating average and count of every service and provider from
their visible reviews, overwriting the cached values. Safe to run at any time,
including alongside live traffic.

Execution flow:
1. Record a Job row in `processing`
2. Run RatingService.recalculate_all_ratings()
3. Mark the Job `done` with the counts, or `failed` with the error

Usage:
    python -m servicehub.jobs.recalculate_ratings [--triggered-by NAME]
"""
import argparse
import sys
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from servicehub.lib.db import get_db_context
from servicehub.lib.logging import get_logger
from servicehub.models.jobs import Job, JobStatus, JobType
from servicehub.services.rating_service import RatingService

logger = get_logger(__name__)


def run_rating_recalculation(db: Session, triggered_by: Optional[str] = "cli") -> Job:
    """
    Run a full rating recalculation and record it as a Job.

    Args:
        db: Database session
        triggered_by: Actor id of the administrator, or "cli"

    Returns:
        The finished Job; its `result` holds services_updated and providers_updated

    Raises:
        Exception: whatever the recalculation raised, after the Job is marked failed
    """
    job = Job(
        type=JobType.RATING_RECALCULATION,
        status=JobStatus.PROCESSING,
        triggered_by=triggered_by,
        started_at=datetime.now(timezone.utc),
    )
    db.add(job)
    db.commit()

    logger.info(
        "Starting rating recalculation",
        extra={"job_id": str(job.id), "triggered_by": triggered_by},
    )

    try:
        result = RatingService(db).recalculate_all_ratings()
    except Exception as e:
        db.rollback()
        job.status = JobStatus.FAILED
        job.error = str(e)[:1000]
        job.finished_at = datetime.now(timezone.utc)
        db.add(job)
        db.commit()
        logger.error(
            "Rating recalculation failed",
            extra={"job_id": str(job.id)},
            exc_info=True,
        )
        raise

    job.status = JobStatus.DONE
    job.result = result
    job.finished_at = datetime.now(timezone.utc)
    db.commit()

    logger.info(
        "Rating recalculation completed",
        extra={"job_id": str(job.id), **result},
    )
    return job


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate all service and provider ratings")
    parser.add_argument("--triggered-by", default="cli", help="Recorded on the job row")
    args = parser.parse_args(argv)

    with get_db_context() as db:
        job = run_rating_recalculation(db, triggered_by=args.triggered_by)
        print(
            f"services_updated={job.result['services_updated']} "
            f"providers_updated={job.result['providers_updated']}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
