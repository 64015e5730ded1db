from app.infrastructure.scheduler.jobs import purge_expired_challenges
from app.infrastructure.scheduler.main import (
    initialize_scheduler,
    schedule_purge_expired_challenges_job,
    scheduler,
)

__all__ = [
    "scheduler",
    "purge_expired_challenges",
    "schedule_purge_expired_challenges_job",
    "initialize_scheduler",
]
