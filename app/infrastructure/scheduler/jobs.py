from app.core.config import scheduler_logger, settings
from app.core.db import AsyncSessionLocal
from app.core.db.crud import otp_challenge_db


async def purge_expired_challenges(retention_days: int | None = None) -> int:
    """
    Periodic task to permanently delete OTP challenges that expired more than
    `retention_days` ago.

    Args:
        retention_days (int | None): Days to keep expired challenges.
            Defaults to settings.OTP_RETENTION_DAYS.

    Returns:
        int: The number of challenges deleted.
    """
    retention_days = (
        retention_days if retention_days is not None else settings.OTP_RETENTION_DAYS
    )
    async with AsyncSessionLocal.begin() as session:
        scheduler_logger.info(
            f"Starting purge of OTP challenges expired more than {retention_days} day(s) ago"
        )
        deleted_count = await otp_challenge_db.purge_expired(
            session, retention_days=retention_days, commit_self=False
        )
        scheduler_logger.info(
            f"Completed purge of expired OTP challenges. Deleted {deleted_count} record(s)."
        )
    return deleted_count
