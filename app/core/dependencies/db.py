from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one database session per request and close it afterwards.

    Services decide when to commit; anything left uncommitted is rolled back
    when the session closes.
    """
    async with AsyncSessionLocal() as async_session:
        yield async_session
