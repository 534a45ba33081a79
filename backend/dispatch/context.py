"""
Application context: the collaborators every call needs, built once at startup.

Nothing here is a module-level singleton: the API lifespan (or a test
fixture) builds an AppContext and hands it to the dispatcher.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import Settings
from core.security import TokenAuthority
from db.session import build_engine, build_session_factory
from dispatch.rate_limit import FixedWindowRateLimiter


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    tokens: TokenAuthority
    limiter: FixedWindowRateLimiter | None = None

    async def dispose(self) -> None:
        await self.engine.dispose()


def build_context(settings: Settings, engine: AsyncEngine | None = None) -> AppContext:
    engine = engine or build_engine(settings)
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        tokens=TokenAuthority(settings),
        limiter=FixedWindowRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    )
