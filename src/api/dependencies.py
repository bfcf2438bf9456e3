"""FastAPI dependency injection helpers."""

from functools import lru_cache

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import SessionContext
from src.domain.enums import Role
from src.domain.errors import ValidationError
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import async_session_factory
from src.infrastructure.geocoding import Geocoder, NominatimGeocoder


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_clock() -> Clock:
    return utcnow


@lru_cache
def get_geocoder() -> Geocoder:
    return NominatimGeocoder()


async def get_session_context(
    x_user_id: str = Header(..., alias="X-User-Id"),
    x_user_role: Role = Header(..., alias="X-User-Role"),
) -> SessionContext:
    """
    Acting party for the request.  Authentication happens upstream; the
    gateway forwards the verified identity in these two headers.
    """
    if x_user_role is Role.SYSTEM:
        raise ValidationError("the system role cannot be assumed by a client")
    if not x_user_id.strip():
        raise ValidationError("X-User-Id must not be empty")
    return SessionContext(user_id=x_user_id.strip(), role=x_user_role)
