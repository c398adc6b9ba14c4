"""Shared database dependency for FastAPI routers."""
from typing import Any, AsyncGenerator

from dependency_injector.wiring import Provide, inject
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from di.container import ApplicationContainer
from infra.resources import DatabaseResource


@inject
async def get_db_session(
    db: DatabaseResource = Depends(
        Provide[ApplicationContainer.infrastructure.database]
    ),
) -> AsyncGenerator[AsyncSession, Any]:
    """Yield an AsyncSession per request and close it afterwards."""
    async with db.get_session() as session:
        yield session
