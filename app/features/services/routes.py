"""
Resource catalog routes.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.services.models import Service, SubService, SubSubService
from app.features.services.schemas import ServiceResponse, ResourceTreeResponse
from app.features.services.tree import ResourceNode, build_resource_tree


router = APIRouter()


async def load_resource_tree(db: AsyncSession, language: str) -> list[ResourceNode]:
    """Fetch the three catalog tables and assemble them."""
    services = (await db.execute(select(Service).where(Service.is_active == True))).scalars().all()
    pages = (await db.execute(select(SubService).order_by(SubService.order))).scalars().all()
    actions = (await db.execute(select(SubSubService))).scalars().all()
    return build_resource_tree(
        [s.to_record() for s in services],
        [p.to_record() for p in pages],
        [a.to_record() for a in actions],
        language=language,
    )


@router.get("", response_model=list[ServiceResponse])
async def list_services(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List catalog services."""
    stmt = select(Service)
    if not include_inactive:
        stmt = stmt.where(Service.is_active == True)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/tree", response_model=ResourceTreeResponse)
async def get_resource_tree(
    language: str = Query(config.DEFAULT_LANGUAGE, pattern="^(ar|en)$"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get the service -> page/action tree used by permission editors."""
    tree = await load_resource_tree(db, language)
    return ResourceTreeResponse(language=language, services=tree)
