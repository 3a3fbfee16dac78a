from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Path, Body, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from gymapp.core.auth import get_current_user, require_admin
from gymapp.core.config import get_settings
from gymapp.core.tenant import get_tenant_db, get_tenant_id
from gymapp.db.redis_client import get_redis_client
from gymapp.models.user import User
from gymapp.schemas.class_type import ClassType, ClassTypeCreate, ClassTypeUpdate, ClassTypeList
from gymapp.schemas.user import MessageResponse
from gymapp.services.cache_service import cache_service, tenant_key
from gymapp.services.class_type import class_type_service

router = APIRouter()


@router.get("", response_model=ClassTypeList)
async def read_class_types(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    keyword: Optional[str] = Query(None, description="Busca en nombre y descripción"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Get Class Types

    Paginated list sorted by name. Each row includes `available_credits`
    (`total_credits` minus credits currently held by users, never negative).
    Cached per tenant and query; invalidated by schedule and credit mutations.

    Permissions:
        - Any authenticated user.
    """
    async def db_fetch():
        return class_type_service.list_class_types(db, page=page, limit=limit, keyword=keyword)

    return await cache_service.get_or_set(
        redis_client,
        tenant_key(client_id, "class_types", page, limit, (keyword or "").strip().lower()),
        db_fetch,
        ClassTypeList,
        expiry_seconds=get_settings().CACHE_TTL_CLASS_TYPES
    )


@router.post("", response_model=ClassType, status_code=status.HTTP_201_CREATED)
async def create_class_type(
    class_type_in: ClassTypeCreate = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Create Class Type

    Permissions:
        - Admin only.

    Raises:
        HTTPException 400: A class type with that name already exists.
    """
    class_type = class_type_service.create_class_type(db, class_type_in)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return class_type


@router.get("/{class_type_id}", response_model=ClassType)
async def read_class_type(
    class_type_id: int = Path(..., description="ID del tipo de clase"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Get Class Type by ID
    """
    return class_type_service.get_class_type_detail(db, class_type_id)


@router.put("/{class_type_id}", response_model=ClassType)
async def update_class_type(
    class_type_id: int = Path(..., description="ID del tipo de clase"),
    class_type_in: ClassTypeUpdate = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Update Class Type

    The universal credit type can't be modified.

    Permissions:
        - Admin only.
    """
    class_type = class_type_service.update_class_type(db, class_type_id, class_type_in)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return class_type


@router.delete("/{class_type_id}", response_model=MessageResponse)
async def delete_class_type(
    class_type_id: int = Path(..., description="ID del tipo de clase"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Delete Class Type

    Rejected for the universal type, while any class references the type, or
    while any user holds a balance of it.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 403: Universal credit type.
        HTTPException 409: Type still in use.
    """
    class_type_service.delete_class_type(db, class_type_id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return {"message": "Tipo de clase eliminado."}
