from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, Path, Body
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from gymapp.core.auth import get_current_user, require_admin
from gymapp.core.tenant import get_tenant_db, get_tenant_id
from gymapp.db.redis_client import get_redis_client
from gymapp.models.user import User
from gymapp.schemas.user import (
    UserBasic, UserCreditState, UserPlanUpdate, FreePassUpdate, CreditLog, MessageResponse
)
from gymapp.services.cache_service import cache_service
from gymapp.services.user_credits import user_credit_service

router = APIRouter()


@router.get("", response_model=List[UserBasic])
async def read_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Get Users

    Permissions:
        - Admin only.
    """
    return user_credit_service.list_users(db, skip=skip, limit=limit)


@router.get("/me", response_model=UserBasic)
async def read_current_user(current_user: User = Depends(get_current_user)) -> Any:
    """
    Get Current User
    """
    return current_user


@router.get("/me/credits", response_model=UserCreditState)
async def read_my_credits(
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Get Current User Credit State

    Balances by class type id, free pass window, enrolled classes, fixed plans
    and monthly subscriptions.
    """
    return user_credit_service.get_credit_state(db, current_user.id)


@router.get("/me/credit-logs", response_model=List[CreditLog])
async def read_my_credit_logs(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Get Current User Credit History (newest first)
    """
    return user_credit_service.get_credit_logs(db, current_user.id, skip=skip, limit=limit)


@router.get("/{user_id}/credits", response_model=UserCreditState)
async def read_user_credits(
    user_id: int = Path(..., description="ID del usuario"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Get User Credit State

    Permissions:
        - Admin only.
    """
    return user_credit_service.get_credit_state(db, user_id)


@router.get("/{user_id}/credit-logs", response_model=List[CreditLog])
async def read_user_credit_logs(
    user_id: int = Path(..., description="ID del usuario"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Get User Credit History (newest first)

    Permissions:
        - Admin only.
    """
    return user_credit_service.get_credit_logs(db, user_id, skip=skip, limit=limit)


@router.put("/{user_id}/plan", response_model=UserCreditState)
async def update_user_plan(
    user_id: int = Path(..., description="ID del usuario"),
    plan_in: UserPlanUpdate = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Update User Credits and Subscription

    - `credits_to_add`: manual adjustment (may be negative); a resulting
      negative balance is rejected.
    - `is_subscription = true`: creates or replaces the monthly subscription for
      the class type (`auto_renew_amount` defaults to 8).
    - `is_subscription = false`: removes the subscription for that type if any.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 400: Adjustment would leave a negative balance.
        HTTPException 404: User or class type not found.
    """
    state = user_credit_service.update_user_plan(db, user_id, plan_in, admin_id=current_user.id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return state


@router.delete("/{user_id}/credits", response_model=MessageResponse)
async def clear_user_credits(
    user_id: int = Path(..., description="ID del usuario"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Remove All User Credits

    Permissions:
        - Admin only.
    """
    message = user_credit_service.clear_user_credits(db, user_id, admin_id=current_user.id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return {"message": message}


@router.delete("/{user_id}/subscriptions/{class_type_id}", response_model=MessageResponse)
async def remove_user_subscription(
    user_id: int = Path(..., description="ID del usuario"),
    class_type_id: int = Path(..., description="ID del tipo de clase"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Remove Monthly Subscription

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: Subscription not found.
    """
    return {"message": user_credit_service.remove_subscription(db, user_id, class_type_id)}


@router.put("/{user_id}/free-pass", response_model=UserCreditState)
async def set_user_free_pass(
    user_id: int = Path(..., description="ID del usuario"),
    free_pass_in: FreePassUpdate = Body(...),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Set Free Pass

    Between both dates (inclusive) the user's enrollments consume no credits.

    Permissions:
        - Admin only.
    """
    return user_credit_service.set_free_pass(
        db, user_id, free_pass_in.free_pass_from, free_pass_in.free_pass_until
    )


@router.delete("/{user_id}/free-pass", response_model=UserCreditState)
async def clear_user_free_pass(
    user_id: int = Path(..., description="ID del usuario"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Remove Free Pass

    Permissions:
        - Admin only.
    """
    return user_credit_service.clear_free_pass(db, user_id)


@router.delete("/{user_id}/fixed-plans/{plan_id}", response_model=MessageResponse)
async def remove_user_fixed_plan(
    user_id: int = Path(..., description="ID del usuario"),
    plan_id: int = Path(..., description="ID del plan fijo"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Remove Fixed Plan

    Removes the plan definition only; existing enrollments are kept.

    Permissions:
        - Admin only.
    """
    return {"message": user_credit_service.remove_fixed_plan(db, user_id, plan_id)}
