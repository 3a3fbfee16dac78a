from gymapp.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post("/classes/{class_id}/enroll", response_model=EnrollmentResult)
async def enroll_in_class(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Enroll Current User

    Debit order: an active free pass covering the class date consumes nothing;
    otherwise one credit of the class's own type, and as a last resort one
    universal credit. The debited type is recorded so a later refund returns the
    same type. When the last seat is taken the class becomes `llena`.

    Permissions:
        - Any authenticated user.

    Raises:
        HTTPException 400: No usable credits (message tells apart an expired free pass).
        HTTPException 404: Class not found.
        HTTPException 409: Class full or cancelled, or user already enrolled.
    """
    result = enrollment_service.enroll(db, class_id, current_user)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/classes/{class_id}/unenroll", response_model=EnrollmentResult)
async def unenroll_from_class(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Unenroll Current User

    Allowed until the gym's cutoff (60 minutes before the class start by default,
    evaluated in the gym's time zone). The debited credit is refunded; if the
    class was full it becomes `activa` again and waitlisted users are notified.

    Permissions:
        - Any authenticated user.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 409: Past the unenroll deadline, or user not enrolled.
    """
    result = enrollment_service.unenroll(db, class_id, current_user)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/classes/{class_id}/users/{user_id}", response_model=EnrollmentResult)
async def admin_add_user_to_class(
    class_id: int = Path(..., description="ID de la clase"),
    user_id: int = Path(..., description="ID del usuario"),
    enroll_in: Optional[AdminEnrollRequest] = Body(None),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Add a User to a Class (admin)

    Same checks and debit order as self-enrollment. With `charge_credit = false`
    the user is added without consuming credits (and nothing is refunded later).
    The user is removed from the class waitlist if present.

    Permissions:
        - Admin only.
    """
    charge_credit = enroll_in.charge_credit if enroll_in else True
    result = enrollment_service.admin_add_user(
        db, class_id, user_id, charge_credit=charge_credit, admin_id=current_user.id
    )
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.delete("/classes/{class_id}/users/{user_id}", response_model=EnrollmentResult)
async def admin_remove_user_from_class(
    class_id: int = Path(..., description="ID de la clase"),
    user_id: int = Path(..., description="ID del usuario"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Remove a User from a Class (admin)

    Refunds the debited credit with no deadline check and notifies the user.

    Permissions:
        - Admin only.
    """
    result = enrollment_service.admin_remove_user(db, class_id, user_id, admin_id=current_user.id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/classes/{class_id}/waitlist", response_model=WaitlistResult)
async def join_waitlist(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Join Class Waitlist

    Only for full classes. Joining twice has no effect. Waitlisted users are
    notified when a seat opens; they are not enrolled automatically.
    """
    instance = enrollment_service.subscribe_to_waitlist(db, class_id, current_user)
    return {
        "message": "Te anotaste en la lista de espera.",
        "waitlist_user_ids": instance.waitlist_user_ids
    }


@router.delete("/classes/{class_id}/waitlist", response_model=WaitlistResult)
async def leave_waitlist(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Leave Class Waitlist
    """
    instance = enrollment_service.unsubscribe_from_waitlist(db, class_id, current_user)
    return {
        "message": "Saliste de la lista de espera.",
        "waitlist_user_ids": instance.waitlist_user_ids
    }


@router.get("/plans/available-slots", response_model=List[AvailableSlot])
async def get_available_slots_for_plan(
    class_type_id: int = Query(...),
    weekdays: List[str] = Query(..., description="Días de la semana, por ejemplo Lunes"),
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(require_admin)
) -> Any:
    """
    Available Time Slots for a Fixed Plan

    Distinct start/end windows of active classes of the given type on the given
    weekdays and date range. Used before subscribing a user to a plan.

    Permissions:
        - Admin only.
    """
    return enrollment_service.get_available_slots_for_plan(
        db, class_type_id, weekdays, start_date, end_date
    )


@router.post("/plans", response_model=PlanEnrollmentResult, status_code=status.HTTP_201_CREATED)
async def subscribe_user_to_plan(
    plan_in: PlanEnrollmentRequest = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Subscribe a User to a Fixed Plan

    Enrolls the user in every active class matching class type, weekdays,
    date range and start time, and stores the plan definition. Every matching
    class is validated first (not already enrolled, seat available); either all
    enrollments happen or none. Plan enrollments don't consume credits.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: User, class type or matching classes not found.
        HTTPException 409: The user is already enrolled in, or there's no seat in, one of the classes.
    """
    result = enrollment_service.subscribe_user_to_plan(db, plan_in, admin_id=current_user.id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result
