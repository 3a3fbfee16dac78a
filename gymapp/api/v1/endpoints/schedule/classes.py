from gymapp.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post("", response_model=ClassBatchCreated, status_code=status.HTTP_201_CREATED)
async def create_classes(
    class_in: ClassInstanceCreate = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Create Class Instance(s)

    Creates a single class (`enrollment_kind = "libre"`, requires `date`) or a
    recurring batch (`enrollment_kind = "fijo"`, requires `weekdays`,
    `start_date` and `end_date`). Every instance of a recurring batch shares the
    same `recurrence_rule` token, which later identifies the series in the
    grouped listing and in extend operations.

    The class type's total credits grow by `capacity` for each created instance.

    Args:
        class_in (ClassInstanceCreate): Class data.
        db (Session): Tenant database session.
        current_user (User): Authenticated admin.

    Permissions:
        - Admin only.

    Returns:
        ClassBatchCreated: Message, number of created instances and their data.

    Raises:
        HTTPException 400: Missing date/weekdays/range, invalid time window or no dates generated.
        HTTPException 403: Caller is not an admin.
        HTTPException 404: Class type or teacher not found.
    """
    instances = class_instance_service.create_classes(db, class_in)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    if len(instances) == 1:
        message = "Clase creada exitosamente."
    else:
        message = f"Se crearon {len(instances)} clases exitosamente."
    return {"message": message, "created": len(instances), "data": instances}


@router.get("", response_model=List[ClassInstance])
async def read_classes(
    start_date: Optional[date] = Query(None, description="Fecha inicial (inclusive)"),
    end_date: Optional[date] = Query(None, description="Fecha final (inclusive)"),
    class_type_id: Optional[int] = Query(None),
    status_filter: Optional[ClassInstanceStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=1000),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Get Class Instances

    Lists class instances ordered by date and start time, optionally filtered by
    date range, class type and status.

    Permissions:
        - Any authenticated user of the gym.
    """
    return class_instance_service.get_instances(
        db,
        start_date=start_date,
        end_date=end_date,
        class_type_id=class_type_id,
        status=status_filter,
        skip=skip,
        limit=limit
    )


@router.get("/grouped", response_model=List[GroupedClass])
async def read_grouped_classes(
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_staff),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Get Grouped Recurring Classes

    Summarizes the upcoming instances of every recurring series (one row per
    `recurrence_rule`), with the weekdays it covers and how many future
    instances remain. Cached per tenant; any schedule mutation invalidates it.

    Permissions:
        - Admin or teacher.
    """
    async def db_fetch():
        return bulk_schedule_service.get_grouped_classes(db)

    return await cache_service.get_or_set(
        redis_client,
        tenant_key(client_id, "grouped_classes", "upcoming"),
        db_fetch,
        GroupedClass,
        expiry_seconds=get_settings().CACHE_TTL_GROUPED_CLASSES,
        is_list=True
    )


@router.post("/by-date/cancel", response_model=DateActionResult)
async def cancel_classes_by_date(
    action: ClassDateAction = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Cancel All Classes On a Date

    Cancels every active or full class of the given day. With `refund_credits`
    each enrolled user gets back the credit that was debited. Every affected user
    receives a single notification listing all their cancelled classes.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: No cancellable classes on that date.
    """
    result = class_instance_service.cancel_by_date(
        db, action.date, refund_credits=action.refund_credits, admin_id=current_user.id
    )
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/by-date/reactivate", response_model=DateActionResult)
async def reactivate_classes_by_date(
    action: ClassDateAction = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Reactivate All Cancelled Classes On a Date

    Previous enrollments are not restored; only the slots become bookable again.

    Permissions:
        - Admin only.
    """
    result = class_instance_service.reactivate_by_date(db, action.date)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.get("/{class_id}", response_model=ClassInstance)
async def read_class(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    current_user: User = Depends(get_current_user)
) -> Any:
    """
    Get Class Instance by ID

    Raises:
        HTTPException 404: Class not found.
    """
    return class_instance_service.get_instance(db, class_id)


@router.put("/{class_id}", response_model=ClassInstance)
async def update_class(
    class_id: int = Path(..., description="ID de la clase"),
    class_in: ClassInstanceUpdate = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Update Class Instance

    Partial update of a single instance. Capacity can't drop below the number of
    enrolled users; a capacity change moves the class type's total credits by the
    difference. Enrolled users are notified when the date or start time changes.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 400: Capacity below enrolled count or invalid time window.
        HTTPException 404: Class, class type or teacher not found.
    """
    instance = class_instance_service.update_instance(db, class_id, class_in)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return instance


@router.post("/{class_id}/cancel", response_model=ClassCancellationResult)
async def cancel_class(
    class_id: int = Path(..., description="ID de la clase"),
    cancel_in: Optional[CancelClassRequest] = Body(None),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Cancel Class Instance

    Marks the instance as `cancelada` and clears its enrollments. With
    `refund_credits` (default) every enrolled user who paid with a credit gets
    exactly one credit back, of the same type that was debited. Users covered by
    a free pass are only notified.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 409: Class already cancelled.
    """
    result = class_instance_service.cancel_instance(
        db, class_id, refund_credits=cancel_in.refund_credits if cancel_in else True, admin_id=current_user.id
    )
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/{class_id}/reactivate", response_model=ClassInstance)
async def reactivate_class(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Reactivate Cancelled Class Instance

    Only valid from `cancelada`. Previous enrollments are not restored.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 409: Class is already active or full.
    """
    instance = class_instance_service.reactivate_instance(db, class_id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return instance


@router.delete("/{class_id}", response_model=ClassDeletionResult)
async def delete_class(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Delete Class Instance

    Refunds every enrolled user who paid with a credit, notifies them, and
    removes the instance. The class type's total credits shrink by its capacity.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: Class not found.
    """
    result = class_instance_service.delete_instance(db, class_id, admin_id=current_user.id)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result
