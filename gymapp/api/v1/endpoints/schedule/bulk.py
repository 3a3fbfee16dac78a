from gymapp.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.put("/update", response_model=BulkOperationResult)
async def bulk_update_classes(
    request: BulkUpdateRequest = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Bulk Update a Class Family

    A family is the set of instances sharing `name`, `class_type_id` and
    `start_time`, from `from_date` (default: today in the gym's time zone).

    - Without `weekdays`: applies name/time window/capacity/teacher to every
      matching instance. Capacity can't go below any instance's enrolled count.
    - With `weekdays`: deletes the future family and regenerates it through the
      family's last date with the new weekday pattern and a new recurrence token.
      Enrollments of the deleted instances are not carried over or refunded.

    Everything runs in a single transaction.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 400: No changes given, invalid capacity or time window.
        HTTPException 404: No matching classes.
    """
    result = bulk_schedule_service.bulk_update(db, request.filters, request.updates)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/delete", response_model=BulkOperationResult)
async def bulk_delete_classes(
    request: BulkDeleteRequest = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Bulk Delete a Class Family

    Administrative cleanup: removes every instance of the family from
    `from_date` on. No refunds are issued.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 404: No matching classes.
    """
    result = bulk_schedule_service.bulk_delete(db, request.filters)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result


@router.post("/extend", response_model=BulkOperationResult)
async def bulk_extend_classes(
    request: BulkExtendRequest = Body(...),
    db: Session = Depends(get_tenant_db),
    client_id: str = Depends(get_tenant_id),
    current_user: User = Depends(require_admin),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Any:
    """
    Extend a Class Family

    Appends instances strictly after the family's last existing date up to
    `end_date`, following the family's weekday pattern and copying capacity,
    teacher and time window from its last instance. The recurrence token of
    the series is reused.

    Permissions:
        - Admin only.

    Raises:
        HTTPException 400: `end_date` is not after the last existing class.
        HTTPException 404: No existing class to use as template.
    """
    result = bulk_schedule_service.bulk_extend(db, request.filters, request.end_date)
    await cache_service.invalidate_schedule_caches(redis_client, client_id)
    return result
