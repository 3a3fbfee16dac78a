"""
Common imports and dependencies for the schedule module.

This module centralizes shared imports and dependencies used across
all schedule-related endpoints, including authentication, tenant database
access, models, services, and schemas. Importing from this module helps
maintain consistency and reduces duplication across the schedule API endpoints.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, date, timedelta
from fastapi import APIRouter, Depends, Query, Path, Body, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from gymapp.core.auth import get_current_user, require_admin, require_staff
from gymapp.core.config import get_settings
from gymapp.core.tenant import get_tenant_db, get_tenant_id
from gymapp.db.redis_client import get_redis_client
from gymapp.models.user import User
from gymapp.models.schedule import ClassInstanceStatus, EnrollmentKind
from gymapp.services.cache_service import cache_service, tenant_key
from gymapp.services.class_instance import class_instance_service
from gymapp.services.bulk_schedule import bulk_schedule_service
from gymapp.services.enrollment import enrollment_service
from gymapp.schemas.schedule import (
    ClassInstance, ClassInstanceCreate, ClassInstanceUpdate, ClassBatchCreated,
    CancelClassRequest, ClassDateAction, ClassCancellationResult, ClassDeletionResult, DateActionResult,
    BulkUpdateRequest, BulkDeleteRequest, BulkExtendRequest, BulkOperationResult, GroupedClass,
    EnrollmentResult, AdminEnrollRequest, WaitlistResult, PlanEnrollmentRequest, PlanEnrollmentResult,
    AvailableSlot
)
