"""
Schedule Module - API Endpoints

This module organizes the different components of the class scheduling system:
- Class instances: single and recurring creation, edits, cancellation,
  reactivation and deletion (per instance and per date)
- Bulk operations over a class family (instances sharing name, class type
  and start time): edit, regenerate, delete and extend
- Enrollment: self-service enroll/unenroll, admin add/remove, waitlist
  and fixed-plan enrollment

The endpoints are organized in a modular structure with separate files
for each functional area, improving maintainability and separation of concerns.
"""

from fastapi import APIRouter

from gymapp.api.v1.endpoints.schedule import (
    classes,
    bulk,
    enrollment
)

router = APIRouter()

# Rutas para clases y operaciones en lote
router.include_router(classes.router, prefix="/classes", tags=["classes"])
router.include_router(bulk.router, prefix="/bulk", tags=["bulk"])
router.include_router(enrollment.router, prefix="/enrollment", tags=["enrollment"])