from fastapi import APIRouter

# Import routers from modules
from gymapp.api.v1.endpoints import users, class_types
from gymapp.api.v1.endpoints.notifications import router as notifications_router

# Import modular packages directly
from gymapp.api.v1.endpoints.schedule import router as schedule_router

api_router = APIRouter()

# Users module (credits, subscriptions, free pass, fixed plans)
api_router.include_router(users.router, prefix="/users", tags=["users"])

# Schedule module (classes, bulk operations and enrollment)
api_router.include_router(schedule_router, prefix="/schedule")

# Class types module
api_router.include_router(class_types.router, prefix="/class-types", tags=["class-types"])

# Notifications module
api_router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
