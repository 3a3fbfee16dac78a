import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from gymapp.core.logging_config import setup_logging, tenant_logging

# Configurar logging ANTES de importar/crear otros elementos
setup_logging()

from gymapp.api.v1.api import api_router
from gymapp.core.config import get_settings
from gymapp.core.exceptions import SchedulingError
from gymapp.core.scheduler import init_scheduler, shutdown_scheduler
from gymapp.db.redis_client import initialize_redis_pool, close_redis_client
from gymapp.db.tenant_registry import tenant_registry

logger = logging.getLogger(__name__)

settings_instance = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan: Startup iniciado...")

    if settings_instance.SCHEDULER_ENABLED:
        try:
            app.state.scheduler = init_scheduler()
            logger.info("Lifespan: Scheduler inicializado.")
        except Exception as e:
            logger.error(f"Lifespan: Error al inicializar scheduler: {e}", exc_info=True)

    # Sin Redis las lecturas se hacen directamente contra la base
    try:
        await initialize_redis_pool()
        logger.info("Lifespan: Redis connection pool inicializado correctamente.")
    except Exception as e:
        logger.error(f"Lifespan: Error al inicializar Redis connection pool: {e}", exc_info=True)

    yield

    logger.info("Lifespan: Shutdown iniciado...")
    shutdown_scheduler()
    try:
        await close_redis_client()
    except Exception as e:
        logger.error(f"Lifespan: Error cerrando Redis connection pool: {e}", exc_info=True)
    tenant_registry.dispose_all()


app = FastAPI(
    title=settings_instance.PROJECT_NAME,
    description=settings_instance.PROJECT_DESCRIPTION,
    version=settings_instance.VERSION,
    openapi_url=f"{settings_instance.API_V1_STR}/openapi.json",
    docs_url=f"{settings_instance.API_V1_STR}/docs",
    redoc_url=f"{settings_instance.API_V1_STR}/redoc",
    lifespan=lifespan,
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rechazado ({exc.code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Datos inválidos."
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": message, "error": "validation"},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    with tenant_logging(request.headers.get("x-client-id", "").strip()):
        logger.debug(f"Middleware: Recibida petición: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
    return response


origins = settings_instance.BACKEND_CORS_ORIGINS or []

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=86400,
)

app.include_router(api_router, prefix=settings_instance.API_V1_STR)


@app.get("/")
def root():
    return {
        "message": "Bienvenido a la API de GymApp",
        "docs": f"{settings_instance.API_V1_STR}/docs",
    }


if __name__ == "__main__":
    uvicorn.run("gymapp.main:app", host="0.0.0.0", port=8000, reload=settings_instance.DEBUG_MODE)
