from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.cors import CORSMiddleware

from app.apps.checkout.routers import otp_router as checkout_router
from app.apps.tracking.routers import tracking_router
from app.core.config import app_logger, settings
from app.core.dependencies import get_async_session
from app.core.exceptions.handlers import (
    authentication_exception_handler,
    bad_request_exception_handler,
    conflict_exception_handler,
    database_exception_handler,
    exception_schema,
    forbidden_exception_handler,
    general_exception_handler,
    not_found_exception_handler,
    rate_limit_exception_handler,
    send_failed_exception_handler,
    too_many_attempts_exception_handler,
)
from app.core.exceptions.types import (
    AppException,
    AuthenticationException,
    BadRequestException,
    ConflictException,
    DatabaseException,
    ForbiddenException,
    NotFoundException,
    OTPSendFailedException,
    RateLimitExceededException,
    TooManyAttemptsException,
)
from app.core.services import (
    BrevoService,
    RedisService,
    Renderer,
    WhatsAppService,
    channel_orchestrator,
)
from app.core.utils import generate_openapi_json, write_to_file_async
from app.infrastructure.scheduler import initialize_scheduler, scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_logger.info("Starting application...")

    # Initialize Redis service (rate limit windows when RATE_LIMIT_BACKEND=redis)
    app_logger.info("Initializing Redis service...")
    await RedisService.init(settings.REDIS_URL)
    app_logger.info("Redis service initialized successfully.")

    # Initialize WhatsApp gateway client
    app_logger.info("Initializing WhatsApp service...")
    await WhatsAppService.init(
        base_url=settings.WHATSAPP_API_URL,
        session_id=settings.WHATSAPP_SESSION_ID,
        access_token=settings.WHATSAPP_ACCESS_TOKEN,
        timeout=settings.WHATSAPP_TIMEOUT_SECONDS,
    )
    app_logger.info("WhatsApp service initialized successfully.")

    # Initialize Brevo Service
    app_logger.info("Initializing Brevo service...")
    await BrevoService.init(
        api_key=settings.BREVO_API_KEY,
        sender_email=settings.BREVO_SENDER_EMAIL,
        sender_name=settings.BREVO_SENDER_NAME,
    )
    app_logger.info("Brevo service initialized successfully.")

    # Initialize template renderer
    app_logger.info("Initializing template renderer...")
    Renderer.initialize("app/templates")
    app_logger.info("Template renderer initialized successfully.")

    # Start the scheduler (only if enabled)
    if settings.ENABLE_SCHEDULER:
        app_logger.info("Starting scheduler...")
        scheduler.start()
        app_logger.info("Scheduler started successfully.")
        initialize_scheduler()  # Schedule jobs after starting the scheduler
    else:
        app_logger.info("Scheduler disabled via ENABLE_SCHEDULER setting.")

    # Generate and write OpenAPI schema to file
    app_logger.info("Generating OpenAPI schema...")
    openapi_schema = generate_openapi_json(app)
    await write_to_file_async("openapi.json", openapi_schema)

    yield

    app_logger.info("Shutting down application...")

    # Let deliveries that outlived their request finish and record themselves
    if channel_orchestrator.pending:
        app_logger.info(
            f"Waiting for {channel_orchestrator.pending} background delivery task(s)..."
        )
        await channel_orchestrator.drain()

    if settings.ENABLE_SCHEDULER and scheduler.running:
        app_logger.info("Stopping scheduler...")
        scheduler.shutdown()
        app_logger.info("Scheduler stopped successfully.")

    await WhatsAppService.aclose()
    await BrevoService.aclose()

    app_logger.info("Closing Redis service...")
    await RedisService.aclose()
    app_logger.info("Redis service closed successfully.")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    debug=settings.DEBUG,
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    responses=exception_schema,
    root_path_in_servers=False,
    servers=[
        {
            "url": f"{settings.API_DOMAIN}",
        },
    ],
)

# Register exception handlers (order matters - more specific first)
app.add_exception_handler(TooManyAttemptsException, too_many_attempts_exception_handler)
app.add_exception_handler(RateLimitExceededException, rate_limit_exception_handler)
app.add_exception_handler(OTPSendFailedException, send_failed_exception_handler)
app.add_exception_handler(AuthenticationException, authentication_exception_handler)
app.add_exception_handler(ForbiddenException, forbidden_exception_handler)
app.add_exception_handler(NotFoundException, not_found_exception_handler)
app.add_exception_handler(ConflictException, conflict_exception_handler)
app.add_exception_handler(BadRequestException, bad_request_exception_handler)
app.add_exception_handler(DatabaseException, database_exception_handler)
# Generic fallback
app.add_exception_handler(AppException, general_exception_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(checkout_router, tags=["Guest Checkout"])
app.include_router(tracking_router, tags=["Order Tracking"])


@app.get("/", include_in_schema=False)
async def root(request: Request):
    base_url = request.base_url._url.rstrip("/")
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "documentations": {
            "swagger": f"{base_url}/docs",
            "redoc": f"{base_url}/redoc",
        },
        "version": settings.APP_VERSION,
    }


@app.head("/health", include_in_schema=False)
@app.get("/health")
async def health_check(session: Annotated[AsyncSession, Depends(get_async_session)]):
    """
    Health check endpoint to verify if the API is running.

    Checks:
        - Database connectivity
        - Redis connectivity (only when it backs the rate limiter)
    """
    health_status = {
        "status": "ok",
        "message": f"{settings.APP_NAME} is running.",
        "checks": {
            "database": "ok",
        },
    }

    try:
        async with session.begin():
            result = await session.execute(text("SELECT 1"))
            if result.scalar() != 1:
                health_status["checks"]["database"] = "unhealthy"
                health_status["status"] = "degraded"
    except Exception as e:
        app_logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    if settings.RATE_LIMIT_BACKEND == "redis":
        health_status["checks"]["redis"] = "ok"
        if not await RedisService.ping():
            health_status["checks"]["redis"] = "unhealthy"
            health_status["status"] = "degraded"

    if health_status["status"] != "ok":
        raise AppException(
            "One or more health checks failed.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=health_status,
        )

    return health_status
