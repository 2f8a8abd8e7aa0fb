import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finsight_billing.config import Settings
from finsight_billing.database import Base, build_engine, build_session_factory
from finsight_billing.errors import BillingError
from finsight_billing.gateway import GatewayClient
from finsight_billing.logs import configure_logging
from finsight_billing.routes import router
from finsight_billing.store import PaymentStore

logger = structlog.get_logger()


async def billing_error_handler(request: Request, exc: BillingError):
    logger.warning("Request failed", path=request.url.path, error=exc.message, error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


def create_app(settings: Settings = None, store: PaymentStore = None, gateway: GatewayClient = None) -> FastAPI:
    """Build the application with its clients constructed once.

    Run with ``uvicorn finsight_billing.main:create_app --factory``. Tests
    pass their own settings, store and gateway.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, json_format=settings.environment != "development")

    if store is None:
        engine = build_engine(settings.database_url)
        Base.metadata.create_all(bind=engine)
        store = PaymentStore(build_session_factory(engine))
    if gateway is None:
        gateway = GatewayClient.from_settings(settings)

    app = FastAPI(title="FinSight Billing Service")
    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_exception_handler(BillingError, billing_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(router)

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app
