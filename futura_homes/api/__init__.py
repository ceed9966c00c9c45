"""
Futura Homes API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from ..config import get_config
from ..exceptions import FuturaError
from ..logging_config import setup_logging, get_logger, log_action
from .responses import error_body
from .contracts import router as contracts_router
from .payments import router as payments_router
from .reservations import router as reservations_router
from .notifications import router as notifications_router
from .complaints import router as complaints_router, service_requests_router
from .inquiries import router as inquiries_router
from .accounts import router as accounts_router
from .tours import router as tours_router


logger = get_logger("futura.api")


def _error_extra(exc: FuturaError) -> dict:
    extra = {}
    for name in ("validation_errors", "retry_after_minutes", "compensated"):
        if hasattr(exc, name):
            extra[name] = getattr(exc, name)
    return extra


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="Futura Homes Back Office API",
        description="Reservations, contracts to sell, installment schedules and walk-in payments",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in config.cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FuturaError)
    async def futura_error_handler(request: Request, exc: FuturaError):
        if exc.status_code >= 500:
            log_action(
                logger, "error", exc.message,
                action="request_failed", resource=request.url.path,
                extra={"error_type": type(exc).__name__}
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error, exc.message, **_error_extra(exc))
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("Invalid request", "; ".join(details), validation_errors=details)
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", str(exc))
        )

    # Include routers; payments first so /contracts/payment is not taken as a contract id
    app.include_router(payments_router, prefix="/contracts/payment", tags=["Payments"])
    app.include_router(contracts_router, prefix="/contracts", tags=["Contracts"])
    app.include_router(reservations_router, prefix="/reservations", tags=["Reservations"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
    app.include_router(complaints_router, prefix="/complaints", tags=["Complaints"])
    app.include_router(service_requests_router, prefix="/service-requests", tags=["Service Requests"])
    app.include_router(inquiries_router, prefix="/inquiries", tags=["Inquiries"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(tours_router, prefix="/book-tour", tags=["Tour Bookings"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "futura_homes_api",
            "version": "1.0.0"
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Futura Homes Back Office API",
            "version": "1.0.0",
            "description": "Property sales and homeowner services back office",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "contracts": "/contracts",
                "payments": "/contracts/payment",
                "reservations": "/reservations",
                "notifications": "/notifications",
                "complaints": "/complaints",
                "service-requests": "/service-requests",
                "inquiries": "/inquiries",
                "accounts": "/accounts",
                "book-tour": "/book-tour",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "futura_homes.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
