"""
Microfinance API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .system import LoanSystem, get_loan_system
from .loans import router as loans_router
from .reports import router as reports_router
from ..config import get_config
from ..errors import NotFoundError, ValidationError
from ..logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(system: Optional[LoanSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Pre-built LoanSystem (tests pass one over in-memory storage);
            built from configuration when omitted
    """
    if system is None:
        config = get_config()
        setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
        system = LoanSystem(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if system.config.enable_overdue_scheduler:
            system.scheduler.start()
        yield
        system.close()

    app = FastAPI(
        title="Microfinance Loan API",
        description="Loan repayment schedules and overdue tracking",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=400, content={"detail": exc.message, "field": exc.field})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "microfinance_api",
            "version": "1.0.0",
            "scheduler_running": system.scheduler.is_running()
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Microfinance Loan API",
            "version": "1.0.0",
            "description": "Loan repayment schedules and overdue tracking",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "reports": "/reports",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "microfinance.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )


__all__ = ["create_app", "run_server", "LoanSystem", "get_loan_system"]
