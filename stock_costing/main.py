"""
Stock Costing FastAPI Main Application
Entry point for the stock ledger and process costing REST API
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stock_costing.api.v1.api_router import api_router
from stock_costing.core.config import settings
from stock_costing.core.database import check_db_connection, init_db
from stock_costing.core.exceptions import (
    BusinessLogicError, ConsistencyError, NotFoundError, PersistenceError,
    StockCostingException, ValidationError
)
from stock_costing.core.logging import get_logger, setup_logging
from stock_costing.schemas.common import HealthResponse

logger = get_logger("api")

# Most specific first; NegativeStockError is caught as a ValidationError
ERROR_STATUS = [
    (ValidationError, 422, "validation_error"),
    (NotFoundError, 404, "not_found"),
    (ConsistencyError, 409, "consistency_error"),
    (BusinessLogicError, 409, "business_rule_violation"),
    (PersistenceError, 500, "persistence_error"),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown tasks

    Configure logging, verify the database and create missing tables
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection():
        logger.error("Failed to connect to database on startup")
        raise RuntimeError("Database connection failed")
    init_db()
    logger.info("Application startup completed successfully")

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Stock Costing Engine API

    Valued stock ledger with pluggable valuation and multi-stage process costing.

    ### Key Features:
    - **Stock Ledger**: append-only valued movements per item and location
    - **Valuation**: FIFO, LIFO, Weighted Average and Moving Average
    - **Bins**: current balance and planning quantities per item and location
    - **Reposting**: recompute history after backdated or corrected postings
    - **Process Costing**: stage costs with transferred-in chaining and variance
    """,
    docs_url=settings.DOCS_URL,
    openapi_url=settings.OPENAPI_URL,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StockCostingException)
async def stock_costing_exception_handler(request: Request, exc: StockCostingException):
    """Map engine errors to HTTP status codes"""
    for error_class, status_code, error_type in ERROR_STATUS:
        if isinstance(exc, error_class):
            break
    else:
        status_code, error_type = 400, "error"

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({error_type}): {exc}")

    return JSONResponse(
        status_code=status_code,
        content={"error": error_type, "message": str(exc)}
    )


@app.get("/health", tags=["System"], response_model=HealthResponse)
def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    try:
        db_status = check_db_connection()
        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
            "debug": settings.DEBUG
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "stock_costing.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
