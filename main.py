import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import uvicorn

from database import check_connection
from routers import customers, deliveries, payments
from services.errors import (
    BillingError,
    ConcurrencyError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

# Load .env
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# App instance
app = FastAPI(title="Gas delivery billing")

# CORS
origins = os.getenv("CORS_ORIGINS", "").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Billing error -> HTTP status
ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    ConcurrencyError: 503,
    ExternalServiceError: 502,
}


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    status_code = 500
    for error_class, code in ERROR_STATUS.items():
        if isinstance(exc, error_class):
            status_code = code
            break
    content = {"detail": str(exc)}
    if isinstance(exc, ConflictError):
        content["reason"] = exc.reason
    if status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=content)


@app.get("/api/health")
def health():
    db_ok = check_connection()
    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={"status": "ok" if db_ok else "degraded", "database": db_ok},
    )


app.include_router(deliveries.router)
app.include_router(payments.router)
app.include_router(customers.router)

# 404 Fallback Middleware
@app.middleware("http")
async def not_found_middleware(request: Request, call_next):
    try:
        response = await call_next(request)
        # Only unmatched routes; a missing delivery keeps its own 404 body
        if response.status_code == 404 and "endpoint" not in request.scope:
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return response
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

if __name__ == "__main__":
    port = int(os.getenv("PORT", 10000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=True)
