from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import time
from .db import create_tables, engine
from .logger import logger
from .exceptions import (
    StyllioBaseException,
    styllio_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from .routes import account, auth, checkout, files, internal, jobs, webhooks
from .schemas import HealthResponse

app = FastAPI(
    title="Styllio API",
    version="1.0.0",
    description="Photo stylization: uploads, checkout, and asynchronous job tracking"
)

app.add_exception_handler(StyllioBaseException, styllio_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Response: {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response

app.include_router(auth.router)
app.include_router(files.router)
app.include_router(checkout.router)
app.include_router(webhooks.router)
app.include_router(jobs.router)
app.include_router(account.router)
app.include_router(internal.router)

@app.on_event("startup")
async def startup():
    logger.info("Starting Styllio API")
    try:
        await create_tables()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Styllio API")
    await engine.dispose()

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(status="ok", service="styllio-backend")
