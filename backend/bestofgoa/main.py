from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import time
from .db import engine
from .models import Base
from .logger import logger
from .exceptions import (
    BestOfGoaBaseException,
    bestofgoa_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from .routes import extraction, images, public, review, submissions

app = FastAPI(
    title="Best of Goa Admin API",
    version="1.0.0",
    description="Extraction, review and publishing of Best of Goa business listings"
)

app.add_exception_handler(BestOfGoaBaseException, bestofgoa_exception_handler)
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
            "query_params": dict(request.query_params),
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

# Submissions first: its /admin/submissions/{id} must win over /admin/{entity}/{id}
app.include_router(submissions.router)
app.include_router(extraction.router)
app.include_router(images.router)
app.include_router(review.router)
app.include_router(public.router)

@app.on_event("startup")
async def startup():
    logger.info("Starting Best of Goa Admin API")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Best of Goa Admin API")

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
