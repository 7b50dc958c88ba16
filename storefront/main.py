"""
Storefront Service API

This module implements the FastAPI application for the storefront: catalog
browsing, cart, checkout and orders, coupons, loyalty rewards, shipping
quotes, notifications, reviews, salon booking, the blog and the back-office.

Endpoints are grouped in routers under `storefront/routers`. Business-rule
failures are raised as `StorefrontError` subclasses and turned into JSON
responses by a single exception handler.

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "storefront-service"
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import models
from .config import LOG_LEVEL
from .database import engine
from .errors import StorefrontError
from .routers import (
    admin, auth, blog, cart, catalog, coupons, notifications, orders, reviews, rewards, salon, shipping,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="storefront-service")


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    """Map domain errors to `{"detail": message}` with the error's status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_type": type(exc).__name__},
    )


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the storefront service.

    Returns:
        dict: {"status": "healthy"} when the service is operational.
    """
    return {"status": "healthy"}


app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(coupons.router)
app.include_router(rewards.router)
app.include_router(shipping.router)
app.include_router(notifications.router)
app.include_router(reviews.router)
app.include_router(salon.router)
app.include_router(blog.router)
app.include_router(admin.router)
