"""
EduPortal Billing - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import init_db, close_db, async_session_factory
from app.routers import admin_pricing, auth, payment, pricing, user_subscription
from app.services.auth_service import AuthService
from app.services.pricing_catalog import get_price_catalog
from app.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_admin_user():
    """
    Seed the bootstrap admin account when credentials are configured.
    """
    if not (settings.admin_email and settings.admin_password):
        logger.info("Admin seeding skipped: ADMIN_EMAIL/ADMIN_PASSWORD not set")
        return
    
    async with async_session_factory() as session:
        service = AuthService(session)
        admin = await service.get_or_create_admin(settings.admin_email, settings.admin_password)
        await session.commit()
        logger.info(f"Admin ready: {admin.email}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Creates tables in development, seeds the admin and loads stored prices.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")
    
    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")
    
    try:
        await seed_admin_user()
    except SQLAlchemyError as e:
        logger.warning(f"Admin seeding skipped: {e}")
    
    try:
        await get_price_catalog().load()
    except SQLAlchemyError as e:
        logger.warning(f"Using default prices, stored pricing unavailable: {e}")
    
    yield
    
    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Portal subscriptions, pricing and payments for the EduPortal school platform",
    version="0.1.0",
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Standard error format for every failure
setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
        "environment": settings.app_env,
        "endpoints": {
            "auth": "/api/auth",
            "pricing": "/api/pricing",
            "payment": "/api/payment",
            "subscription": "/api/user/subscription",
            "admin_pricing": "/api/admin/pricing",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# ===========================================
# INCLUDE ROUTERS
# ===========================================

app.include_router(auth.router)
app.include_router(pricing.router)
app.include_router(payment.router)
app.include_router(user_subscription.router)
app.include_router(admin_pricing.router)


if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
