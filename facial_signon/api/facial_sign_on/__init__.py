"""Facial sign-on browser and widget endpoints."""

from fastapi import APIRouter

from facial_signon.api.facial_sign_on import client_api, login, site_credentials

# Create main router for facial sign-on endpoints
router = APIRouter()

# Include sub-routers
router.include_router(site_credentials.router)
router.include_router(login.router)
router.include_router(client_api.router)

__all__ = ["router"]
