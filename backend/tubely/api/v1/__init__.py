"""
Tubely API v1 Router Aggregator.

This module combines the v1 endpoint routers into a single APIRouter for
registration with the main FastAPI application under the /api/v1 prefix.

Router Structure:
    - /videos: Video record endpoints (create, list, get)
    - /thumbnail_upload/{video_id}: Thumbnail upload
    - /video_upload/{video_id}: Video upload
"""

import logging

from fastapi import APIRouter

from tubely.api.v1.videos import router as videos_router


# Configure logger
logger = logging.getLogger(__name__)

# Create the main API v1 router
api_router = APIRouter()

api_router.include_router(videos_router, tags=["videos"])


# ==============================================================================
# Exports
# ==============================================================================

__all__ = ["api_router"]
