"""
Tubely Backend Application Package

This package contains the Tubely FastAPI application, which accepts user
uploaded thumbnails and videos, normalises them for progressive delivery and
places them in local or S3-compatible storage against a video record.

Package Structure:
- api/: REST API endpoints organized by version (v1)
- core/: Core infrastructure (database, auth, exceptions)
- models/: Pydantic data models for video records and pipeline state
- services/: Upload pipeline, media processing, storage and repository
- utils/: Logging, media type parsing and key generation helpers
"""

__version__ = "1.0.0"
__app_name__ = "Tubely"
