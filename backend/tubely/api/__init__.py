"""
Tubely API Package.

API endpoints are organized by version:
    - v1/: Version 1 API endpoints (current stable version)
        - videos.py: Video records and the thumbnail/video upload endpoints

All endpoints are served under the /api/v1 URL prefix.
"""
