"""
Core infrastructure for the Tubely backend application.

This package contains the foundational components that provide:
- auth: Bearer token authentication (local HS256 JWTs)
- database: MongoDB async client with Motor driver and connection pooling
- exceptions: The TubelyError taxonomy and its HTTP status mapping

All services in this package are designed for async operation and follow
the singleton pattern for efficient resource management.
"""
