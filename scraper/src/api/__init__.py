"""
HTTP API package: the FastAPI application and its routers.

CHANGELOG:
- 2026-10-19: Initial creation
"""
