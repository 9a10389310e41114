"""
API module.

FastAPI application, routers and dependency wiring for the backup service.
"""
