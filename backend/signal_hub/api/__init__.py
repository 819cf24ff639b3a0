"""
API Routes Package

- request_routes: accept/reject commands, active case, recent signals
"""

from .request_routes import router as request_router

__all__ = ["request_router"]
