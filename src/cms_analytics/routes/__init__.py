"""
Analytics dashboard routes.
"""

from .dashboard import create_analytics_router

__all__ = ["create_analytics_router"]
