"""
HTTP gateway: Starlette routes, health checks and the application factory.
"""

from toolhub.gateway.app import create_app

__all__ = ["create_app"]
