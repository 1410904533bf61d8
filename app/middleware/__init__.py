"""
Middleware components for request processing.
"""

from app.middleware.cors import CORSMiddleware
from app.middleware.request_context import RequestContextMiddleware

__all__ = [
    "CORSMiddleware",
    "RequestContextMiddleware",
]
