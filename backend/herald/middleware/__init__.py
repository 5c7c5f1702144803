"""Middleware package for FastAPI application"""
from herald.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
