"""
API Module

This module provides the FastAPI application factory and REST endpoints
for controlling a location worker.

To run the API server:
    python -m geotrack --serve

Or with uvicorn directly:
    uvicorn geotrack.api.main:create_app --factory
"""

from .main import create_app

__all__ = ['create_app']
