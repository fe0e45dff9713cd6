"""
API Routes Module

This module contains all API route definitions organized by resource.
"""

from . import worker
from . import settings
from . import websocket

__all__ = ['worker', 'settings', 'websocket']
