"""
API Module

FastAPI application exposing the chat service over HTTP.
"""

from .app import create_app

__all__ = ['create_app']
