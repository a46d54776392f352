"""
Server Module

FastAPI surface over the unified graph.
"""

from .app import create_app

__all__ = ["create_app"]
