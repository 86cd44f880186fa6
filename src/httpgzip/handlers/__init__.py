"""
Ready-made handlers.

    mux.static("/static", "./public")   # StaticFileHandler under the hood
"""

from .static import StaticFileHandler

__all__ = ["StaticFileHandler"]
