"""
DXF Conversion Service package.

This module provides a FastAPI application that converts DXF drawings into
GeoJSON, caches the result by content hash, and filters cached documents by
layer.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
