"""
Compositing Module

Deterministic rendering of an image with its adjustments and privacy regions.
"""

from .pipeline import CompositingError, composite, encode_image, render_bytes

__all__ = ["CompositingError", "composite", "encode_image", "render_bytes"]
