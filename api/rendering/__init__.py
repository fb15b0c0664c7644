"""Rendering module for presentation concerns.

This module handles all presentation/rendering logic:
- Binding row values into template canvases
- Verification QR code images
- SVG assembly and PDF/PNG conversion

Issuing and storing certificates lives in the services package.
"""

from rendering.binding import bind
from rendering.export import SvgArtifactExporter, build_archive, sanitize_filename

__all__ = [
    "SvgArtifactExporter",
    "bind",
    "build_archive",
    "sanitize_filename",
]
