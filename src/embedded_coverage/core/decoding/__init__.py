"""Frame decoding: wire primitives and the symbol-aware adapter."""

from __future__ import annotations

from .decoder import FrameDecoder, render_fields
from .primitive import ENCODING_VERSION, FramePrimitive, RawFrame, ReferenceFramePrimitive

__all__ = [
    "ENCODING_VERSION",
    "FrameDecoder",
    "FramePrimitive",
    "RawFrame",
    "ReferenceFramePrimitive",
    "render_fields",
]
