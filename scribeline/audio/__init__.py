"""
scribeline.audio - Audio decoding and chunk planning.

Decodes any supported input to mono 16kHz float32 PCM and plans the
overlapping 30-second windows the inference engine consumes.
"""

from __future__ import annotations
