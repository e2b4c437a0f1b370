"""
scribeline.models - Whisper model catalog and lifecycle.

Knows which models exist, and downloads, verifies, installs and deletes them.
"""

from __future__ import annotations
