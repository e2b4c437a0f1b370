"""
scribeline.transcribe - Whisper inference and transcript stitching.

Runs chunks of audio through a faster-whisper model held by a single owned
engine slot, and merges the per-chunk output into one transcript.
"""

from __future__ import annotations
