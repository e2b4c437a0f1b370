"""
scribeline.jobs - Transcription jobs.

Request/option types, cooperative cancellation, and the controller that runs
one job at a time from input resolution to a persisted history entry.
"""

from __future__ import annotations
