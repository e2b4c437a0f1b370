"""
scribeline.tools - External tool collaborators.

Bounded, cancellable subprocess runs of ffmpeg (transcoding, retiming) and
yt-dlp (remote audio, captions), plus caption file parsing.
"""

from __future__ import annotations
