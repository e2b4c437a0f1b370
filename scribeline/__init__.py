"""
Scribeline - local, offline transcription toolkit.

Turns audio/video files and remote video references into text on the local
machine: input resolution → audio decoding → chunk planning → Whisper
inference → overlap stitching → transcript history, with a model manager
that downloads, verifies and installs the Whisper models it runs.
"""

__version__ = "0.1.0"
