"""
scribeline.transcribe.engine - Whisper inference engine.

Wraps faster-whisper behind a single owned model slot. Loading a model takes
seconds, so the most recently loaded model stays cached and is only swapped
when a different model id is requested. Loads, swaps, evictions and inference
calls are serialized on one condition variable: at most one inference runs at
a time, and a swap waits for the in-flight call to finish.

Jobs pin their model with ``borrow``; the model manager removes model files
inside ``evicting``, which refuses pinned models and drops an idle cached one.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from scribeline.exceptions import InferError, LoadError, ModelInUseError

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000

ModelFactory = Callable[[Path, str, str], Any]


@dataclass(frozen=True)
class Segment:
    """Timestamped span of transcribed text, in seconds."""

    start: float
    end: float
    text: str

    def shifted(self, offset: float) -> Segment:
        return Segment(start=self.start + offset, end=self.end + offset, text=self.text)


@dataclass(frozen=True)
class InferenceOutput:
    text: str
    segments: list[Segment]
    language: str | None


@dataclass(frozen=True, eq=False)
class EngineHandle:
    """Reference to the model currently held by an InferenceEngine."""

    model_id: str
    model_path: Path


@dataclass
class _Slot:
    handle: EngineHandle
    model: Any


def faster_whisper_factory(model_path: Path, device: str, compute_type: str) -> Any:
    """Load a CTranslate2 Whisper model directory with faster-whisper."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as e:
        raise ImportError(
            "faster-whisper not installed. Install with: pip install faster-whisper"
        ) from e

    return WhisperModel(str(model_path), device=device, compute_type=compute_type)


class InferenceEngine:
    """Owns the loaded Whisper model and runs chunks of audio through it."""

    def __init__(
        self,
        model_factory: ModelFactory = faster_whisper_factory,
        device: str = "auto",
        compute_type: str = "default",
        beam_size: int = 5,
    ) -> None:
        self.model_factory = model_factory
        self.device = device
        self.compute_type = compute_type
        self.beam_size = beam_size
        self._cond = threading.Condition()
        self._slot: _Slot | None = None
        self._busy = False
        self._pins: dict[str, int] = {}
        self._evicting: set[str] = set()

    @property
    def loaded_model_id(self) -> str | None:
        with self._cond:
            return self._slot.handle.model_id if self._slot else None

    def is_pinned(self, model_id: str) -> bool:
        with self._cond:
            return self._pins.get(model_id, 0) > 0

    def load(self, descriptor) -> EngineHandle:
        """Return a handle to ``descriptor``'s model, loading it if needed.

        Args:
            descriptor: ModelDescriptor of an installed model

        Raises:
            LoadError: If the model is not installed or fails to load
        """
        model_id = descriptor.model_id
        with self._cond:
            self._cond.wait_for(lambda: not self._busy and model_id not in self._evicting)
            if self._slot is not None and self._slot.handle.model_id == model_id:
                return self._slot.handle
            model_path = Path(descriptor.install_path)
            if not model_path.is_dir():
                raise LoadError(f"Model '{model_id}' is not installed at {model_path}")
            self._busy = True
            previous, self._slot = self._slot, None

        slot = None
        try:
            if previous is not None:
                logger.info("Unloading model %s", previous.handle.model_id)
                del previous
            logger.info("Loading model %s from %s", model_id, model_path)
            try:
                model = self.model_factory(model_path, self.device, self.compute_type)
            except Exception as e:
                raise LoadError(f"Failed to load model '{model_id}': {e}") from e
            slot = _Slot(handle=EngineHandle(model_id=model_id, model_path=model_path), model=model)
        finally:
            with self._cond:
                self._slot = slot
                self._busy = False
                self._cond.notify_all()
        return slot.handle

    def infer(
        self,
        handle: EngineHandle,
        samples: np.ndarray,
        language_hint: str | None = None,
        sample_rate: int = SAMPLE_RATE,
    ) -> InferenceOutput:
        """Transcribe one chunk of mono 16kHz float32 audio.

        Args:
            handle: Handle returned by ``load`` for the cached model
            samples: 1-D float32 samples
            language_hint: ISO code, or None to let the model detect it
            sample_rate: Must be 16000

        Returns:
            Chunk text, segments relative to the chunk start, and language

        Raises:
            InferError: On malformed input, a stale handle, or model failure
        """
        if sample_rate != SAMPLE_RATE:
            raise InferError(f"Expected {SAMPLE_RATE} Hz audio, got {sample_rate} Hz")
        if not isinstance(samples, np.ndarray) or samples.ndim != 1:
            raise InferError("Expected one-dimensional (mono) sample array")
        if samples.dtype != np.float32:
            raise InferError(f"Expected float32 samples, got {samples.dtype}")

        with self._cond:
            self._cond.wait_for(lambda: not self._busy)
            if self._slot is None or self._slot.handle is not handle:
                raise InferError(f"Model '{handle.model_id}' is no longer loaded")
            self._busy = True
            model = self._slot.model

        try:
            return self._run(model, samples, language_hint)
        except InferError:
            raise
        except Exception as e:
            raise InferError(f"Inference failed: {e}") from e
        finally:
            with self._cond:
                self._busy = False
                self._cond.notify_all()

    def _run(self, model: Any, samples: np.ndarray, language_hint: str | None) -> InferenceOutput:
        if samples.shape[0] == 0:
            return InferenceOutput(text="", segments=[], language=language_hint)

        raw_segments, info = model.transcribe(
            samples,
            language=language_hint,
            beam_size=self.beam_size,
            condition_on_previous_text=False,
        )
        segments = []
        for seg in raw_segments:
            text = seg.text.strip()
            if text:
                segments.append(Segment(start=float(seg.start), end=float(seg.end), text=text))

        return InferenceOutput(
            text=" ".join(s.text for s in segments),
            segments=segments,
            language=getattr(info, "language", None) or language_hint,
        )

    @contextlib.contextmanager
    def borrow(self, descriptor) -> Iterator[EngineHandle]:
        """Pin ``descriptor``'s model for the duration of the block and load it."""
        model_id = descriptor.model_id
        with self._cond:
            self._cond.wait_for(lambda: model_id not in self._evicting)
            self._pins[model_id] = self._pins.get(model_id, 0) + 1
        try:
            yield self.load(descriptor)
        finally:
            with self._cond:
                self._pins[model_id] -= 1
                if self._pins[model_id] == 0:
                    del self._pins[model_id]
                self._cond.notify_all()

    @contextlib.contextmanager
    def evicting(self, model_id: str) -> Iterator[None]:
        """Drop ``model_id`` from the cache and keep it unloadable inside the block.

        Raises:
            ModelInUseError: If a job has the model pinned
        """
        with self._cond:
            if self._pins.get(model_id, 0) > 0:
                raise ModelInUseError(f"Model '{model_id}' is in use by the active job")
            # Marked before waiting so no borrow can pin the model meanwhile.
            self._evicting.add(model_id)
            self._cond.wait_for(lambda: not self._busy)
            if self._pins.get(model_id, 0) > 0:
                self._evicting.discard(model_id)
                self._cond.notify_all()
                raise ModelInUseError(f"Model '{model_id}' is in use by the active job")
            if self._slot is not None and self._slot.handle.model_id == model_id:
                logger.info("Evicting cached model %s", model_id)
                self._slot = None
        try:
            yield
        finally:
            with self._cond:
                self._evicting.discard(model_id)
                self._cond.notify_all()
