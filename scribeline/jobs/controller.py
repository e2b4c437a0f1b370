"""
scribeline.jobs.controller - Run transcription jobs end to end.

A job moves through

    IDLE -> RESOLVING_INPUT -> ACQUIRING_MODEL -> DECODING -> INFERRING
         -> STITCHING -> PERSISTED

or ends in CANCELLED or FAILED from any non-terminal state. Each job runs on
its own background thread and reports through an event queue: ProgressEvents
with non-decreasing fractions, then exactly one JobOutcome. Only one job may
be active at a time.
"""

from __future__ import annotations

import contextlib
import logging
import queue
import shutil
import threading
import time
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

from scribeline.audio.chunking import plan
from scribeline.audio.decoder import decode
from scribeline.exceptions import (
    InvalidOptions,
    JobCancelled,
    JobFailure,
    JobInProgress,
    ModelNotReady,
    NotFoundError,
)
from scribeline.history import HistoryStore
from scribeline.jobs.cancellation import CancellationToken, check
from scribeline.jobs.types import (
    AudioRetimer,
    CaptionsProvider,
    JobOutcome,
    JobRequest,
    JobState,
    ProgressEvent,
    RemoteAudioExtractor,
    SourceDescriptor,
    TranscriptionOptions,
    TranscriptionResult,
)
from scribeline.models.manager import ModelManager
from scribeline.transcribe.engine import InferenceEngine
from scribeline.transcribe.stitch import Stitcher

logger = logging.getLogger(__name__)

# Overall progress reached on entering each stage. Inference fills the gap
# between INFERRING and STITCHING chunk by chunk.
STAGE_PROGRESS = {
    JobState.RESOLVING_INPUT: 0.0,
    JobState.ACQUIRING_MODEL: 0.02,
    JobState.DECODING: 0.05,
    JobState.INFERRING: 0.10,
    JobState.STITCHING: 0.95,
    JobState.PERSISTED: 1.0,
}

STAGE_MESSAGES = {
    JobState.RESOLVING_INPUT: "Preparing input",
    JobState.ACQUIRING_MODEL: "Loading model",
    JobState.DECODING: "Decoding audio",
    JobState.INFERRING: "Transcribing",
    JobState.STITCHING: "Finalizing transcript",
    JobState.PERSISTED: "Done",
}


class Job:
    """Handle on a submitted job. Safe to use from any thread."""

    def __init__(self, request: JobRequest) -> None:
        self.id = uuid.uuid4().hex[:8]
        self.request = request
        self.token = CancellationToken()
        self._state = JobState.IDLE
        self._fraction = 0.0
        self._events: queue.Queue = queue.Queue()
        self._outcome: JobOutcome | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def outcome(self) -> JobOutcome | None:
        return self._outcome

    @property
    def result(self) -> TranscriptionResult | None:
        return self._outcome.result if self._outcome else None

    @property
    def error(self) -> BaseException | None:
        return self._outcome.error if self._outcome else None

    def cancel(self) -> None:
        """Request cancellation. The job stops at its next checkpoint."""
        self.token.cancel()

    def wait(self, timeout: float | None = None) -> JobOutcome | None:
        """Block until the job ends. Returns None on timeout."""
        self._done.wait(timeout)
        return self._outcome

    def events(self) -> Iterator[ProgressEvent | JobOutcome]:
        """Yield progress events as they happen, ending with the JobOutcome."""
        while True:
            event = self._events.get()
            yield event
            if isinstance(event, JobOutcome):
                return

    def _set_state(self, state: JobState) -> None:
        with self._lock:
            self._state = state
        logger.debug("Job %s -> %s", self.id, state.value)
        if state in STAGE_PROGRESS:
            self._progress(STAGE_PROGRESS[state], STAGE_MESSAGES[state])

    def _progress(self, fraction: float, message: str, chunk_text: str | None = None) -> None:
        with self._lock:
            self._fraction = max(self._fraction, min(fraction, 1.0))
            fraction = self._fraction
        self._events.put(
            ProgressEvent(kind="transcription", fraction=fraction, message=message, chunk_text=chunk_text)
        )

    def _finish(self, outcome: JobOutcome) -> None:
        if outcome.state == JobState.PERSISTED:
            self._set_state(JobState.PERSISTED)
        else:
            with self._lock:
                self._state = outcome.state
        self._outcome = outcome
        self._events.put(outcome)
        self._done.set()


class JobController:
    """Accepts transcription requests and runs them one at a time.

    Args:
        engine: Inference engine shared with the model manager
        models: Model manager, queried for the requested model
        history: Store receiving each successful result
        extractor: Downloads audio for remote inputs
        retimer: Speeds audio up before decoding
        captions: Fetches caption tracks for remote inputs
        ffmpeg_binary: FFmpeg used by the decoder for non-native containers
        tool_timeout: Bound on each external tool run, in seconds
    """

    def __init__(
        self,
        engine: InferenceEngine,
        models: ModelManager,
        history: HistoryStore,
        extractor: RemoteAudioExtractor | None = None,
        retimer: AudioRetimer | None = None,
        captions: CaptionsProvider | None = None,
        ffmpeg_binary: str = "ffmpeg",
        tool_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.models = models
        self.history = history
        self.extractor = extractor
        self.retimer = retimer
        self.captions = captions
        self.ffmpeg_binary = ffmpeg_binary
        self.tool_timeout = tool_timeout
        self.clock = clock
        self._lock = threading.Lock()
        self._active: Job | None = None

    @classmethod
    def from_config(cls, config) -> JobController:
        """Wire up a controller and its collaborators from a ScribelineConfig."""
        from scribeline.tools.ffmpeg import FfmpegRetimer
        from scribeline.tools.ytdlp import YtDlpAudioExtractor, YtDlpCaptions

        engine = InferenceEngine(device=config.device, compute_type=config.compute_type)
        models = ModelManager(
            config.models_dir,
            engine=engine,
            timeout=config.download_timeout_seconds,
            progress_interval=config.download_progress_interval,
        )
        history = HistoryStore(config.history_path, max_entries=config.history_max_entries)
        timeout = config.tool_timeout_seconds
        return cls(
            engine=engine,
            models=models,
            history=history,
            extractor=YtDlpAudioExtractor(config.ytdlp_binary, timeout),
            retimer=FfmpegRetimer(config.ffmpeg_binary, timeout),
            captions=YtDlpCaptions(config.ytdlp_binary, timeout),
            ffmpeg_binary=config.ffmpeg_binary,
            tool_timeout=timeout,
        )

    @property
    def active_job(self) -> Job | None:
        with self._lock:
            if self._active is not None and not self._active.state.is_terminal:
                return self._active
            return None

    def submit(self, request: JobRequest) -> Job:
        """Validate a request and start it on a background thread.

        Raises:
            InvalidOptions: If the options or input are unusable
            JobInProgress: If another job is still active
        """
        options = TranscriptionOptions(**request.options.model_dump())
        self._check_input(request, options)
        request = JobRequest(input=request.input, options=options)

        with self._lock:
            if self._active is not None and not self._active.state.is_terminal:
                raise JobInProgress(f"Job {self._active.id} is still running")
            job = Job(request)
            self._active = job

        thread = threading.Thread(target=self._run, args=(job,), name=f"scribeline-job-{job.id}", daemon=True)
        thread.start()
        logger.info("Started job %s", job.id)
        return job

    def _check_input(self, request: JobRequest, options: TranscriptionOptions) -> None:
        job_input = request.input
        if job_input.is_remote:
            if not job_input.url:
                raise InvalidOptions("Remote input needs a URL")
            if job_input.use_captions and self.captions is None:
                raise InvalidOptions("No captions provider configured")
            if not job_input.use_captions and self.extractor is None:
                raise InvalidOptions("No remote audio extractor configured")
        elif job_input.path is None:
            raise InvalidOptions("Local input needs a file path")
        if options.speeds_up and self.retimer is None and not job_input.use_captions:
            raise InvalidOptions("No audio retimer configured")

    def _run(self, job: Job) -> None:
        with contextlib.ExitStack() as cleanup:
            try:
                result = self._execute(job, cleanup)
            except JobCancelled:
                logger.info("Job %s cancelled", job.id)
                outcome = JobOutcome(state=JobState.CANCELLED)
            except Exception as e:
                stage = job.state.value
                logger.error("Job %s failed while %s: %s", job.id, stage, e)
                failure = JobFailure(stage, e)
                failure.__cause__ = e
                outcome = JobOutcome(state=JobState.FAILED, error=failure)
            else:
                outcome = JobOutcome(state=JobState.PERSISTED, result=result)
        job._finish(outcome)

    def _execute(self, job: Job, cleanup: contextlib.ExitStack) -> TranscriptionResult:
        started = self.clock()
        options = job.request.options
        job_input = job.request.input
        token = job.token

        job._set_state(JobState.RESOLVING_INPUT)
        check(token)
        if job_input.is_remote and job_input.use_captions:
            return self._from_captions(job, started)

        if job_input.is_remote:
            remote = self.extractor.extract(job_input.url, token)
            cleanup.callback(shutil.rmtree, remote.work_dir, ignore_errors=True)
            source = SourceDescriptor(name=remote.title, kind="remote_whisper", location=job_input.url)
            path = remote.path
        else:
            path = Path(job_input.path)
            if not path.is_file():
                raise NotFoundError(f"Input file not found: {path}")
            source = SourceDescriptor(name=path.name, kind="file", location=str(path.resolve()))

        check(token)
        job._set_state(JobState.ACQUIRING_MODEL)
        descriptor = self.models.get(options.model_id)
        if not descriptor.installed:
            raise ModelNotReady(f"Model '{options.model_id}' is not installed. Download it first.")

        with self.engine.borrow(descriptor) as handle:
            check(token)
            job._set_state(JobState.DECODING)
            if options.speeds_up:
                path = self.retimer.retime(path, options.speed_factor, token)
                cleanup.callback(path.unlink, missing_ok=True)
            buffer = decode(path, self.ffmpeg_binary, self.tool_timeout, token)
            chunks = plan(buffer)

            job._set_state(JobState.INFERRING)
            stitcher = Stitcher()
            language = options.language_hint
            start, end = STAGE_PROGRESS[JobState.INFERRING], STAGE_PROGRESS[JobState.STITCHING]
            for i, chunk in enumerate(chunks):
                check(token)
                samples = buffer.slice(chunk.offset_samples, chunk.length_samples)
                output = self.engine.infer(handle, samples, language)
                if language is None:
                    language = output.language
                text = stitcher.add(chunk, output)
                job._progress(
                    start + (end - start) * (i + 1) / len(chunks),
                    f"Transcribed chunk {i + 1}/{len(chunks)}",
                    chunk_text=text,
                )

        job._set_state(JobState.STITCHING)
        audio_duration = buffer.duration
        if options.speeds_up:
            audio_duration *= options.speed_factor
        result = TranscriptionResult(
            text=stitcher.text,
            segments=stitcher.segments if options.include_timestamps else None,
            language=language or stitcher.language,
            audio_duration=audio_duration,
            processing_time=self.clock() - started,
            source=source,
            model_id=options.model_id,
        )
        check(token)
        self.history.append(result)
        return result

    def _from_captions(self, job: Job, started: float) -> TranscriptionResult:
        options = job.request.options
        url = job.request.input.url
        track = self.captions.fetch(url, options.language_hint, job.token)
        result = TranscriptionResult(
            text=track.text,
            segments=list(track.lines) if options.include_timestamps else None,
            language=track.language,
            audio_duration=track.lines[-1].end if track.lines else 0.0,
            processing_time=self.clock() - started,
            source=SourceDescriptor(name=track.title, kind="remote_captions", location=url),
            model_id=None,
        )
        check(job.token)
        self.history.append(result)
        return result
