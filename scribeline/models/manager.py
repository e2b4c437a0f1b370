"""
scribeline.models.manager - Download, verify, install and delete Whisper models.

A model is downloaded file by file into a hidden staging directory next to
its final location, verified, and then moved into place with a single
``os.replace``. A model directory therefore either holds a complete, verified
install or does not exist; interrupted downloads only ever leave staging
directories behind, and those are swept when the manager starts.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import requests

from scribeline import __version__
from scribeline.exceptions import (
    DownloadError,
    IntegrityError,
    ModelInUseError,
    NotFoundError,
)
from scribeline.io import fsync_dir
from scribeline.jobs.cancellation import CancellationToken, check
from scribeline.jobs.types import ProgressEvent
from scribeline.models.catalog import CATALOG, ModelDescriptor, describe, get_entry

logger = logging.getLogger(__name__)

PARTIAL_MARKER = ".partial-"
CHUNK_SIZE = 1024 * 1024

# Allowed deviation from the catalog size when the server sends no Content-Length.
SIZE_TOLERANCE = 0.10

ProgressSink = Callable[[ProgressEvent], None]


class ModelStatus(str, Enum):
    INSTALLED = "installed"
    NOT_INSTALLED = "not_installed"


@dataclass(frozen=True)
class InstalledModel:
    descriptor: ModelDescriptor
    size_on_disk: int


@dataclass(frozen=True)
class StorageInfo:
    models_dir: Path
    total_size: int
    model_sizes: dict[str, int] = field(default_factory=dict)


class _ProgressThrottle:
    """Forward download progress at most once per interval or per 1% step."""

    def __init__(
        self,
        sink: ProgressSink | None,
        model_id: str,
        total: int,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sink = sink
        self.model_id = model_id
        self.total = total
        self.interval = interval
        self.clock = clock
        self._last_time: float | None = None
        self._last_fraction = 0.0

    def update(self, downloaded: int) -> None:
        if self.sink is None:
            return
        fraction = min(downloaded / self.total, 0.99) if self.total else 0.0
        now = self.clock()
        if (
            self._last_time is not None
            and now - self._last_time < self.interval
            and fraction - self._last_fraction < 0.01
        ):
            return
        self._emit(fraction, downloaded)
        self._last_time = now

    def finish(self, downloaded: int) -> None:
        if self.sink is not None:
            self._emit(1.0, downloaded)

    def _emit(self, fraction: float, downloaded: int) -> None:
        fraction = max(fraction, self._last_fraction)
        self._last_fraction = fraction
        self.sink(
            ProgressEvent(
                kind="download",
                fraction=fraction,
                message=f"Downloading {self.model_id}",
                bytes_downloaded=downloaded,
                bytes_total=self.total,
            )
        )


class ModelManager:
    """Owns the models directory and the install state of every catalog model.

    Args:
        models_dir: Directory holding one subdirectory per installed model
        engine: InferenceEngine whose cached model must be evicted on delete
        session: requests.Session used for downloads
        timeout: Connect and read timeout for each HTTP request, in seconds
        progress_interval: Minimum seconds between download progress events
    """

    def __init__(
        self,
        models_dir: Path,
        engine=None,
        session: requests.Session | None = None,
        timeout: float = 60,
        progress_interval: float = 0.25,
    ) -> None:
        self.models_dir = Path(models_dir)
        self.engine = engine
        self.session = session or requests.Session()
        self.timeout = timeout
        self.progress_interval = progress_interval
        self._lock = threading.Lock()
        self._downloading: set[str] = set()

        self.models_dir.mkdir(parents=True, exist_ok=True)
        self._sweep_partials()

    def _sweep_partials(self) -> None:
        for path in self.models_dir.glob(f".*{PARTIAL_MARKER}*"):
            if path.is_dir():
                logger.info("Removing interrupted download %s", path.name)
                shutil.rmtree(path, ignore_errors=True)

    def get(self, model_id: str) -> ModelDescriptor:
        """Return the descriptor of a catalog model.

        Raises:
            NotFoundError: If the model id is not in the catalog
        """
        entry = get_entry(model_id)
        if entry is None:
            raise NotFoundError(f"Unknown model '{model_id}'")
        return describe(entry, self.models_dir)

    def status(self, model_id: str) -> ModelStatus:
        if self.get(model_id).installed:
            return ModelStatus.INSTALLED
        return ModelStatus.NOT_INSTALLED

    def list_models(self) -> list[ModelDescriptor]:
        return [describe(entry, self.models_dir) for entry in CATALOG]

    def list_installed(self) -> list[InstalledModel]:
        return [
            InstalledModel(descriptor=desc, size_on_disk=_dir_size(desc.install_path))
            for desc in self.list_models()
            if desc.installed
        ]

    def storage_info(self) -> StorageInfo:
        sizes = {m.descriptor.model_id: m.size_on_disk for m in self.list_installed()}
        return StorageInfo(models_dir=self.models_dir, total_size=sum(sizes.values()), model_sizes=sizes)

    def download(
        self,
        model_id: str,
        progress_sink: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ModelDescriptor:
        """Download, verify and install a model. A no-op if already installed.

        Args:
            model_id: Catalog model id
            progress_sink: Called with download ProgressEvents
            cancel_token: Checked between network reads

        Returns:
            Descriptor of the installed model

        Raises:
            NotFoundError: If the model id is not in the catalog
            DownloadError: On network failure, or if the model is already downloading
            IntegrityError: If a downloaded file does not match its expected size
            JobCancelled: If cancelled through ``cancel_token``
        """
        descriptor = self.get(model_id)
        if descriptor.installed:
            logger.info("Model %s is already installed", model_id)
            return descriptor

        with self._lock:
            if model_id in self._downloading:
                raise DownloadError(f"Model '{model_id}' is already being downloaded")
            self._downloading.add(model_id)

        staging = self.models_dir / f".{model_id}{PARTIAL_MARKER}{uuid.uuid4().hex[:8]}"
        try:
            staging.mkdir()
            self._fetch_all(descriptor, staging, progress_sink, cancel_token)
            self._install(staging, descriptor.install_path)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        finally:
            with self._lock:
                self._downloading.discard(model_id)

        logger.info("Installed model %s at %s", model_id, descriptor.install_path)
        return self.get(model_id)

    def _fetch_all(
        self,
        descriptor: ModelDescriptor,
        staging: Path,
        progress_sink: ProgressSink | None,
        cancel_token: CancellationToken | None,
    ) -> None:
        throttle = _ProgressThrottle(
            progress_sink, descriptor.model_id, descriptor.expected_size_bytes, self.progress_interval
        )
        downloaded = 0
        all_lengths_known = True
        for filename in descriptor.files:
            url = descriptor.file_url(filename)
            logger.debug("Fetching %s", url)
            try:
                written, announced = self._fetch_file(
                    url, staging / filename, downloaded, throttle, cancel_token
                )
            except (requests.RequestException, OSError) as e:
                raise DownloadError(f"Downloading {filename} for '{descriptor.model_id}' failed: {e}") from e

            if announced is None:
                all_lengths_known = False
            elif written != announced:
                raise IntegrityError(
                    f"{filename} for '{descriptor.model_id}' is {written} bytes, expected {announced}"
                )
            downloaded += written

        if not all_lengths_known:
            expected = descriptor.expected_size_bytes
            if abs(downloaded - expected) > expected * SIZE_TOLERANCE:
                raise IntegrityError(
                    f"Model '{descriptor.model_id}' is {downloaded} bytes, expected about {expected}"
                )
        throttle.finish(downloaded)

    def _fetch_file(
        self,
        url: str,
        dest: Path,
        already: int,
        throttle: _ProgressThrottle,
        cancel_token: CancellationToken | None,
    ) -> tuple[int, int | None]:
        headers = {"User-Agent": f"scribeline/{__version__}", "Accept-Encoding": "identity"}
        with self.session.get(url, stream=True, timeout=(self.timeout, self.timeout), headers=headers) as resp:
            resp.raise_for_status()
            length = resp.headers.get("Content-Length")
            # iter_content yields decoded bytes, so an encoded length is not comparable.
            encoding = resp.headers.get("Content-Encoding", "identity")
            announced = int(length) if length is not None and encoding == "identity" else None

            written = 0
            with open(dest, "wb") as f:
                for block in resp.iter_content(chunk_size=CHUNK_SIZE):
                    check(cancel_token)
                    if not block:
                        continue
                    f.write(block)
                    written += len(block)
                    throttle.update(already + written)
                f.flush()
                os.fsync(f.fileno())
        return written, announced

    def _install(self, staging: Path, install_path: Path) -> None:
        fsync_dir(staging)
        if install_path.exists():
            # Leftover directory without every model file.
            shutil.rmtree(install_path)
        os.replace(staging, install_path)
        fsync_dir(self.models_dir)

    def delete(self, model_id: str) -> None:
        """Remove an installed model, evicting it from the engine first.

        Raises:
            NotFoundError: If the model is unknown or not installed
            ModelInUseError: If the active job uses the model, or it is downloading
        """
        descriptor = self.get(model_id)
        if not descriptor.installed:
            raise NotFoundError(f"Model '{model_id}' is not installed")
        with self._lock:
            if model_id in self._downloading:
                raise ModelInUseError(f"Model '{model_id}' is being downloaded")

        eviction = self.engine.evicting(model_id) if self.engine is not None else contextlib.nullcontext()
        with eviction:
            shutil.rmtree(descriptor.install_path)
            fsync_dir(self.models_dir)
        logger.info("Deleted model %s", model_id)


def _dir_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
