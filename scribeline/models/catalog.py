"""
scribeline.models.catalog - The fixed set of Whisper models scribeline can install.

Each model is a CTranslate2 conversion of a Whisper checkpoint published on the
Hugging Face Hub, i.e. the directory layout faster-whisper loads. A model is
installed when ``<models_dir>/<model_id>`` holds every file listed here.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict

HF_BASE_URL = "https://huggingface.co"

_STANDARD_FILES = ("config.json", "model.bin", "tokenizer.json", "vocabulary.txt")
_V3_FILES = ("config.json", "model.bin", "preprocessor_config.json", "tokenizer.json", "vocabulary.json")


@dataclass(frozen=True)
class CatalogEntry:
    model_id: str
    repo: str
    description: str
    expected_size_bytes: int
    files: tuple[str, ...]

    @property
    def source_url(self) -> str:
        return f"{HF_BASE_URL}/{self.repo}/resolve/main"


CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry(
        "tiny", "Systran/faster-whisper-tiny", "Fastest, lowest accuracy", 75_000_000, _STANDARD_FILES
    ),
    CatalogEntry(
        "base", "Systran/faster-whisper-base", "Balance of speed and accuracy", 145_000_000, _STANDARD_FILES
    ),
    CatalogEntry(
        "small", "Systran/faster-whisper-small", "Good accuracy, moderate speed", 485_000_000, _STANDARD_FILES
    ),
    CatalogEntry(
        "medium", "Systran/faster-whisper-medium", "High accuracy, slower", 1_530_000_000, _STANDARD_FILES
    ),
    CatalogEntry(
        "large-v3", "Systran/faster-whisper-large-v3", "Best accuracy, slowest", 3_090_000_000, _V3_FILES
    ),
    CatalogEntry(
        "large-v3-turbo",
        "mobiuslabsgmbh/faster-whisper-large-v3-turbo",
        "Near large-v3 accuracy, much faster",
        1_620_000_000,
        _V3_FILES,
    ),
)

MODEL_IDS = tuple(entry.model_id for entry in CATALOG)
DEFAULT_MODEL = "base"


class ModelDescriptor(BaseModel):
    """A catalog model and its install state under a models directory."""

    model_config = ConfigDict(frozen=True)

    model_id: str
    description: str
    expected_size_bytes: int
    source_url: str
    files: tuple[str, ...]
    install_path: Path
    installed: bool = False

    def file_url(self, filename: str) -> str:
        return f"{self.source_url}/{filename}"


def get_entry(model_id: str) -> CatalogEntry | None:
    for entry in CATALOG:
        if entry.model_id == model_id:
            return entry
    return None


def is_installed(install_path: Path, files: tuple[str, ...]) -> bool:
    return install_path.is_dir() and all((install_path / name).is_file() for name in files)


def describe(entry: CatalogEntry, models_dir: Path) -> ModelDescriptor:
    install_path = Path(models_dir) / entry.model_id
    return ModelDescriptor(
        model_id=entry.model_id,
        description=entry.description,
        expected_size_bytes=entry.expected_size_bytes,
        source_url=entry.source_url,
        files=entry.files,
        install_path=install_path,
        installed=is_installed(install_path, entry.files),
    )
