"""File delivery targets for generated reports."""

from __future__ import annotations

import threading
from typing import Protocol

from shared.models import ExportedFile


CSV_MEDIA_TYPE = "text/csv;charset=utf-8"
PDF_MEDIA_TYPE = "application/pdf"


class FileDelivery(Protocol):
    def save(self, filename: str, content: bytes, media_type: str) -> ExportedFile:
        """Hand a generated file to the requester."""


class InMemoryFileDelivery:
    """Collects delivered files for the requesting session; nothing touches disk."""

    def __init__(self) -> None:
        self._files: list[ExportedFile] = []
        self._lock = threading.Lock()

    @property
    def files(self) -> list[ExportedFile]:
        with self._lock:
            return list(self._files)

    def save(self, filename: str, content: bytes, media_type: str) -> ExportedFile:
        exported = ExportedFile(filename=filename, media_type=media_type, content=content)
        with self._lock:
            self._files.append(exported)
        return exported
