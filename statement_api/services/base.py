"""Abstract collaborators used by the processing pipeline.

Storage and document analysis are external services; the pipeline and cleanup scheduler only see
these interfaces, so any backend (or a test fake) can stand behind them.
"""

from abc import ABC, abstractmethod
from typing import Any


class FileStorage(ABC):
    """Keyed blob storage for uploaded documents."""

    @abstractmethod
    async def put(self, data: bytes, content_type: str, original_name: str) -> str:
        """Store a document and return its storage key."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes stored under ``key`` or raise ``StorageNotFoundError``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``; deleting a missing key is not an error."""


class DocumentAnalyzer(ABC):
    """OCR and layout analysis of a stored document."""

    @abstractmethod
    async def analyze(self, document_ref: str) -> dict[str, Any]:
        """Analyze the stored document and return its blocks, page metadata and condensed text."""
