"""Whole-document JSON storage for the catalogue.

Each collection is one JSON file under a base directory. A read loads and
parses the whole file; a write rewrites the whole file. There is no locking:
route handlers run the load-mutate-save cycle without yielding to the event
loop, so within one process each cycle completes before the next starts.
Across processes the last writer wins.

On first access an absent document is created from its bundled seed file
when one is registered and present, otherwise from its default shape.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from catalogue_console.store.errors import DocumentCorruptError, NotFoundError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentLayout:
    """How a named document is initialised.

    Attributes:
        default: Factory for the empty document shape
        seed_path: Bundled seed file (optional)
        seed_key: Key of the seed file to copy into this document. When None
            the whole seed file becomes the document.
    """

    default: Callable[[], Any]
    seed_path: Path | None = None
    seed_key: str | None = None


class DocumentStore(ABC):
    """Abstract interface for named JSON documents."""

    @abstractmethod
    def load(self, name: str) -> Any:
        """Load a document, initialising it on first access."""
        ...

    @abstractmethod
    def save(self, name: str, document: Any) -> None:
        """Replace a document."""
        ...

    @abstractmethod
    def exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def reseed(self, name: str) -> Any:
        """Overwrite a document from its seed file.

        Raises:
            NotFoundError: If no seed file is available
        """
        ...


class JsonDocumentStore(DocumentStore):
    """Documents stored as ``<base_dir>/<name>.json``."""

    def __init__(self, base_dir: Path, documents: dict[str, DocumentLayout]):
        """Initialize the store.

        Args:
            base_dir: Directory holding the documents (created if missing)
            documents: Known document names and how to initialise them
        """
        self.base_dir = Path(base_dir)
        self._documents = documents
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.base_dir / f"{name}.json"

    def _layout(self, name: str) -> DocumentLayout:
        try:
            return self._documents[name]
        except KeyError:
            raise KeyError(f"Unknown document: {name}") from None

    def _read_seed(self, name: str) -> Any | None:
        layout = self._layout(name)
        if layout.seed_path is None or not layout.seed_path.exists():
            return None
        try:
            seed = json.loads(layout.seed_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise DocumentCorruptError(f"Seed file for {name} is not valid JSON: {e.msg}") from e
        if layout.seed_key is None:
            return seed
        return {layout.seed_key: seed.get(layout.seed_key, [])}

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def load(self, name: str) -> Any:
        path = self._path(name)
        if not path.exists():
            document = self._read_seed(name)
            if document is not None:
                log.info(f"Seeding {name} from {self._layout(name).seed_path}")
            else:
                document = self._layout(name).default()
                log.info(f"Initialising empty {name} document at {path}")
            self.save(name, document)
            return copy.deepcopy(document)

        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log.error(f"Corrupt document {path}: {e}")
            raise DocumentCorruptError(f"Failed to read {name}: invalid JSON") from e

    def save(self, name: str, document: Any) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")

    def reseed(self, name: str) -> Any:
        document = self._read_seed(name)
        if document is None:
            raise NotFoundError(f"Seed file not found for {name}")
        self.save(name, document)
        log.info(f"Reseeded {name} from {self._layout(name).seed_path}")
        return document
