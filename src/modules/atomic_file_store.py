"""
Atomic File Store
Durable JSON document persistence with a write-through cache

Each store instance owns one JSON document. Reads are served from memory after
the first load. Writes are funneled through a single-worker executor (the
store's write chain), so mutations issued from any number of threads commit one
at a time in the order they were issued. Every commit writes a temporary
sibling file and renames it over the target, so readers never observe a
partially-written document.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Mutator = Callable[[Document], Document]


def atomic_write_json(path: Union[str, Path], payload: Any, indent: Optional[int] = 2) -> None:
    """
    Write *payload* as JSON to *path* via temp-file-then-rename.

    The temporary file lives in the same directory as the target so the final
    ``os.replace`` is a same-filesystem rename. Concurrent writers to the same
    path each use their own temporary file; the last rename wins and the
    target is always a complete document.

    Raises:
        OSError: If the directory cannot be created or the write/rename fails.
            The temporary file is removed before the error propagates.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=indent)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class AtomicFileStore:
    """
    One JSON document on disk, cached in memory, written atomically.

    Args:
        path:            Location of the document.
        default_factory: Returns a fresh default document. Used when the file
                         is missing, unreadable or rejected by *validator*.
        validator:       Returns True when a parsed document is usable
                         (e.g. the schema version matches).
        name:            Label used in log messages and the writer thread name.
    """

    def __init__(
        self,
        path: Union[str, Path],
        default_factory: Callable[[], Document],
        validator: Optional[Callable[[Any], bool]] = None,
        name: Optional[str] = None,
    ) -> None:
        self.path = Path(path)
        self.name = name or self.path.stem
        self._default_factory = default_factory
        self._validator = validator or (lambda doc: isinstance(doc, dict))
        self._cache: Optional[Document] = None
        self._read_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"store-{self.name}")
        self._closed = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> Document:
        """
        Return the last committed document.

        The first call reads the file; later calls are served from memory.
        The returned object is shared with the cache and must not be mutated
        in place; use ``mutate`` or ``submit``.
        """
        with self._read_lock:
            if self._cache is None:
                self._cache = self._read_from_disk()
            return self._cache

    def _read_from_disk(self) -> Document:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self._default_factory()
        except OSError as e:
            logger.warning(f"Could not read {self.name} store at {self.path}: {e}; using defaults")
            return self._default_factory()

        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning(f"Corrupt {self.name} store at {self.path}; using defaults")
            return self._default_factory()

        if not isinstance(parsed, dict) or not self._validator(parsed):
            logger.warning(f"Unsupported {self.name} document at {self.path}; using defaults")
            return self._default_factory()

        return parsed

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit(self, fn: Mutator) -> "Future[Document]":
        """
        Queue a mutation on the write chain without waiting for it.

        *fn* receives a deep copy of the current document and returns the
        document to commit. The future resolves to the committed document or
        carries the exception that prevented the commit.
        """
        if self._closed:
            raise RuntimeError(f"{self.name} store is closed")
        return self._executor.submit(self._apply, fn)

    def mutate(self, fn: Mutator) -> Document:
        """
        Apply a mutation and block until it is durable.

        Raises:
            OSError: If the commit fails. The cached document is unchanged.
        """
        return self.submit(fn).result()

    def _apply(self, fn: Mutator) -> Document:
        current = self.load()
        next_doc = fn(copy.deepcopy(current))
        if next_doc is None:
            raise ValueError(f"{self.name} mutation returned no document")

        atomic_write_json(self.path, next_doc)

        # Only a successful rename makes the new document visible to readers
        with self._read_lock:
            self._cache = next_doc
        return next_doc

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until every mutation queued so far has committed or failed."""
        if self._closed:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        """Finish queued writes and stop the writer thread."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
