from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Protocol

import anyio

from core.errors import StoreError

from .models import RegistryRoot, root_from_document, root_to_document

log = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """
    Persistence contract for the tracking document: whole-document load and
    whole-document replace. Callers serialize read-modify-write cycles.
    """

    async def load(self) -> tuple[RegistryRoot, bool]:
        """Return (root, migrated)."""
        ...

    async def save(self, root: RegistryRoot) -> None: ...

    async def ping(self) -> None: ...


class JsonFileStore:
    """
    Tracking document kept as one JSON file. Writes go to a temporary sibling
    and are renamed over the target, so readers see either the old or the
    new document, never a partial one.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"JsonFileStore({str(self.path)!r})"

    def _read(self) -> tuple[RegistryRoot, bool]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.debug("No tracking document at %s yet; starting empty.", self.path)
            return RegistryRoot(), False
        except OSError as e:
            raise StoreError(f"cannot read {self.path}: {e}") from e
        if not raw.strip():
            return RegistryRoot(), False
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"{self.path} is not valid JSON: {e}") from e
        return root_from_document(doc)

    def _write(self, root: RegistryRoot) -> None:
        payload = json.dumps(root_to_document(root), ensure_ascii=False, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self.path.parent, prefix=self.path.name + ".", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                with suppress(OSError):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise StoreError(f"cannot write {self.path}: {e}") from e

    async def load(self) -> tuple[RegistryRoot, bool]:
        return await anyio.to_thread.run_sync(self._read)

    async def save(self, root: RegistryRoot) -> None:
        await anyio.to_thread.run_sync(self._write, root)

    async def ping(self) -> None:
        await self.load()

