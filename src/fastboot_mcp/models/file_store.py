"""In-memory file store for images uploaded before flashing.

Files are added from the local filesystem (or directly as bytes) and
referenced by name from ``fastboot flash <partition> <name>``.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..errors import FileNotFoundInStore

NAME_COLUMN_WIDTH = 20


@dataclass
class StoredFile:
    """One uploaded file."""

    name: str
    content: bytes
    mime_type: str = "application/octet-stream"
    last_modified: datetime = field(default_factory=datetime.now)

    @property
    def size(self) -> int:
        return len(self.content)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "size": self.size,
            "mime_type": self.mime_type,
            "last_modified": self.last_modified.isoformat(timespec="seconds"),
        }


class FileStore:
    """Name -> :class:`StoredFile` mapping for the current server process."""

    def __init__(self) -> None:
        self._files: dict[str, StoredFile] = {}

    def add(
        self,
        name: str,
        content: bytes,
        mime_type: str | None = None,
        last_modified: datetime | None = None,
    ) -> StoredFile:
        """Store ``content`` under ``name``, replacing any previous file."""
        if not name:
            raise ValueError("File name must not be empty")
        stored = StoredFile(
            name=name,
            content=bytes(content),
            mime_type=mime_type or mimetypes.guess_type(name)[0]
            or "application/octet-stream",
            last_modified=last_modified or datetime.now(),
        )
        self._files[name] = stored
        return stored

    def load(self, path: str | Path, name: str | None = None) -> StoredFile:
        """Read a local file into the store.

        Args:
            path: File to read.
            name: Store name; defaults to the file's base name.

        Raises:
            FileNotFoundError: If ``path`` does not exist.
        """
        path = Path(path)
        content = path.read_bytes()
        mtime = datetime.fromtimestamp(path.stat().st_mtime)
        return self.add(name or path.name, content, last_modified=mtime)

    def get(self, name: str) -> StoredFile:
        try:
            return self._files[name]
        except KeyError:
            raise FileNotFoundInStore(name) from None

    def remove(self, name: str) -> None:
        if self._files.pop(name, None) is None:
            raise FileNotFoundInStore(name)

    def list(self) -> list[StoredFile]:
        return [self._files[name] for name in sorted(self._files)]

    def format_listing(self) -> str:
        """Render the ``ls`` table."""
        if not self._files:
            return "No files found"
        return "\n".join(
            f"{f.name.ljust(NAME_COLUMN_WIDTH)} {f.size} bytes    "
            f"{f.last_modified:%Y-%m-%d %H:%M:%S}"
            for f in self.list()
        )

    def __contains__(self, name: object) -> bool:
        return name in self._files

    def __len__(self) -> int:
        return len(self._files)
