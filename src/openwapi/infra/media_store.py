"""Filesystem storage for downloaded image attachments.

Files are named "{message_id}.jpg" under a single root folder, which the
API mounts read-only. No eviction, size limit or format conversion.
"""

from __future__ import annotations

from pathlib import Path

MEDIA_SUFFIX = ".jpg"


class MediaStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @staticmethod
    def filename_for(message_id: int) -> str:
        return f"{message_id}{MEDIA_SUFFIX}"

    def path_for(self, filename: str) -> Path:
        """Resolve a stored filename, refusing anything outside the root."""
        path = (self.root / filename).resolve()
        if path.parent != self.root.resolve():
            raise ValueError(f"invalid media filename: {filename!r}")
        return path

    def save(self, message_id: int, data: bytes) -> str:
        """Write attachment bytes for a message and return the filename."""
        self.root.mkdir(parents=True, exist_ok=True)
        filename = self.filename_for(message_id)
        self.path_for(filename).write_bytes(data)
        return filename

    def read(self, filename: str) -> bytes:
        return self.path_for(filename).read_bytes()

    def exists(self, filename: str) -> bool:
        try:
            return self.path_for(filename).is_file()
        except ValueError:
            return False
