"""Read-only filesystem view rooted at the project directory."""

from __future__ import annotations

import os
from pathlib import Path


class LocalFileSystem:
    """
    Resolves relative paths against the project root.
    Anything resolving outside the root is treated as missing.
    """

    def __init__(self, root: Path):
        self.root = root.resolve()

    def _resolve(self, path: str) -> Path | None:
        if os.sep == "/":
            path = path.replace("\\", "/")
        candidate = Path(path)
        full = candidate if candidate.is_absolute() else self.root / candidate
        try:
            full = full.resolve()
            full.relative_to(self.root)
        except (OSError, ValueError):
            return None
        return full

    def exists(self, path: str) -> bool:
        full = self._resolve(path)
        if full is None:
            return False
        try:
            return full.is_file()
        except OSError:
            return False

    def read_text(self, path: str) -> str:
        full = self._resolve(path)
        if full is None:
            raise FileNotFoundError(path)
        return full.read_text(encoding="utf-8", errors="replace")
