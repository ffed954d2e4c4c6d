"""Tool execution environment and the file access capability."""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Tuple

from ..errors import FileAccessError

__all__ = ["FileAccess", "ToolEnvironment", "SKIP_DIRS"]

SKIP_DIRS = {
    ".git", ".svn", ".hg", ".venv", "venv", "env",
    "node_modules", "__pycache__", ".mypy_cache",
    ".pytest_cache", ".tox", "dist", "build", "coverage",
    ".next", ".nuxt", ".cache", "target",
}


class FileAccess:
    """Read/write/list/delete over paths relative to the project root.

    Relative paths must stay inside the root. Absolute paths are honoured as
    given, since the caller supplied them explicitly.
    """

    def __init__(self, root_path):
        self.root_path = Path(root_path).resolve()

    def resolve(self, path: str) -> Path:
        if not isinstance(path, str) or not path.strip():
            raise FileAccessError("Path must be a non-empty string")
        p = Path(path).expanduser()
        if p.is_absolute():
            return p.resolve()
        p = (self.root_path / p).resolve()
        try:
            p.relative_to(self.root_path)
        except ValueError:
            raise FileAccessError(
                f"Access denied: '{path}' is outside project root ({self.root_path})"
            )
        return p

    def relative(self, fp: Path) -> str:
        try:
            return fp.relative_to(self.root_path).as_posix()
        except ValueError:
            return str(fp)

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).exists()
        except FileAccessError:
            return False

    def read(self, path: str) -> str:
        fp = self.resolve(path)
        if not fp.exists():
            raise FileAccessError(f"File not found: {path}")
        if not fp.is_file():
            raise FileAccessError(f"Not a file: {path}")
        try:
            # newline="" keeps CRLF intact so edits round-trip byte for byte
            with open(fp, encoding="utf-8", newline="") as f:
                return f.read()
        except UnicodeDecodeError:
            raise FileAccessError(f"Cannot read binary file: {path}")
        except OSError as e:
            raise FileAccessError(f"Cannot read {path}: {e.strerror or e}")

    def write(self, path: str, content: str) -> Path:
        """Replace the file in one step: write a sibling temp file, then rename."""
        fp = self.resolve(path)
        if fp.is_dir():
            raise FileAccessError(f"Is a directory: {path}")
        try:
            fp.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{fp.name}.", suffix=".tmp", dir=str(fp.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                if fp.exists():
                    os.chmod(tmp, fp.stat().st_mode & 0o7777)
                os.replace(tmp, fp)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise FileAccessError(f"Cannot write {path}: {e.strerror or e}")
        return fp

    def list(self, path: str = ".") -> List[Tuple[str, bool]]:
        """Return ``(name, is_dir)`` pairs sorted by name."""
        fp = self.resolve(path)
        if not fp.exists():
            raise FileAccessError(f"Not found: {path}")
        if not fp.is_dir():
            raise FileAccessError(f"Not a directory: {path}")
        try:
            entries = sorted(fp.iterdir(), key=lambda e: e.name)
        except OSError as e:
            raise FileAccessError(f"Cannot list {path}: {e.strerror or e}")
        return [(e.name, e.is_dir()) for e in entries]

    def delete(self, path: str) -> None:
        fp = self.resolve(path)
        if not fp.exists():
            raise FileAccessError(f"Not found: {path}")
        if fp.is_dir():
            raise FileAccessError(f"Is a directory: {path}")
        try:
            fp.unlink()
        except OSError as e:
            raise FileAccessError(f"Cannot delete {path}: {e.strerror or e}")


@dataclass(frozen=True)
class ToolEnvironment:
    """Passed into every tool: project root, file capability, read-only settings."""
    root_path: Path
    file_access: FileAccess
    configuration: Any = None

    @classmethod
    def for_root(cls, root_path, configuration=None) -> "ToolEnvironment":
        access = FileAccess(root_path)
        return cls(root_path=access.root_path, file_access=access, configuration=configuration)

    def setting(self, name: str, default=None):
        if self.configuration is None:
            return default
        return getattr(self.configuration, name, default)
