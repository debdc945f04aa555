"""Content store - validated file reads and writes with backups."""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional


logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB
BACKUP_MARKER = ".backup."


def default_restricted_paths() -> list[str]:
    """System directories the store refuses to touch."""
    paths = ["/etc", "/usr", "/bin", "/sbin"]
    if os.name == "nt":
        paths.extend(["C:\\Windows", "C:\\Program Files"])
    return paths


# =============================================================================
# Errors
# =============================================================================

class FileOperationError(Exception):
    """Base class for content store failures."""

    def __init__(self, message: str, path: str = ""):
        self.message = message
        self.path = path
        super().__init__(message)


class ValidationError(FileOperationError):
    """Path traversal, restricted location, bad line number or oversized file."""


class PersistenceError(FileOperationError):
    """The disk refused a read, write or delete."""


# =============================================================================
# Results
# =============================================================================

@dataclass
class EditResult:
    """Outcome of a write-type operation.

    Callers must check ``success``; on failure ``error`` says why and
    nothing on disk was changed.
    """
    success: bool
    message: str = ""
    path: str = ""
    original_content: Optional[str] = None
    new_content: Optional[str] = None
    backup_path: Optional[str] = None
    error: str = ""

    @classmethod
    def ok(cls, message: str, path: str = "", **kwargs) -> "EditResult":
        return cls(success=True, message=message, path=path, **kwargs)

    @classmethod
    def fail(cls, error: str, path: str = "") -> "EditResult":
        return cls(success=False, message=error, path=path, error=error)


@dataclass
class FilePermissions:
    readable: bool = False
    writable: bool = False
    executable: bool = False


@dataclass
class FileInfo:
    """Filesystem facts about a path."""
    path: str
    exists: bool
    size: int = 0
    last_modified: Optional[datetime] = None
    is_directory: bool = False
    permissions: FilePermissions = field(default_factory=FilePermissions)


# =============================================================================
# Store
# =============================================================================

class ContentStore:
    """Read, write and line-edit files under a set of safety rules.

    Every write to an existing file snapshots the old content first, and
    with ``backup=True`` writes it to ``<path>.backup.<timestamp>`` before
    the original is replaced.
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        restricted_paths: Optional[list[str]] = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ):
        """Initialize the store.

        Args:
            base_dir: Directory relative paths resolve against (default: cwd).
            restricted_paths: Directories that may not be read or written.
            max_file_size: Largest file, in bytes, that ``read`` accepts.
        """
        self.base_dir = Path(base_dir) if base_dir else None
        self.restricted_paths = (
            list(restricted_paths) if restricted_paths is not None else default_restricted_paths()
        )
        self.max_file_size = max_file_size

    # -------------------------------------------------------------------------
    # Path handling
    # -------------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """Validate a user-supplied path and return it absolute.

        Raises:
            ValidationError: On traversal markers or a restricted location.
        """
        raw = str(path).strip()
        if not raw:
            raise ValidationError("File path is required", raw)
        if ".." in raw or "~" in raw:
            raise ValidationError(f"Path traversal is not allowed: {raw}", raw)

        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = (self.base_dir or Path.cwd()) / candidate
        resolved = candidate.resolve()

        for restricted in self.restricted_paths:
            for root in {Path(restricted), Path(restricted).resolve()}:
                if resolved == root or root in resolved.parents:
                    raise ValidationError(f"Access to restricted path denied: {raw}", raw)

        return resolved

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def read(self, path: str) -> str:
        """Return a file's text.

        Raises:
            ValidationError: Bad path or file larger than ``max_file_size``.
            PersistenceError: Missing file or unreadable content.
        """
        file_path = self.resolve(path)
        if not file_path.exists():
            raise PersistenceError(f"File not found: {path}", str(path))
        if file_path.is_dir():
            raise ValidationError(f"Path is a directory: {path}", str(path))

        size = file_path.stat().st_size
        if size > self.max_file_size:
            raise ValidationError(
                f"File too large: {size} bytes (limit {self.max_file_size})", str(path)
            )

        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read {path}: {e}", str(path)) from e

    def get_info(self, path: str) -> FileInfo:
        """Describe a path without reading it."""
        try:
            file_path = self.resolve(path)
        except ValidationError:
            return FileInfo(path=str(path), exists=False)

        if not file_path.exists():
            return FileInfo(path=str(path), exists=False)

        stat = file_path.stat()
        return FileInfo(
            path=str(path),
            exists=True,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime),
            is_directory=file_path.is_dir(),
            permissions=FilePermissions(
                readable=os.access(file_path, os.R_OK),
                writable=os.access(file_path, os.W_OK),
                executable=os.access(file_path, os.X_OK),
            ),
        )

    def list_backups(self, path: str) -> list[Path]:
        """Backups of a file, newest first."""
        file_path = self.resolve(path)
        pattern = f"{file_path.name}{BACKUP_MARKER}*"
        return sorted(file_path.parent.glob(pattern), reverse=True)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_backup(self, file_path: Path, content: str) -> Path:
        """Write ``content`` next to ``file_path`` under a timestamped name."""
        backup_path = file_path.with_name(f"{file_path.name}{BACKUP_MARKER}{self._timestamp()}")
        try:
            backup_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot create backup for {file_path}: {e}", str(file_path)) from e
        logger.info("Backup created: %s -> %s", file_path, backup_path)
        return backup_path

    def write(
        self,
        path: str,
        content: str,
        backup: bool = True,
        create_if_missing: bool = True,
    ) -> EditResult:
        """Write text to a file, creating parent directories as needed."""
        try:
            file_path = self.resolve(path)
            original = None
            backup_path = None

            if file_path.exists():
                if file_path.is_dir():
                    raise ValidationError(f"Path is a directory: {path}", str(path))
                original = file_path.read_text(encoding="utf-8", errors="replace")
                if backup:
                    backup_path = self.create_backup(file_path, original)
            elif not create_if_missing:
                raise ValidationError(f"File does not exist: {path}", str(path))

            file_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                file_path.write_text(content, encoding="utf-8")
            except OSError as e:
                raise PersistenceError(f"Cannot write {path}: {e}", str(path)) from e

        except FileOperationError as e:
            logger.error("Write failed for %s: %s", path, e.message)
            return EditResult.fail(e.message, str(path))
        except OSError as e:
            logger.error("Write failed for %s: %s", path, e)
            return EditResult.fail(str(e), str(path))

        verb = "updated" if original is not None else "created"
        logger.info("File %s: %s (%d bytes)", verb, file_path, len(content))
        return EditResult.ok(
            f"File {verb}: {path}",
            str(path),
            original_content=original,
            new_content=content,
            backup_path=str(backup_path) if backup_path else None,
        )

    def append(self, path: str, content: str, backup: bool = True) -> EditResult:
        """Append text to a file (created when missing)."""
        return self._edit(path, lambda old: old + content, backup, allow_missing=True)

    def delete(self, path: str, backup: bool = True) -> EditResult:
        """Remove a file, backing it up first."""
        try:
            file_path = self.resolve(path)
            if not file_path.exists():
                raise ValidationError(f"File does not exist: {path}", str(path))
            if file_path.is_dir():
                raise ValidationError(f"Path is a directory: {path}", str(path))

            original = file_path.read_text(encoding="utf-8", errors="replace")
            backup_path = self.create_backup(file_path, original) if backup else None
            try:
                file_path.unlink()
            except OSError as e:
                raise PersistenceError(f"Cannot delete {path}: {e}", str(path)) from e

        except FileOperationError as e:
            logger.error("Delete failed for %s: %s", path, e.message)
            return EditResult.fail(e.message, str(path))

        logger.info("File deleted: %s", file_path)
        return EditResult.ok(
            f"File deleted: {path}",
            str(path),
            original_content=original,
            backup_path=str(backup_path) if backup_path else None,
        )

    # -------------------------------------------------------------------------
    # Line-oriented edits
    # -------------------------------------------------------------------------

    def insert_at_line(self, path: str, line_number: int, content: str, backup: bool = True) -> EditResult:
        """Insert a line before ``line_number`` (1-based; n+1 appends)."""

        def transform(old: str) -> str:
            lines = old.split("\n")
            if line_number < 1 or line_number > len(lines) + 1:
                raise ValidationError(
                    f"Invalid line number: {line_number}. File has {len(lines)} lines.", str(path)
                )
            lines.insert(line_number - 1, content)
            return "\n".join(lines)

        return self._edit(path, transform, backup)

    def replace_line(self, path: str, line_number: int, content: str, backup: bool = True) -> EditResult:
        """Replace one line (1-based)."""

        def transform(old: str) -> str:
            lines = old.split("\n")
            if line_number < 1 or line_number > len(lines):
                raise ValidationError(
                    f"Invalid line number: {line_number}. File has {len(lines)} lines.", str(path)
                )
            lines[line_number - 1] = content
            return "\n".join(lines)

        return self._edit(path, transform, backup)

    def delete_line(self, path: str, line_number: int, backup: bool = True) -> EditResult:
        """Remove one line (1-based)."""

        def transform(old: str) -> str:
            lines = old.split("\n")
            if line_number < 1 or line_number > len(lines):
                raise ValidationError(
                    f"Invalid line number: {line_number}. File has {len(lines)} lines.", str(path)
                )
            del lines[line_number - 1]
            return "\n".join(lines)

        return self._edit(path, transform, backup)

    def find_and_replace(
        self,
        path: str,
        search: str,
        replace: str,
        replace_all: bool = True,
        backup: bool = True,
    ) -> EditResult:
        """Replace literal text; fails when ``search`` does not occur."""

        def transform(old: str) -> str:
            if not search or search not in old:
                raise ValidationError(f"Text not found in {path}: {search!r}", str(path))
            return old.replace(search, replace) if replace_all else old.replace(search, replace, 1)

        return self._edit(path, transform, backup)

    def _edit(
        self,
        path: str,
        transform: Callable[[str], str],
        backup: bool,
        allow_missing: bool = False,
    ) -> EditResult:
        """Read, transform and write back through ``write``."""
        try:
            try:
                old = self.read(path)
            except PersistenceError:
                if not allow_missing or self.get_info(path).exists:
                    raise
                old = ""
            new = transform(old)
        except FileOperationError as e:
            logger.error("Edit failed for %s: %s", path, e.message)
            return EditResult.fail(e.message, str(path))

        return self.write(path, new, backup=backup)
