"""
Mutating host primitives with dry-run interception

Every command execution, backup, write and delete goes through SystemRunner.
When ``dry_run`` is set each primitive logs the fully resolved action and
returns a synthetic success without touching the host.
"""

import os
import shlex
import shutil
import logging
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, Sequence

from .exceptions import PrimitiveFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1800
PREVIEW_LENGTH = 60
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one external command."""
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    simulated: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Diagnostic output, stderr preferred"""
        return (self.stderr or self.stdout).strip()


def content_preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    """Single-line preview of a file body for log messages."""
    lines = content.splitlines()
    first = lines[0] if lines else ""
    if len(first) > limit:
        first = first[: limit - 3] + "..."
    extra = len(lines) - 1
    return f"{first!r} (+{extra} more lines)" if extra > 0 else repr(first)


class SystemRunner:
    """
    Gateway for all host mutations.

    Attributes:
        dry_run: When True, log intended actions instead of performing them
        timeout: Default command timeout in seconds
    """

    def __init__(
        self,
        dry_run: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
        clock: Callable[[], datetime] = datetime.now,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.dry_run = dry_run
        self.timeout = timeout
        self._clock = clock
        self._env = dict(env or {})

    # -- commands ---------------------------------------------------------

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """
        Execute an external command.

        Args:
            cmd: Command and arguments
            check: Raise PrimitiveFailure on non-zero exit; when False the
                failure is logged as a warning and returned
            timeout: Override the default timeout

        Returns:
            CommandResult (synthetic and successful in dry-run mode)

        Raises:
            PrimitiveFailure: If the command fails and check=True
        """
        args = tuple(str(part) for part in cmd)
        line = shlex.join(args)

        if self.dry_run:
            logger.info(f"[DRY-RUN] Would run: {line}")
            return CommandResult(args=args, returncode=0, simulated=True)

        logger.info(f"Running: {line}")
        env = {**os.environ, **self._env} if self._env else None
        limit = timeout or self.timeout

        try:
            proc = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
                env=env,
            )
            result = CommandResult(args, proc.returncode, proc.stdout or "", proc.stderr or "")
        except FileNotFoundError as e:
            result = CommandResult(args, 127, "", str(e))
        except subprocess.TimeoutExpired:
            result = CommandResult(args, 124, "", f"timed out after {limit} seconds")

        for output_line in result.stdout.splitlines():
            logger.debug(f"  | {output_line}")

        if result.ok:
            logger.info(f"[OK] Done: {line}")
        elif check:
            logger.error(f"[FAIL] {line} (exit {result.returncode})")
            if result.output:
                logger.error(result.output)
            raise PrimitiveFailure(line, result.output)
        else:
            logger.warning(f"[!] Ignoring failure of: {line} (exit {result.returncode})")

        return result

    def query(self, cmd: Sequence[str], timeout: int = 10) -> Optional[str]:
        """
        Run a read-only probe command and return its stdout.

        Probes do not change host state and therefore run in dry-run mode too.
        Returns None when the command is missing or exits non-zero.
        """
        args = [str(part) for part in cmd]
        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Probe {shlex.join(args)} unavailable: {e}")
            return None

        if proc.returncode != 0:
            logger.debug(f"Probe {shlex.join(args)} exited {proc.returncode}")
            return None
        return proc.stdout

    # -- files ------------------------------------------------------------

    @staticmethod
    def read_text(path: Path) -> Optional[str]:
        """Current content of a file, or None when absent/unreadable."""
        try:
            return Path(path).read_text()
        except (FileNotFoundError, IsADirectoryError):
            return None
        except OSError as e:
            logger.warning(f"[!] Cannot read {path}: {e}")
            return None

    def backup_path_for(self, path: Path) -> Path:
        """
        Timestamped backup name that never collides with an earlier backup.
        """
        stamp = self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        candidate = path.with_name(f"{path.name}.bak_{stamp}")
        counter = 1
        while candidate.exists() or candidate.is_symlink():
            candidate = path.with_name(f"{path.name}.bak_{stamp}_{counter}")
            counter += 1
        return candidate

    def backup(self, path: Path) -> Optional[Path]:
        """
        Copy an existing file to a timestamped sibling.

        Returns:
            Backup path, or None when there was nothing to back up (or dry-run)

        Raises:
            PrimitiveFailure: If the copy fails
        """
        path = Path(path)
        if not (path.exists() or path.is_symlink()):
            return None

        if self.dry_run:
            logger.info(f"[DRY-RUN] Would back up: {path}")
            return None

        target = self.backup_path_for(path)
        try:
            shutil.copy2(path, target, follow_symlinks=False)
        except OSError as e:
            raise PrimitiveFailure(f"backup {path}", str(e)) from e

        logger.info(f"Backup created: {target}")
        return target

    @contextmanager
    def _transaction(self, path: Path, backup: bool) -> Iterator[Optional[Path]]:
        """
        Snapshot ``path`` before the enclosed mutation.

        The snapshot is on disk before the body runs; if the body fails the
        snapshot is kept and the failure surfaces as PrimitiveFailure.
        """
        snapshot = self.backup(path) if backup else None
        try:
            yield snapshot
        except OSError as e:
            if snapshot is not None:
                logger.error(f"[FAIL] Mutation of {path} failed; previous content kept at {snapshot}")
            raise PrimitiveFailure(f"write {path}", str(e)) from e

    def write_file(self, path: Path, content: str, *, backup: bool = True) -> bool:
        """
        Back up then replace a file's content.

        Identical content is left alone, so repeated runs converge without
        piling up backups.

        Returns:
            True if the file was (or in dry-run would be) changed
        """
        path = Path(path)
        if not content.endswith("\n"):
            content += "\n"

        if self.read_text(path) == content:
            logger.info(f"[OK] Unchanged: {path}")
            return False

        if self.dry_run:
            if backup and path.exists():
                logger.info(f"[DRY-RUN] Would back up: {path}")
            logger.info(
                f"[DRY-RUN] Would write: {path} ({len(content)} bytes) {content_preview(content)}"
            )
            return True

        with self._transaction(path, backup):
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "w") as handle:
                    handle.write(content)
                    handle.flush()
                    os.fsync(handle.fileno())
                if path.exists():
                    shutil.copymode(path, tmp_name)
                else:
                    os.chmod(tmp_name, 0o644)
                os.replace(tmp_name, path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        logger.info(f"[OK] Wrote: {path}")
        return True

    def remove_file(self, path: Path, *, backup: bool = True) -> bool:
        """
        Back up then delete a file.

        Returns:
            True if the file existed and was (or in dry-run would be) removed
        """
        path = Path(path)
        if not (path.exists() or path.is_symlink()):
            logger.info(f"Not found: {path} (skip)")
            return False

        if self.dry_run:
            if backup:
                logger.info(f"[DRY-RUN] Would back up: {path}")
            logger.info(f"[DRY-RUN] Would remove: {path}")
            return True

        with self._transaction(path, backup):
            path.unlink()

        logger.info(f"[OK] Removed: {path}")
        return True
