"""Git wrapper for vault backups.

Provides subprocess-based git operations and the single backup pass the
scheduler drives. Git is optional: its absence is reported as
"unavailable", never as a failure of the vault itself.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from pkm_vault.exceptions import BackupError, ErrorCode
from pkm_vault.models.schema import utc_now

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., subprocess.CompletedProcess]

_NOTHING_TO_COMMIT = ("nothing to commit", "nothing added to commit")


class GitError(BackupError):
    """Base exception for git operations.

    Attributes:
        message: Human-readable error message
        command: The git command that failed (if applicable)
        returncode: Exit code from git (if applicable)
        stderr: Error output from git (if applicable)
    """

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
        code: ErrorCode = ErrorCode.BACKUP_COMMAND_FAILED,
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, code=code)

    def __str__(self) -> str:
        parts = [self.message]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.returncode is not None:
            parts.append(f"returncode: {self.returncode}")
        if self.stderr:
            parts.append(f"stderr: {self.stderr[:200]}")
        return " | ".join(parts)


class GitUnavailableError(GitError):
    """Raised when the git executable cannot be found."""

    def __init__(self, command: Optional[List[str]] = None):
        super().__init__(
            "Git is not installed or not in PATH",
            command=command,
            code=ErrorCode.BACKUP_UNAVAILABLE,
        )


@dataclass
class BackupOutcome:
    """Result of one backup pass.

    Attributes:
        available: Whether the git executable could be run.
        repo_ready: Whether the vault is a git repository after the pass.
        dirty: Whether the working tree had changes when checked.
        committed: Whether this pass created a commit.
        commit_hash: Short hash of the new commit, if one was made.
        error: Failure description, None on success.
        ran_at: When the pass started (UTC).
    """

    available: bool
    ran_at: datetime
    repo_ready: bool = False
    dirty: bool = False
    committed: bool = False
    commit_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.available and self.error is None


class GitWrapper:
    """Wrapper for git operations on the vault via subprocess.

    The repo path is passed to git via the ``-C`` flag for all repository
    commands. ``runner`` defaults to ``subprocess.run`` and exists so tests
    can substitute a fake.
    """

    def __init__(
        self,
        repo_path: Path,
        git_binary: str = "git",
        timeout: float = 60.0,
        runner: Optional[CommandRunner] = None,
    ):
        self.repo_path = repo_path
        self.git_binary = git_binary
        self.timeout = timeout
        self._runner = runner or subprocess.run

    def _run_git(
        self,
        args: List[str],
        check: bool = True,
        in_repo: bool = True,
        retries: int = 3,
        retry_delay: float = 0.1,
    ) -> subprocess.CompletedProcess:
        """Run a git command with retry for index.lock contention.

        Args:
            args: Git command arguments (without 'git' prefix)
            check: If True, raise GitError on non-zero exit
            in_repo: If True, run against the vault via ``-C``
            retries: Number of retries for index.lock contention
            retry_delay: Base delay between retries (multiplied by attempt)

        Raises:
            GitUnavailableError: If the git executable is missing
            GitError: On timeout, or if check=True and the command fails
        """
        cmd = [self.git_binary]
        if in_repo:
            cmd += ["-C", str(self.repo_path)]
        cmd += args
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}

        for attempt in range(retries + 1):
            try:
                result = self._runner(
                    cmd,
                    check=False,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    env=env,
                )
            except subprocess.TimeoutExpired as e:
                raise GitError(
                    f"Git command timed out after {self.timeout}s: {' '.join(args)}",
                    command=cmd,
                ) from e
            except FileNotFoundError as e:
                raise GitUnavailableError(command=cmd) from e

            if result.returncode != 0 and result.stderr:
                if "index.lock" in result.stderr and attempt < retries:
                    logger.debug(
                        f"Git index.lock contention, retry {attempt + 1}/{retries}: {args}"
                    )
                    time.sleep(retry_delay * (attempt + 1))
                    continue

            if check and result.returncode != 0:
                raise GitError(
                    f"Git command failed: {' '.join(args)}",
                    command=cmd,
                    returncode=result.returncode,
                    stderr=result.stderr.strip() if result.stderr else None,
                )
            return result

        raise GitError(f"Git command failed after {retries} retries: {args}", command=cmd)

    def is_available(self) -> bool:
        """Whether the git executable can be run at all."""
        try:
            result = self._run_git(["--version"], check=False, in_repo=False, retries=0)
        except GitError as e:
            logger.debug(f"Git unavailable: {e}")
            return False
        return result.returncode == 0

    def is_repo(self) -> bool:
        """Whether the vault already holds a repository."""
        return (self.repo_path / ".git").exists()

    def ensure_repo(self) -> bool:
        """Initialize a repository at the vault root if there is none.

        Returns True if a repository was created.
        """
        if self.is_repo():
            return False
        logger.info(f"Initializing git repository at {self.repo_path}")
        self.repo_path.mkdir(parents=True, exist_ok=True)
        self._run_git(["init"])
        return True

    def ensure_identity(self, name: str, email: str) -> None:
        """Set a local author identity only where none is configured.

        Existing user configuration (global or local) is left untouched.
        """
        for key, value in (("user.name", name), ("user.email", email)):
            current = self._run_git(["config", "--get", key], check=False)
            if current.returncode != 0 or not current.stdout.strip():
                self._run_git(["config", key, value])

    def has_changes(self) -> bool:
        """Whether the working tree differs from HEAD (including untracked)."""
        status = self._run_git(["status", "--porcelain"])
        return bool(status.stdout.strip())

    def stage_all(self) -> None:
        self._run_git(["add", "-A"])

    def commit(self, message: str) -> bool:
        """Commit staged changes.

        Returns False when there turned out to be nothing to commit.
        """
        result = self._run_git(["commit", "-m", message], check=False)
        if result.returncode == 0:
            return True
        output = f"{result.stdout or ''}\n{result.stderr or ''}".lower()
        if any(marker in output for marker in _NOTHING_TO_COMMIT):
            return False
        raise GitError(
            "Git commit failed",
            command=["commit", "-m", message],
            returncode=result.returncode,
            stderr=(result.stderr or result.stdout or "").strip() or None,
        )

    def head_short_hash(self) -> Optional[str]:
        """Short hash of HEAD, or None if there are no commits."""
        result = self._run_git(["rev-parse", "--short", "HEAD"], check=False)
        if result.returncode != 0 or not result.stdout.strip():
            return None
        return result.stdout.strip()


class GitBackupRunner:
    """Performs one backup pass: init if needed, then commit all changes.

    Never raises; every failure is returned in the outcome.
    """

    def __init__(self, git: GitWrapper, author_name: str, author_email: str):
        self.git = git
        self.author_name = author_name
        self.author_email = author_email

    @staticmethod
    def commit_message(reason: str, when: datetime) -> str:
        return f"Vault backup ({reason}) {when.isoformat(timespec='seconds')}"

    def run(self, reason: str) -> BackupOutcome:
        ran_at = utc_now()
        if not self.git.is_available():
            logger.info("Git not available, skipping vault backup")
            return BackupOutcome(available=False, ran_at=ran_at)

        dirty = False
        try:
            self.git.ensure_repo()
            self.git.ensure_identity(self.author_name, self.author_email)
            dirty = self.git.has_changes()
            if not dirty:
                logger.debug("Vault working tree clean, nothing to back up")
                return BackupOutcome(available=True, repo_ready=True, ran_at=ran_at)

            self.git.stage_all()
            committed = self.git.commit(self.commit_message(reason, ran_at))
            commit_hash = self.git.head_short_hash() if committed else None
            if committed:
                logger.info(f"Vault backup committed {commit_hash} ({reason})")
            return BackupOutcome(
                available=True,
                repo_ready=True,
                dirty=False,
                committed=committed,
                commit_hash=commit_hash,
                ran_at=ran_at,
            )
        except GitError as e:
            logger.warning(f"Vault backup failed ({reason}): {e}")
            return BackupOutcome(
                available=not isinstance(e, GitUnavailableError),
                repo_ready=self.git.is_repo(),
                dirty=dirty,
                error=str(e),
                ran_at=ran_at,
            )
