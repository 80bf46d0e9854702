"""File and git access to the Logseq graph worktree."""

import asyncio
import os
import shlex
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence

import aiofiles
import aiofiles.os
from loguru import logger

from knowledge_garden.services.exceptions import (
    GitOperationError,
    PageNotFoundError,
    ValidationError,
)
from knowledge_garden.utils import format_timestamp, utc_now

PAGE_SUFFIX = ".md"


@dataclass(frozen=True)
class PageFile:
    page_path: str
    modified_at: datetime


def _mtime(stat_result: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)


class GitWorktree:
    """The Logseq root directory, optionally a git checkout.

    Page paths are POSIX paths relative to root. Git commands run as
    subprocesses; when root is not a repository every git step is a no-op.
    """

    def __init__(
        self,
        root: Path,
        exclude_prefixes: Sequence[str] = (),
        repo_url: Optional[str] = None,
        ssh_key_path: Optional[Path] = None,
    ):
        self.root = Path(root).expanduser()
        self.exclude_prefixes = tuple(exclude_prefixes)
        self.repo_url = repo_url
        self.ssh_key_path = ssh_key_path

    @property
    def is_repository(self) -> bool:
        return (self.root / ".git").exists()

    def resolve(self, page_path: str) -> Path:
        path = (self.root / page_path).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValidationError(
                f"Page path escapes the Logseq root: {page_path}", field="page_path"
            )
        return path

    def is_excluded(self, page_path: str) -> bool:
        return any(page_path.startswith(prefix) for prefix in self.exclude_prefixes)

    # --- files ---

    async def list_pages(self) -> List[PageFile]:
        """Every .md file under root outside the excluded prefixes, sorted by path."""
        if not await aiofiles.os.path.isdir(self.root):
            raise FileNotFoundError(f"Logseq root is not a directory: {self.root}")
        pages = [
            PageFile(page_path=page_path, modified_at=_mtime(stat_result))
            async for page_path, stat_result in self._scan(self.root)
            if page_path.endswith(PAGE_SUFFIX)
        ]
        return sorted(pages, key=lambda page: page.page_path)

    async def _scan(self, directory: Path) -> AsyncIterator[tuple[str, os.stat_result]]:
        try:
            entries = await aiofiles.os.scandir(directory)
        except PermissionError:
            logger.warning(f"Permission denied scanning directory: {directory}")
            return

        subdirs = []
        for entry in entries:
            relative = Path(entry.path).relative_to(self.root).as_posix()
            if entry.is_dir(follow_symlinks=False):
                if not self.is_excluded(relative + "/"):
                    subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False) and not self.is_excluded(relative):
                yield relative, entry.stat(follow_symlinks=False)

        for subdir in subdirs:
            async for result in self._scan(subdir):
                yield result

    async def read_page(self, page_path: str) -> tuple[str, datetime]:
        path = self.resolve(page_path)
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8", newline="") as f:
                text = await f.read()
            stat_result = await aiofiles.os.stat(path)
        except FileNotFoundError as e:
            raise PageNotFoundError(f"Page not found: {page_path}", field="page_path") from e
        except UnicodeDecodeError as e:
            raise ValidationError(f"Page is not valid UTF-8: {page_path}", field="page_path") from e
        return text, _mtime(stat_result)

    async def write_page(self, page_path: str, text: str) -> datetime:
        """Write text atomically and return the new modification time."""
        path = self.resolve(page_path)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.tmp")
        async with aiofiles.open(temp_path, mode="w", encoding="utf-8", newline="") as f:
            await f.write(text)
        await aiofiles.os.replace(temp_path, path)
        stat_result = await aiofiles.os.stat(path)
        logger.debug(f"Wrote page: page_path={page_path} bytes={len(text.encode('utf-8'))}")
        return _mtime(stat_result)

    # --- git ---

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.ssh_key_path:
            key = shlex.quote(str(Path(self.ssh_key_path).expanduser()))
            env["GIT_SSH_COMMAND"] = (
                f"ssh -i {key} -o IdentitiesOnly=yes -o StrictHostKeyChecking=accept-new"
            )
        return env

    async def _git(self, *args: str, cwd: Optional[Path] = None) -> str:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd or self.root),
            env=self._environment(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = (stderr or stdout).decode(errors="replace").strip()
            logger.error(f"git {args[0]} failed: exit_code={process.returncode} error={message}")
            raise GitOperationError(f"git {args[0]} failed: {message}")
        return stdout.decode(errors="replace")

    async def ensure_checkout(self) -> bool:
        """Clone repo_url into an empty root. Returns True when a clone happened."""
        if not self.repo_url or self.is_repository:
            return False
        if self.root.exists() and any(self.root.iterdir()):
            logger.warning(f"Logseq root is not empty, skipping clone: {self.root}")
            return False
        self.root.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning Logseq graph: url={self.repo_url} root={self.root}")
        await self._git("clone", self.repo_url, str(self.root), cwd=self.root.parent)
        return True

    async def pull(self) -> bool:
        if not self.is_repository:
            logger.debug(f"Logseq root is not a git repository, skipping pull: {self.root}")
            return False
        await self._git("pull", "--ff-only")
        return True

    async def head(self) -> Optional[str]:
        if not self.is_repository:
            return None
        return (await self._git("rev-parse", "HEAD")).strip()

    async def changed_pages(self, since_ref: str) -> List[str]:
        """Page paths touched between since_ref and the working tree."""
        if not self.is_repository:
            return []
        output = await self._git("diff", "--name-only", since_ref, "--", f"*{PAGE_SUFFIX}")
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def commit_and_push(self, push: bool = True) -> bool:
        """Commit every change in the worktree and optionally push.

        Returns False when there was nothing to commit or root is not a repository.
        """
        if not self.is_repository:
            logger.debug(f"Logseq root is not a git repository, skipping commit: {self.root}")
            return False
        status = await self._git("status", "--porcelain")
        if not status.strip():
            return False
        await self._git("add", ".")
        await self._git("commit", "-m", f"Sync with system at {format_timestamp(utc_now())}")
        if push:
            await self._git("push")
        logger.info(f"Committed Logseq changes: files={len(status.splitlines())} pushed={push}")
        return True
