"""
Bookmark source backed by the bird CLI (https://github.com/steipete/bird)
"""
import asyncio
import json
import logging
import os
import signal
from typing import List, Optional, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError

from ingestion.base import Bookmark, BookmarkSource, FetchError, FetchTimeout, XCredentials, newer_than

logger = logging.getLogger(__name__)

_BOOKMARK_LIST = TypeAdapter(List[Bookmark])

# Process groups only exist on POSIX; elsewhere we fall back to killing the child.
_USE_PROCESS_GROUP = os.name != "nt"


class BirdCliSource(BookmarkSource):
    """
    Runs `bird bookmarks` / `bird read` as subprocesses and parses their JSON.

    Each `bird read` is resource-heavy, so callers are expected to issue
    lookups one at a time.
    """

    def __init__(
        self,
        binary: str = "bird",
        *,
        lookup_timeout: float = 15.0,
        list_timeout: Optional[float] = 120.0,
        credentials: Optional[XCredentials] = None,
    ):
        self.binary = binary
        self.lookup_timeout = lookup_timeout
        self.list_timeout = list_timeout
        self.credentials = credentials

    def _resolve_credentials(self, credentials: Optional[XCredentials]) -> XCredentials:
        creds = credentials or self.credentials
        if creds is None or not creds.auth_token or not creds.ct0:
            raise FetchError(
                "Missing X authentication tokens. Set AUTH_TOKEN and CT0 in .env or provide them explicitly."
            )
        return creds

    async def _run(
        self,
        args: Sequence[str],
        credentials: XCredentials,
        timeout: Optional[float],
    ) -> Tuple[int, str, str]:
        env = {**os.environ, "AUTH_TOKEN": credentials.auth_token, "CT0": credentials.ct0}

        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                start_new_session=_USE_PROCESS_GROUP,
            )
        except OSError as e:
            raise FetchError(f"Failed to spawn bird CLI: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            raise FetchTimeout(f"bird {' '.join(args)} timed out after {timeout:g}s")

        return proc.returncode, stdout.decode("utf-8", errors="replace"), stderr.decode("utf-8", errors="replace")

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Kill the whole process group so grandchildren release their pipes."""
        if _USE_PROCESS_GROUP:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except PermissionError as e:
                logger.warning(f"Failed to kill process group {proc.pid}: {e}")
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()

    async def fetch_latest(
        self,
        count: int,
        credentials: Optional[XCredentials] = None,
        since_id: Optional[str] = None,
    ) -> List[Bookmark]:
        creds = self._resolve_credentials(credentials)
        code, stdout, stderr = await self._run(
            ["bookmarks", "-n", str(count), "--json"], creds, self.list_timeout
        )

        if code != 0:
            raise FetchError(f"Bird CLI failed (exit code {code}): {stderr.strip()}")

        try:
            raw = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise FetchError(f"Failed to parse Bird CLI output: {e}") from e

        if not isinstance(raw, list):
            raise FetchError("Bird CLI output is not an array")

        try:
            bookmarks = _BOOKMARK_LIST.validate_python(raw)
        except ValidationError as e:
            raise FetchError(f"Unexpected Bird CLI bookmark shape: {e}") from e

        # bird has no --since-id flag, so filter here.
        bookmarks = newer_than(bookmarks, since_id)

        logger.info(f"Fetched {len(bookmarks)} bookmarks (requested {count})")
        return bookmarks

    async def fetch_by_id(
        self,
        bookmark_id: str,
        credentials: Optional[XCredentials] = None,
    ) -> Bookmark:
        creds = self._resolve_credentials(credentials)
        code, stdout, stderr = await self._run(
            ["read", bookmark_id, "--json"], creds, self.lookup_timeout
        )

        if code != 0:
            raise FetchError(f"Bird CLI failed to fetch tweet {bookmark_id}: {stderr.strip()}")

        try:
            return Bookmark.model_validate_json(stdout)
        except ValidationError as e:
            raise FetchError(f"Failed to parse bird CLI output: {e}") from e

    async def validate_tokens(self, credentials: XCredentials) -> None:
        """Check that the tokens work by running `bird whoami`."""
        code, _, stderr = await self._run(["whoami"], credentials, self.lookup_timeout)
        if code != 0:
            raise FetchError(f"Bird validation failed: {stderr.strip()}")
