"""Resolve remote pipeline inputs into local files."""
import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlsplit

import httpx

from postprod.config import Settings, settings
from postprod.errors import FetchError, PipelineCancelledError
from postprod.workspace import WorkingSet

logger = logging.getLogger(__name__)

DEFAULT_SUFFIXES = {
    "video": ".mp4",
    "voiceover": ".mp3",
    "music": ".mp3",
}


@dataclass
class ResolvedMedia:
    """Local paths for a request's inputs."""
    video: Path
    voiceover: Optional[Path] = None
    music: Optional[Path] = None


def is_remote(ref: str) -> bool:
    """Check whether a reference carries a URL scheme (drive letters do not count)."""
    scheme = urlsplit(ref).scheme
    return len(scheme) > 1


def guess_suffix(url: str, kind: str) -> str:
    suffix = Path(urlsplit(url).path).suffix.lower()
    if re.fullmatch(r"\.[a-z0-9]{1,5}", suffix):
        return suffix
    return DEFAULT_SUFFIXES.get(kind, "")


class MediaFetcher:
    """
    Downloads remote inputs into a job's working set.

    Each reference is fetched at most once per job, even when requested
    concurrently (e.g. the same URL used for voiceover and music). Setting
    the cancel event aborts running downloads.
    """

    def __init__(
        self,
        working_set: WorkingSet,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.working_set = working_set
        self.config = config or settings
        self.cancel_event = cancel_event
        self._client = client
        self._fetches: Dict[str, asyncio.Task] = {}

    async def resolve(self, ref: Optional[str], kind: str = "video") -> Optional[Path]:
        """
        Resolve a reference into a local path.

        Args:
            ref: Local path or HTTP(S) URL; empty means "not supplied"
            kind: Input kind, used for naming and default file suffix

        Returns:
            Local path, or None for an empty reference

        Raises:
            FetchError: If the download fails
            PipelineCancelledError: If the cancel event is set during the download
        """
        if not ref:
            return None
        if not is_remote(ref):
            return Path(ref)

        task = self._fetches.get(ref)
        if task is None:
            task = asyncio.ensure_future(self._download(ref, kind))
            self._fetches[ref] = task
        # Shielded so one cancelled waiter does not abort a shared download
        return await asyncio.shield(task)

    async def resolve_request(self, request) -> ResolvedMedia:
        """Resolve video, voiceover and music concurrently."""
        if self._client is None:
            timeout = httpx.Timeout(self.config.download_timeout_seconds)
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                self._client = client
                try:
                    return await self._resolve_all(request)
                finally:
                    self._client = None
        return await self._resolve_all(request)

    async def _resolve_all(self, request) -> ResolvedMedia:
        tasks = [
            asyncio.ensure_future(self.resolve(request.input_video, "video")),
            asyncio.ensure_future(self.resolve(request.voiceover, "voiceover")),
            asyncio.ensure_future(self.resolve(request.music, "music")),
        ]
        try:
            video, voiceover, music = await asyncio.gather(*tasks)
        except BaseException:
            for task in [*tasks, *self._fetches.values()]:
                task.cancel()
            await asyncio.gather(*tasks, *self._fetches.values(), return_exceptions=True)
            raise
        return ResolvedMedia(video=video, voiceover=voiceover, music=music)

    async def _download(self, url: str, kind: str) -> Path:
        scheme = urlsplit(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise FetchError(url, f"unsupported scheme '{scheme}'")
        if self._client is None:
            raise RuntimeError("MediaFetcher has no HTTP client; use resolve_request()")
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelledError("Pipeline cancelled", stage="fetch")

        target = self.working_set.new_file(kind, guess_suffix(url, kind))
        logger.info(f"Downloading {kind} from {url}")

        transfer = asyncio.ensure_future(self._transfer(url, target))
        waiters = {transfer}
        cancel_wait = None
        if self.cancel_event is not None:
            cancel_wait = asyncio.ensure_future(self.cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._abort(transfer, target)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if transfer not in done:
            await self._abort(transfer, target)
            logger.info(f"Download of {kind} from {url} cancelled")
            raise PipelineCancelledError(f"Download of {url} cancelled", stage="fetch")

        transfer.result()
        logger.info(f"Downloaded {kind} to {target.name} ({target.stat().st_size} bytes)")
        return target

    async def _abort(self, transfer: asyncio.Future, target: Path) -> None:
        transfer.cancel()
        await asyncio.gather(transfer, return_exceptions=True)
        self.working_set.release(target)

    async def _transfer(self, url: str, target: Path) -> None:
        """Stream a response body into `target`; the partial file is removed on failure."""
        try:
            async with self._client.stream("GET", url) as response:
                if not response.is_success:
                    raise FetchError(url, f"HTTP {response.status_code}")
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes(self.config.download_chunk_size):
                        f.write(chunk)
        except FetchError:
            self.working_set.release(target)
            raise
        except httpx.HTTPError as e:
            self.working_set.release(target)
            raise FetchError(url, str(e) or type(e).__name__) from e
        except OSError as e:
            self.working_set.release(target)
            raise FetchError(url, f"could not write {target.name}: {e}") from e
        except asyncio.CancelledError:
            self.working_set.release(target)
            raise
