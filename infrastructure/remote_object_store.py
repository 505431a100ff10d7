"""
Client for the remote object store tier.

Transfers run as background tasks and expose their progress as an async
stream plus a final TransferOutcome, so callers decide when to wait and
other backends keep running in the meantime.
"""
import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx

from application.dtos import TransferOutcome, TransferProgress
from domain.hash_constants import BLOCK_SIZE

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TransferProgress], None]

_DONE = object()


class Transfer:
    """A running upload or download: progress stream plus final outcome."""

    def __init__(self, operation: Callable[[ProgressCallback], Awaitable[TransferOutcome]]):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task = asyncio.ensure_future(operation(self._queue.put_nowait))
        self._task.add_done_callback(lambda _: self._queue.put_nowait(_DONE))

    def __aiter__(self) -> AsyncIterator[TransferProgress]:
        return self.progress()

    async def progress(self) -> AsyncIterator[TransferProgress]:
        """Yield progress updates until the transfer ends. Single consumer."""
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            yield item

    async def outcome(self) -> TransferOutcome:
        """Wait for the transfer. Raises CancelledError if it was cancelled."""
        return await self._task

    def cancel(self) -> None:
        self._task.cancel()


class RemoteObjectStore:
    """Object store API: ``upload(local_path, bucket, key)`` / ``download(bucket, key, local_path)``."""

    def __init__(
        self,
        endpoint_url: str,
        api_key: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.endpoint_url = endpoint_url.rstrip("/")
        self.api_key = api_key
        self.transport = transport
        # None disables httpx's default 5s timeouts
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.endpoint_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self.transport,
            timeout=self.timeout,
        )

    @staticmethod
    def object_url(bucket: str, key: str) -> str:
        return f"/objects/{quote(bucket, safe='')}/{quote(key, safe='/')}"

    def download(self, bucket: str, key: str, local_path: Path) -> Transfer:
        return Transfer(lambda emit: self._download(bucket, key, Path(local_path), emit))

    def upload(self, local_path: Path, bucket: str, key: str) -> Transfer:
        return Transfer(lambda emit: self._upload(Path(local_path), bucket, key, emit))

    async def _download(self, bucket: str, key: str, local_path: Path, emit: ProgressCallback) -> TransferOutcome:
        try:
            async with self._client() as client:
                async with client.stream("GET", self.object_url(bucket, key)) as response:
                    if response.status_code != 200:
                        await response.aread()
                        return TransferOutcome.failed(
                            response.status_code, _error_detail(response)
                        )

                    total = int(response.headers.get("content-length", 0))
                    transferred = 0
                    local_path.parent.mkdir(parents=True, exist_ok=True)
                    with open(local_path, "wb") as f:
                        async for chunk in response.aiter_raw(BLOCK_SIZE):
                            f.write(chunk)
                            transferred += len(chunk)
                            emit(TransferProgress(transferred, max(total, transferred)))
                    return TransferOutcome.succeeded(response.status_code)
        except (httpx.HTTPError, OSError) as e:
            logger.debug("download of %s/%s failed: %s", bucket, key, e)
            return TransferOutcome.failed(None, f"{type(e).__name__}: {e}")

    async def _upload(self, local_path: Path, bucket: str, key: str, emit: ProgressCallback) -> TransferOutcome:
        try:
            total = local_path.stat().st_size

            async def body():
                sent = 0
                with open(local_path, "rb") as f:
                    while chunk := f.read(BLOCK_SIZE):
                        sent += len(chunk)
                        emit(TransferProgress(sent, total))
                        yield chunk

            async with self._client() as client:
                response = await client.put(
                    self.object_url(bucket, key),
                    content=body(),
                    headers={"Content-Length": str(total)},
                )
            if response.status_code not in (200, 201):
                return TransferOutcome.failed(response.status_code, _error_detail(response))
            return TransferOutcome.succeeded(response.status_code)
        except (httpx.HTTPError, OSError) as e:
            logger.debug("upload of %s/%s failed: %s", bucket, key, e)
            return TransferOutcome.failed(None, f"{type(e).__name__}: {e}")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    detail = data.get("detail") if isinstance(data, dict) else None
    if not detail:
        detail = response.text or response.reason_phrase
    return f"{response.status_code} {detail}"
