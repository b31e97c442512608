"""
Single-read response buffering.

The classifier needs to look at a response body that the caller will also
read. Instead of teeing the live stream, the raw bytes are read once into
memory (generation responses are bounded) and every consumer gets its own
httpx.Response over those bytes.
"""

import asyncio
from typing import Optional

import httpx
import structlog

from fetch_retry.exceptions import StreamStalled

logger = structlog.get_logger(__name__)


class BufferedBody:
    """
    Raw (still content-encoded) bytes of a response plus its status line.

    Each call to ``response()`` returns a fresh httpx.Response whose stream
    starts at byte 0, so readers never interfere with each other.
    """

    def __init__(self, original: httpx.Response, raw: bytes, decoded: bool = False):
        self._status_code = original.status_code
        self._headers = original.headers.copy()
        if decoded:
            # Already decoded bytes must not be decoded a second time
            self._headers.pop("content-encoding", None)
            self._headers["content-length"] = str(len(raw))
        self._extensions = dict(original.extensions)
        self.raw = raw

    def response(self) -> httpx.Response:
        """A new, unread response over the buffered bytes."""
        return httpx.Response(
            status_code=self._status_code,
            headers=self._headers,
            stream=httpx.ByteStream(self.raw),
            extensions=self._extensions,
        )

    async def decoded(self) -> bytes:
        """Body with Content-Encoding removed, read through a private copy."""
        copy = self.response()
        return await copy.aread()

    @property
    def content_type(self) -> str:
        return self._headers.get("content-type", "")

    def __len__(self) -> int:
        return len(self.raw)


async def buffer_response(
    response: httpx.Response,
    inactivity_timeout: Optional[float] = None,
) -> BufferedBody:
    """
    Drain ``response`` into memory and close it.

    Responses that were already read (e.g. built from bytes) are wrapped
    without touching their stream.

    Args:
        response: Unread response returned by the network primitive
        inactivity_timeout: Seconds allowed between two chunks; None waits forever

    Returns:
        BufferedBody over the raw bytes

    Raises:
        StreamStalled: No chunk arrived within inactivity_timeout
    """
    try:
        content = response.content
    except httpx.ResponseNotRead:
        pass
    else:
        return BufferedBody(response, content, decoded=True)

    chunks: list[bytes] = []
    iterator = response.aiter_raw().__aiter__()

    try:
        while True:
            try:
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout=inactivity_timeout)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                received = sum(len(c) for c in chunks)
                logger.warning(
                    "Response stream stalled",
                    inactivity_timeout=inactivity_timeout,
                    bytes_received=received,
                )
                raise StreamStalled(
                    f"No data received for {inactivity_timeout}s",
                    details={"bytes_received": received},
                )
            chunks.append(chunk)
    finally:
        await response.aclose()

    return BufferedBody(response, b"".join(chunks))
