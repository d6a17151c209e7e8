"""
Stream relay: re-emits a provider event stream as canonical ChatResponse frames.

One pump task per stream reads the upstream body, parses event frames,
folds each usable fragment into a running ChatResponse and hands a snapshot
of it to the consumer through a one-slot queue. Frames leave in the order
they arrived and the pump never runs more than one frame ahead.

The upstream connection is closed exactly once however the stream ends,
including when the consumer stops iterating or another task calls
``aclose()``. Consumers blocked waiting for a frame are woken on close.
"""
import asyncio
import codecs
import contextlib
import logging
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Optional

import httpx

from .errors import GatewayError, MalformedStreamFrame, TransportError
from .sse import EventSourceParser, SSEEvent, encode_event
from .types import ChatResponse, StreamFragment, empty_response

if TYPE_CHECKING:
    from .providers.base import ChatProvider

logger = logging.getLogger(__name__)

_EOF = object()


class ChatStream:
    """
    Incremental stream of canonical chat responses.

    Iterate it for ChatResponse items, or use ``aiter_bytes()`` for
    ``data: <json>`` Server-Sent-Events frames. Each item carries the text
    received so far; the last one carries the final usage totals.

    Args:
        provider (ChatProvider): Supplies the frame parser and the
            accumulation rule.
        model (str): Model name reported in every response.
        chunks (AsyncIterator[bytes]): The live upstream body.
        close (Callable[[], Awaitable[None]]): Releases the upstream
            connection.
        max_pending (int): Frames the pump may produce ahead of the consumer.
    """

    def __init__(
        self,
        provider: "ChatProvider",
        model: str,
        chunks: AsyncIterator[bytes],
        close: Callable[[], Awaitable[None]],
        *,
        max_pending: int = 1,
    ):
        self.provider = provider
        self.model = model
        self.response: ChatResponse = empty_response(model)
        self.frames = 0
        self._chunks = chunks
        self._close_source = close
        self._queue: "asyncio.Queue[object]" = asyncio.Queue(maxsize=max_pending)
        self._pump_task: Optional[asyncio.Task] = None
        self._parser = EventSourceParser()
        self._finished = False
        self._source_closed = False

    # ==========================================================================
    # Consumer side
    # ==========================================================================

    async def __aiter__(self) -> AsyncIterator[ChatResponse]:
        # leaving the loop early releases upstream
        try:
            while True:
                try:
                    response = await self.receive()
                except StopAsyncIteration:
                    return
                yield response
        finally:
            await self.aclose()

    async def receive(self) -> ChatResponse:
        """
        Wait for the next response.

        Raises:
            StopAsyncIteration: Once the stream has ended or was closed.
            ProviderError: If the provider sent an error frame.
            TransportError: If the upstream connection failed.
        """
        if self._finished:
            raise StopAsyncIteration
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())

        try:
            item = await self._queue.get()
        except asyncio.CancelledError:
            await self.aclose()
            raise

        if item is _EOF or isinstance(item, BaseException):
            await self.aclose()
            if item is _EOF:
                raise StopAsyncIteration
            raise item
        return item

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield Server-Sent-Events frames, closing the stream when abandoned."""
        try:
            async for response in self:
                yield encode_event(response)
        finally:
            await self.aclose()

    async def collect(self) -> ChatResponse:
        """Drain the stream and return the final response."""
        async with self:
            async for _ in self:
                pass
        return dict(self.response)

    async def aclose(self) -> None:
        """
        Stop relaying and release the upstream connection.

        Safe to call from any task and more than once. Consumers waiting in
        ``receive()`` are woken and see the end of the stream.
        """
        self._finished = True
        task = self._pump_task
        if task is not None and not task.done():
            # once the pump is closing upstream itself, let it finish
            if not self._source_closed:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._release()
        self._wake_waiters()

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._source_closed

    def _wake_waiters(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_EOF)

    # ==========================================================================
    # Pump
    # ==========================================================================

    async def _pump(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            async for chunk in self._chunks:
                for event in self._parser.feed(decoder.decode(chunk)):
                    snapshot = self._advance(event)
                    if snapshot is not None:
                        await self._queue.put(snapshot)
            for event in self._parser.feed(decoder.decode(b"", final=True)):
                snapshot = self._advance(event)
                if snapshot is not None:
                    await self._queue.put(snapshot)
            await self._queue.put(_EOF)
        except httpx.HTTPError as e:
            logger.info(
                "%s stream for %s ended after %d frames: %s",
                self.provider.name, self.model, self.frames, e,
            )
            await self._queue.put(
                TransportError(f"Stream interrupted: {e}", provider=self.provider.name, model=self.model)
            )
        except GatewayError as e:
            await self._queue.put(e.add_context(self.provider.name, self.model))
        except Exception as e:
            # hand any other source failure to the consumer unchanged
            await self._queue.put(e)
        finally:
            await self._release()

    def _advance(self, event: SSEEvent) -> Optional[ChatResponse]:
        if event.type != "event":
            return None
        try:
            fragment = self.provider.parse_frame(event.data)
        except MalformedStreamFrame as e:
            logger.debug("Skipping %s frame: %s", self.provider.name, e.message)
            return None
        if fragment is None:
            return None

        self._apply(fragment)
        self.frames += 1
        return dict(self.response)

    def _apply(self, fragment: StreamFragment) -> None:
        content = fragment.get("content", "")
        if self.provider.cumulative_stream:
            self.response["content"] = content
        else:
            self.response["content"] += content

        if fragment.get("object"):
            self.response["object"] = fragment["object"]
        if fragment.get("model"):
            self.response["model"] = fragment["model"]

        usage = fragment.get("usage")
        if usage:
            self.response["prompt_tokens"] = usage["prompt_tokens"]
            self.response["completion_tokens"] = usage["completion_tokens"]
            self.response["total_tokens"] = usage["total_tokens"]

    async def _release(self) -> None:
        if self._source_closed:
            return
        self._source_closed = True
        self._parser.reset()
        await self._close_source()
