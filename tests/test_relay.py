import asyncio
import contextlib
import json

import httpx
import pytest

from uniai.errors import ProviderError, TransportError
from uniai.providers.baidu import BaiduProvider
from uniai.providers.openai import OpenAIProvider
from uniai.relay import ChatStream

from conftest import FakeSource, baidu_frame, sse

USAGE = {"prompt_tokens": 7, "completion_tokens": 35, "total_tokens": 42}


def _baidu_stream(source):
    return ChatStream(BaiduProvider("ak", "sk"), "ernie-4.0", source.chunks(), source.close)


class SlowClosingSource(FakeSource):
    """Upstream whose close only completes once the test allows it."""

    def __init__(self, chunks):
        super().__init__(chunks)
        self.closing = asyncio.Event()
        self.may_finish = asyncio.Event()

    async def close(self):
        self.closing.set()
        await self.may_finish.wait()
        self.closed += 1


class TestCumulativeStream:

    @pytest.mark.asyncio
    async def test_snapshots_relayed_verbatim_with_final_usage(self):
        source = FakeSource([
            sse(baidu_frame("你")),
            sse(baidu_frame("你好")),
            sse(baidu_frame("你好，世界", usage=USAGE)),
        ])

        items = [item async for item in _baidu_stream(source)]

        assert [i["content"] for i in items] == ["你", "你好", "你好，世界"]
        assert [i["total_tokens"] for i in items] == [0, 0, 42]
        assert items[-1]["prompt_tokens"] == 7
        assert items[-1]["completion_tokens"] == 35
        assert all(i["model"] == "ernie-4.0" and i["object"] == "chat.completion" for i in items)
        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_malformed_frames_are_skipped(self):
        source = FakeSource([
            sse(baidu_frame("one")),
            b": keepalive\n\n",
            b"data: {not json\n\n",
            sse({"id": "as-x", "is_end": False}),
            sse(baidu_frame("one two", usage=USAGE)),
        ])
        stream = _baidu_stream(source)

        items = [item async for item in stream]

        assert [i["content"] for i in items] == ["one", "one two"]
        assert items[-1]["total_tokens"] == 42
        assert stream.frames == 2

    @pytest.mark.asyncio
    async def test_frames_split_across_chunks(self):
        body = sse(baidu_frame("héllo"), baidu_frame("héllo wörld", usage=USAGE))
        source = FakeSource([body[i:i + 5] for i in range(0, len(body), 5)])

        items = [item async for item in _baidu_stream(source)]

        assert [i["content"] for i in items] == ["héllo", "héllo wörld"]

    @pytest.mark.asyncio
    async def test_items_are_independent_snapshots(self):
        source = FakeSource([sse(baidu_frame("a"), baidu_frame("ab"))])
        items = [item async for item in _baidu_stream(source)]
        assert items[0]["content"] == "a"

    @pytest.mark.asyncio
    async def test_aiter_bytes_emits_sse_frames(self):
        source = FakeSource([sse(baidu_frame("x"), baidu_frame("xy", usage=USAGE))])

        frames = [frame async for frame in _baidu_stream(source).aiter_bytes()]

        assert all(f.startswith(b"data: ") and f.endswith(b"\n\n") for f in frames)
        decoded = [json.loads(f[len(b"data: "):]) for f in frames]
        assert decoded[-1] == {
            "content": "xy",
            "prompt_tokens": 7,
            "completion_tokens": 35,
            "total_tokens": 42,
            "model": "ernie-4.0",
            "object": "chat.completion",
        }

    @pytest.mark.asyncio
    async def test_collect_returns_final_response(self):
        source = FakeSource([sse(baidu_frame("a"), baidu_frame("ab", usage=USAGE))])
        final = await _baidu_stream(source).collect()
        assert final["content"] == "ab"
        assert final["total_tokens"] == 42
        assert source.closed == 1


class TestDeltaStream:

    @pytest.mark.asyncio
    async def test_deltas_are_appended(self):
        chunk = lambda text: {"object": "chat.completion.chunk", "model": "gpt-4o", "choices": [{"delta": {"content": text}}]}
        source = FakeSource([
            sse({"choices": [{"delta": {"role": "assistant"}}]}),
            sse(chunk("Hel"), chunk("lo")),
            sse({"object": "chat.completion.chunk", "choices": [], "usage": USAGE}),
            sse("[DONE]"),
        ])
        stream = ChatStream(OpenAIProvider("sk"), "gpt-4o", source.chunks(), source.close)

        items = [item async for item in stream]

        assert [i["content"] for i in items] == ["Hel", "Hello", "Hello"]
        assert items[-1]["total_tokens"] == 42


class TestStreamFailures:

    @pytest.mark.asyncio
    async def test_provider_error_frame_ends_stream(self):
        source = FakeSource([
            sse(baidu_frame("partial")),
            sse({"error_code": 336100, "error_msg": "system busy"}),
            sse(baidu_frame("never")),
        ])
        stream = _baidu_stream(source)

        first = await stream.receive()
        with pytest.raises(ProviderError, match="system busy") as err:
            await stream.receive()

        assert first["content"] == "partial"
        assert err.value.provider == "baidu"
        assert err.value.model == "ernie-4.0"
        assert source.closed == 1
        with pytest.raises(StopAsyncIteration):
            await stream.receive()

    @pytest.mark.asyncio
    async def test_transport_error_after_partial_output(self):
        source = FakeSource([sse(baidu_frame("partial"))], error=httpx.ReadError("connection reset"))
        received = []

        with pytest.raises(TransportError, match="connection reset"):
            async for item in _baidu_stream(source):
                received.append(item["content"])

        assert received == ["partial"]
        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_other_source_errors_propagate(self):
        source = FakeSource([], error=RuntimeError("boom"))
        with pytest.raises(RuntimeError, match="boom"):
            await _baidu_stream(source).collect()
        assert source.closed == 1


class TestStreamCancellation:

    @pytest.mark.asyncio
    async def test_aclose_releases_upstream(self):
        source = FakeSource([sse(baidu_frame("a"))], hang=True)
        stream = _baidu_stream(source)

        assert (await stream.receive())["content"] == "a"
        await stream.aclose()

        assert source.closed == 1
        assert stream.closed
        with pytest.raises(StopAsyncIteration):
            await stream.receive()

    @pytest.mark.asyncio
    async def test_aclose_before_iteration(self):
        source = FakeSource([sse(baidu_frame("a"))])
        stream = _baidu_stream(source)
        await stream.aclose()
        await stream.aclose()
        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_cancelled_consumer_closes_upstream(self):
        source = FakeSource([sse(baidu_frame("a"))], hang=True)
        stream = _baidu_stream(source)
        first_frame = asyncio.Event()

        async def consume():
            async for _ in stream:
                first_frame.set()

        task = asyncio.create_task(consume())
        await first_frame.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_abandoned_byte_stream_closes_upstream(self):
        source = FakeSource([sse(baidu_frame("a"), baidu_frame("ab"))], hang=True)
        frames = _baidu_stream(source).aiter_bytes()

        await frames.__anext__()
        await frames.aclose()

        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_aclose_from_another_task_wakes_consumer(self):
        source = FakeSource([sse(baidu_frame("a"))], hang=True)
        stream = _baidu_stream(source)
        received = []
        first_frame = asyncio.Event()

        async def consume():
            async for item in stream:
                received.append(item["content"])
                first_frame.set()

        consumer = asyncio.create_task(consume())
        await first_frame.wait()
        await asyncio.sleep(0)
        await stream.aclose()

        await asyncio.wait_for(consumer, timeout=1.0)
        assert received == ["a"]
        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_aclose_wakes_pending_receive(self):
        source = FakeSource([sse(baidu_frame("a"))], hang=True)
        stream = _baidu_stream(source)
        await stream.receive()

        waiting = asyncio.create_task(stream.receive())
        await asyncio.sleep(0)
        await stream.aclose()

        done, _ = await asyncio.wait({waiting}, timeout=1.0)
        assert waiting in done
        assert isinstance(waiting.exception(), StopAsyncIteration)
        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_break_with_aclosing_closes_upstream(self):
        source = FakeSource([sse(baidu_frame("a"), baidu_frame("ab"))], hang=True)
        stream = _baidu_stream(source)

        async with contextlib.aclosing(aiter(stream)) as items:
            async for _ in items:
                break

        assert source.closed == 1
        assert stream.closed

    @pytest.mark.asyncio
    async def test_abandoned_loop_closes_upstream(self):
        source = FakeSource([sse(baidu_frame("a"), baidu_frame("ab"))], hang=True)
        stream = _baidu_stream(source)

        async for _ in stream:
            break
        for _ in range(100):
            if source.closed:
                break
            await asyncio.sleep(0.01)

        assert source.closed == 1

    @pytest.mark.asyncio
    async def test_aclose_lets_pending_upstream_close_finish(self):
        source = SlowClosingSource([sse(baidu_frame("a"))])
        stream = _baidu_stream(source)

        await stream.receive()
        await source.closing.wait()
        closer = asyncio.create_task(stream.aclose())
        await asyncio.sleep(0)
        source.may_finish.set()
        await asyncio.wait_for(closer, timeout=1.0)

        assert source.closed == 1
        with pytest.raises(StopAsyncIteration):
            await stream.receive()
