# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json

import pytest
from websockets.asyncio.server import serve

from adapters.corti.errors import ProviderConnectError, ProviderSendError
from adapters.corti.streaming import CortiStreamAdapter
from relay.events import (
    ConfigAccepted,
    ProviderClosed,
    ProviderEnded,
    TranscriptReceived,
)


CONFIGURATION = {"transcription": {"primaryLanguage": "en"}, "mode": {"type": "facts"}}


class Recorder:
    """emit_event sink; remembers every event the adapter emits."""

    def __init__(self) -> None:
        self.events = []
        self.closed = asyncio.Event()

    async def __call__(self, event) -> None:
        self.events.append(event)
        if isinstance(event, ProviderClosed):
            self.closed.set()


def _url(server) -> str:
    port = server.sockets[0].getsockname()[1]
    return f"ws://127.0.0.1:{port}"


async def _open(server, recorder: Recorder) -> CortiStreamAdapter:
    adapter = CortiStreamAdapter(
        url=_url(server),
        configuration=CONFIGURATION,
        emit_event=recorder,
        session_id="sess_test",
    )
    await adapter.connect()
    adapter.start_receiving()
    return adapter


# ---------------------------------------------------------------------------
# Configuration and receive order
# ---------------------------------------------------------------------------

def test_config_is_sent_first_and_events_arrive_in_order(captured_logs):
    received = []

    async def handler(ws):
        received.append(await ws.recv())
        await ws.send(json.dumps({"type": "CONFIG_ACCEPTED"}))
        await ws.send(b"\x00\x01\x02")
        await ws.send("not json")
        await ws.send("[1, 2, 3]")
        await ws.send(json.dumps({"type": "mystery"}))
        await ws.send(json.dumps({"type": "transcript", "data": [{"id": "odd", "time": 5}]}))
        await ws.send(json.dumps({
            "type": "transcript",
            "data": [{
                "id": "s1",
                "transcript": "Hello there",
                "final": True,
                "time": {"start": 0.5, "end": 1.5},
            }],
        }))
        await ws.send(json.dumps({"type": "ENDED"}))
        await ws.close()

    async def main():
        recorder = Recorder()
        async with serve(handler, "127.0.0.1", 0) as server:
            adapter = await _open(server, recorder)
            await asyncio.wait_for(recorder.closed.wait(), timeout=5)
            await adapter.close()
        return recorder.events

    events = asyncio.run(main())

    assert json.loads(received[0]) == {"type": "config", "configuration": CONFIGURATION}

    assert [type(e) for e in events] == [
        ConfigAccepted,
        TranscriptReceived,
        TranscriptReceived,
        ProviderEnded,
        ProviderClosed,
    ]
    odd, valid = events[1].segments[0], events[2].segments[0]
    assert odd.start is None and odd.id == "odd-#0"
    assert valid.text == "Hello there" and valid.is_final

    closed = events[-1]
    assert not closed.failed
    assert closed.reason is None

    logged = [json.loads(line)["event_type"] for line in captured_logs]
    assert "PROVIDER_BINARY_FRAME_SKIPPED" in logged
    assert "PROVIDER_FRAME_DECODE_ERROR" in logged
    assert "PROVIDER_FRAME_NOT_OBJECT" in logged
    assert "PROVIDER_MESSAGE_UNHANDLED" in logged


# ---------------------------------------------------------------------------
# Connection loss
# ---------------------------------------------------------------------------

async def _close_with_error(ws):
    await ws.close(1011, "internal error")


async def _drop_transport(ws):
    ws.transport.abort()


@pytest.mark.parametrize("hang_up", [_close_with_error, _drop_transport])
def test_lost_connection_is_reported_as_failure(hang_up):
    async def handler(ws):
        await ws.recv()
        await ws.send(json.dumps({"type": "CONFIG_ACCEPTED"}))
        await hang_up(ws)

    async def main():
        recorder = Recorder()
        async with serve(handler, "127.0.0.1", 0) as server:
            adapter = await _open(server, recorder)
            await asyncio.wait_for(recorder.closed.wait(), timeout=5)
            await adapter.close()
        return recorder.events

    events = asyncio.run(main())

    assert isinstance(events[0], ConfigAccepted)
    closed = events[-1]
    assert isinstance(closed, ProviderClosed)
    assert closed.failed
    assert closed.reason


def test_clean_close_carries_provider_reason():
    async def handler(ws):
        await ws.recv()
        await ws.close(1000, "interaction ended")

    async def main():
        recorder = Recorder()
        async with serve(handler, "127.0.0.1", 0) as server:
            adapter = await _open(server, recorder)
            await asyncio.wait_for(recorder.closed.wait(), timeout=5)
            await adapter.close()
        return recorder.events

    (closed,) = asyncio.run(main())
    assert isinstance(closed, ProviderClosed)
    assert not closed.failed
    assert closed.reason == "interaction ended"


# ---------------------------------------------------------------------------
# Outbound and close
# ---------------------------------------------------------------------------

def test_outbound_frames_reach_the_provider():
    received = []

    async def handler(ws):
        async for message in ws:
            received.append(message)

    async def main():
        recorder = Recorder()
        async with serve(handler, "127.0.0.1", 0) as server:
            adapter = await _open(server, recorder)
            await adapter.send_audio(b"\x01\x02")
            await adapter.send_flush()
            await adapter.send_end()
            await adapter.close()
        return recorder.events

    events = asyncio.run(main())

    assert json.loads(received[0])["type"] == "config"
    assert received[1:] == [b"\x01\x02", '{"type": "flush"}', '{"type": "end"}']
    assert events == []


def test_close_is_idempotent_and_not_reported_back():
    async def handler(ws):
        await ws.wait_closed()

    async def main():
        recorder = Recorder()
        async with serve(handler, "127.0.0.1", 0) as server:
            adapter = await _open(server, recorder)
            await adapter.close()
            await adapter.close()
            await asyncio.sleep(0.05)

            with pytest.raises(ProviderSendError):
                await adapter.send_audio(b"\x01")
            with pytest.raises(ProviderSendError):
                await adapter.send_end()
        return recorder.events

    assert asyncio.run(main()) == []


def test_send_before_connect_raises():
    async def main():
        adapter = CortiStreamAdapter(url="ws://127.0.0.1:1", configuration={}, emit_event=Recorder())
        with pytest.raises(ProviderSendError):
            await adapter.send_flush()

    asyncio.run(main())


def test_unreachable_stream_raises_connect_error():
    async def main():
        async with serve(lambda ws: ws.wait_closed(), "127.0.0.1", 0) as server:
            url = _url(server)
        # Server is gone; nothing listens on the port any more
        adapter = CortiStreamAdapter(url=url, configuration={}, emit_event=Recorder())
        with pytest.raises(ProviderConnectError):
            await adapter.connect()

    asyncio.run(main())
