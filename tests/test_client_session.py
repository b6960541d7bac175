import asyncio

import pytest

from conftest import RecordingHandler, ScriptedTransport, sync_burst

from mumble_client.client import Client
from mumble_shared.errors import CallbackError, GateClosedError, TransportError
from mumble_shared.messages import Ping, TextMessage, UserState


async def _connected(handler, settings, *extra):
    transport = ScriptedTransport(sync_burst("Alice") + list(extra))
    client = await Client.start(handler, transport, settings)
    return client, transport


@pytest.mark.asyncio
async def test_keepalive_runs_while_waiting_for_messages(handler, settings):
    client, transport = await _connected(handler, settings)
    task = asyncio.create_task(client.run())

    await asyncio.sleep(0.18)
    assert len(transport.sent_of(Ping)) >= 2
    assert not task.done()

    transport.push(None)
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_keepalive_runs_while_handler_is_busy(handler, settings):
    handler.handle_delay = 0.3
    client, transport = await _connected(handler, settings, TextMessage(message="slow"))
    task = asyncio.create_task(client.run())

    await asyncio.sleep(0.2)
    assert handler.handled == []
    assert len(transport.sent_of(Ping)) >= 2

    transport.push(None)
    await asyncio.wait_for(task, timeout=1)
    assert handler.handled == [TextMessage(message="slow")]


@pytest.mark.asyncio
async def test_messages_are_handled_in_order(handler, settings):
    handler.handle_delay = 0.01
    inbound = [TextMessage(message=str(i)) for i in range(5)]
    client, transport = await _connected(handler, settings, *inbound, UserState(session=7, channel_id=0), None)

    await asyncio.wait_for(client.run(), timeout=2)

    assert [m.message for m in handler.handled[:5]] == ["0", "1", "2", "3", "4"]
    assert handler.handled[5] == UserState(session=7, channel_id=0)
    assert handler.hooks() == ["ready"] + ["handle"] * 6 + ["finish"]


@pytest.mark.asyncio
async def test_end_of_stream_finishes_once_and_closes(handler, settings):
    client, transport = await _connected(handler, settings, None)

    await asyncio.wait_for(client.run(), timeout=1)

    assert handler.hooks() == ["ready", "finish"]
    assert transport.closed
    assert client.gate.closed

    await client.disconnect()
    assert handler.hooks() == ["ready", "finish"]

    with pytest.raises(GateClosedError):
        await client.run()


@pytest.mark.asyncio
async def test_handle_failure_ends_session_and_stops_keepalive(handler, settings):
    handler.fail_on = "handle"
    client, transport = await _connected(handler, settings)
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.08)
    transport.push(TextMessage(message="boom"))

    with pytest.raises(CallbackError) as excinfo:
        await asyncio.wait_for(task, timeout=1)

    assert excinfo.value.hook == "handle"
    assert handler.hooks()[-1] == "finish"
    assert transport.closed

    pings = len(transport.sent_of(Ping))
    await asyncio.sleep(0.15)
    assert len(transport.sent_of(Ping)) == pings


@pytest.mark.asyncio
async def test_library_errors_from_handler_are_not_wrapped(handler, settings):
    handler.fail_on = "handle"
    handler.error = TransportError("lost it")
    client, _ = await _connected(handler, settings, TextMessage(message="x"))

    with pytest.raises(TransportError, match="lost it") as excinfo:
        await asyncio.wait_for(client.run(), timeout=1)
    assert not isinstance(excinfo.value, CallbackError)


@pytest.mark.asyncio
async def test_keepalive_failure_ends_session(handler, settings):
    client, transport = await _connected(handler, settings)
    transport.fail_send = TransportError("connection reset")

    with pytest.raises(TransportError, match="connection reset"):
        await asyncio.wait_for(client.run(), timeout=1)

    assert handler.hooks() == ["ready", "finish"]
    assert transport.closed


@pytest.mark.asyncio
async def test_receive_failure_ends_session(handler, settings):
    client, transport = await _connected(handler, settings, TransportError("Connection lost"))

    with pytest.raises(TransportError, match="Connection lost"):
        await asyncio.wait_for(client.run(), timeout=1)
    assert transport.closed


@pytest.mark.asyncio
async def test_finish_failure_after_clean_end(handler, settings):
    handler.fail_on = "finish"
    client, transport = await _connected(handler, settings, None)

    with pytest.raises(CallbackError) as excinfo:
        await asyncio.wait_for(client.run(), timeout=1)

    assert excinfo.value.hook == "finish"
    assert transport.closed


@pytest.mark.asyncio
async def test_disconnect_ends_running_session(handler, settings):
    client, transport = await _connected(handler, settings)
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.07)

    await client.disconnect()
    await asyncio.wait_for(task, timeout=1)

    assert handler.hooks() == ["ready", "finish"]
    assert transport.closed

    await client.disconnect()
    assert handler.hooks() == ["ready", "finish"]


@pytest.mark.asyncio
async def test_finish_can_still_send(settings):
    class Goodbye(RecordingHandler):
        async def finish(self, outbound, client_info):
            await super().finish(outbound, client_info)
            await outbound.send_text_message("bye", 0)

    handler = Goodbye()
    client, transport = await _connected(handler, settings)

    await client.disconnect()

    assert transport.sent_of(TextMessage) == [TextMessage(message="bye", actor=9, session=[9], channel_id=[0])]


@pytest.mark.asyncio
async def test_cancelled_run_still_finishes_and_closes(handler, settings):
    client, transport = await _connected(handler, settings)
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.07)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert handler.hooks() == ["ready", "finish"]
    assert transport.closed
    assert client.gate.closed

    pings = len(transport.sent_of(Ping))
    await asyncio.sleep(0.12)
    assert len(transport.sent_of(Ping)) == pings


@pytest.mark.asyncio
async def test_run_timeout_tears_down(handler, settings):
    client, transport = await _connected(handler, settings)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(client.run(), timeout=0.1)

    assert handler.hooks() == ["ready", "finish"]
    assert transport.closed
