import asyncio

import pytest

from stepflow.channels import CommandChannel, EventBroadcaster
from stepflow.errors import ChannelClosedError
from stepflow.events import SessionEnded, SessionStarted, StartCommand, StopCommand


def started(session_id="s"):
    return SessionStarted(session_id=session_id, workflow_name="wf")


@pytest.mark.asyncio
async def test_command_channel_preserves_order():
    channel = CommandChannel()
    channel.send(StartCommand())
    channel.send(StopCommand())

    assert isinstance(await channel.receive(), StartCommand)
    assert isinstance(channel.try_receive(), StopCommand)
    assert channel.try_receive() is None


@pytest.mark.asyncio
async def test_closed_command_channel_rejects_sends():
    channel = CommandChannel()
    channel.close()

    assert channel.closed
    with pytest.raises(ChannelClosedError):
        channel.send(StartCommand())


@pytest.mark.asyncio
async def test_every_subscriber_sees_every_event():
    broadcaster = EventBroadcaster()
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()

    broadcaster.publish(started("a"))
    broadcaster.publish(started("b"))
    broadcaster.close()

    for subscription in (first, second):
        events = await subscription.collect()
        assert [e.session_id for e in events] == ["a", "b"]


@pytest.mark.asyncio
async def test_publish_without_listeners_is_dropped():
    broadcaster = EventBroadcaster()
    broadcaster.publish(started())

    late = broadcaster.subscribe()
    broadcaster.close()

    assert await late.collect() == []


@pytest.mark.asyncio
async def test_subscribing_after_close_ends_immediately():
    broadcaster = EventBroadcaster()
    broadcaster.close()
    broadcaster.publish(started())

    subscription = broadcaster.subscribe()

    assert await subscription.next() is None
    assert await subscription.next() is None


@pytest.mark.asyncio
async def test_bounded_buffer_drops_overflow():
    broadcaster = EventBroadcaster(buffer_size=2)
    subscription = broadcaster.subscribe()

    for name in ("a", "b", "c"):
        broadcaster.publish(started(name))
    broadcaster.close()

    # the end marker displaces the oldest event
    events = await subscription.collect()
    assert [e.session_id for e in events] == ["b"]


@pytest.mark.asyncio
async def test_wait_for_skips_other_events():
    broadcaster = EventBroadcaster()
    subscription = broadcaster.subscribe()
    broadcaster.publish(started())
    broadcaster.publish(SessionEnded(session_id="s", state="stopped"))

    ended = await subscription.wait_for(SessionEnded, timeout=1)

    assert ended.state == "stopped"


@pytest.mark.asyncio
async def test_wait_for_raises_when_stream_ends():
    broadcaster = EventBroadcaster()
    subscription = broadcaster.subscribe()
    broadcaster.publish(started())
    broadcaster.close()

    with pytest.raises(ChannelClosedError):
        await subscription.wait_for(SessionEnded, timeout=1)


@pytest.mark.asyncio
async def test_wait_for_times_out():
    subscription = EventBroadcaster().subscribe()

    with pytest.raises(asyncio.TimeoutError):
        await subscription.wait_for(SessionEnded, timeout=0.05)


@pytest.mark.asyncio
async def test_unsubscribe_ends_only_that_subscription():
    broadcaster = EventBroadcaster()
    leaving = broadcaster.subscribe()
    staying = broadcaster.subscribe()

    leaving.close()
    broadcaster.publish(started())

    assert await leaving.next() is None
    assert (await staying.next()).session_id == "s"
