#!/usr/bin/env python3
# Test Gateway Connection
# Usage: python scripts/test_websocket.py

"""
Gateway Connection Test Script

Tests:
1. Hello → heartbeat + identify over a transport
2. READY → join request, presence, voice_ready
3. Displacement → one rejoin while a rejoin is in flight
4. Transport close → fixed-delay reconnect with fresh session fields
5. Invalid session → exactly one reconnect after the cooldown
6. Manual disconnect → no timers, no reconnect
7. Open failure → error event, then reconnect
8. Raising listeners are contained
9. Processing failure → error, old transport closed, one reconnect
10. Malformed frames do not drop the connection
11. Stale-generation timers and heartbeats stay silent
12. Fail-fast config

Uses an in-memory fake transport and shortened delays (no network)
"""

import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from voice_presence.connection.heartbeat_manager import HeartbeatManager
from voice_presence.connection.timers import TimerRegistry
from voice_presence.connection.websocket_client import ConnectionState, GatewayClient
from voice_presence.errors import ConfigError
from voice_presence.gateway.reconnect_policy import ReconnectPolicy
from voice_presence.utils.logger import setup_logger

# Setup logger
logger = setup_logger("TestWebSocket", "INFO")

SELF_ID = "111"
SERVER_ID = "222"
CHANNEL_ID = "333"

class FakeTransport:
    """In-memory stand-in for a websocket connection"""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox = asyncio.Queue()

    def feed(self, frame: dict):
        self._inbox.put_nowait(json.dumps(frame))

    def drop(self):
        """Server side closes the connection"""
        self._inbox.put_nowait(None)

    async def send(self, text: str):
        if self.closed:
            raise ConnectionError("transport closed")
        self.sent.append(json.loads(text))

    async def close(self):
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def ops(self):
        return [frame["op"] for frame in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message

class FakeFactory:
    """Transport factory recording every connection attempt"""

    def __init__(self, failures: int = 0):
        self.transports = []
        self.attempts = 0
        self.failures = failures

    async def __call__(self, url: str):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("gateway unreachable")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]

class EventLog:
    """Collects client events"""

    def __init__(self, client: GatewayClient):
        self.events = []
        client.on_connect(lambda: self.events.append(("connected", None)))
        client.on_disconnect(lambda: self.events.append(("disconnected", None)))
        client.on_ready(lambda profile: self.events.append(("ready", profile)))
        client.on_voice_ready(lambda: self.events.append(("voice_ready", None)))
        client.on_error(lambda error: self.events.append(("error", error)))

    def count(self, name: str) -> int:
        return sum(1 for event, _ in self.events if event == name)

    def payloads(self, name: str):
        return [payload for event, payload in self.events if event == name]

def make_client(factory, presence=None, auto_reconnect=False, **policy_overrides):
    config = {
        "token": "secret-token",
        "server_id": SERVER_ID,
        "channel_id": CHANNEL_ID,
        "auto_reconnect": {"enabled": auto_reconnect, "max_retries": 3},
        "presence": {"status": presence},
    }
    timing = {
        "enabled": auto_reconnect,
        "rejoin_delay_ms": 10,
        "max_retries": 3,
        "close_delay_ms": 30,
        "invalid_session_cooldown_ms": 150,
        "settle_delay_ms": 10,
    }
    timing.update(policy_overrides)
    client = GatewayClient(config, transport_factory=factory, reconnect_policy=ReconnectPolicy(**timing))
    return client, EventLog(client)

async def tick(seconds: float = 0.01):
    await asyncio.sleep(seconds)

def hello(interval_ms=20):
    return {"op": 10, "t": None, "s": None, "d": {"heartbeat_interval": interval_ms}}

def ready(seq=1):
    return {"op": 0, "t": "READY", "s": seq, "d": {
        "user": {"id": SELF_ID, "username": "presence", "discriminator": "0042"}
    }}

def voice_update(channel_id=CHANNEL_ID, seq=2):
    return {"op": 0, "t": "VOICE_STATE_UPDATE", "s": seq, "d": {
        "user_id": SELF_ID, "guild_id": SERVER_ID, "channel_id": channel_id
    }}

def test_hello_starts_heartbeat():
    """Test Hello handling over a transport"""
    logger.info("=" * 60)
    logger.info("TEST 1: Hello / Heartbeat")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory)

        assert await client.connect() is True
        assert client.is_connected()
        assert client.state.connection_generation == 1
        assert events.count("connected") == 1

        transport = factory.current
        transport.feed(hello(interval_ms=20))
        await tick()
        assert transport.ops() == [2]
        assert transport.sent[0]["d"]["token"] == "secret-token"
        assert client.heartbeat.is_running
        assert client.heartbeat.interval_ms == 20

        await tick(0.05)
        heartbeats = [frame for frame in transport.sent if frame["op"] == 1]
        assert heartbeats and all(frame["d"] is None for frame in heartbeats)

        transport.feed({"op": 0, "t": "TYPING_START", "s": 5, "d": {}})
        await tick(0.05)
        assert transport.sent[-1] == {"op": 1, "d": 5}
        logger.info(f"✅ {len(transport.sent) - 1} heartbeats, last carries sequence 5")

        # Second Hello restarts rather than stacking heartbeat loops
        transport.feed(hello(interval_ms=1000))
        await tick()
        before = len(transport.sent)
        await tick(0.06)
        assert len(transport.sent) == before
        logger.info("✅ Second Hello replaced the 20ms loop")

        await client.disconnect()

    asyncio.run(scenario())

def test_ready_joins_voice():
    """Test READY → join, presence, voice_ready"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 2: READY / Voice Join")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory, presence="invisible")
        await client.connect()
        transport = factory.current

        transport.feed(hello(interval_ms=10000))
        transport.feed(ready())
        await tick()

        assert events.payloads("ready") == [
            {"id": SELF_ID, "username": "presence", "discriminator": "0042"}
        ]
        assert transport.ops() == [2, 4, 3]
        assert transport.sent[1]["d"] == {
            "guild_id": SERVER_ID,
            "channel_id": CHANNEL_ID,
            "self_mute": True,
            "self_deaf": True,
        }
        assert transport.sent[2]["d"]["status"] == "invisible"
        logger.info("✅ Identify, join, presence sent in order")

        transport.feed(voice_update())
        transport.feed(voice_update(seq=3))
        await tick()
        assert events.count("voice_ready") == 1
        assert client.state.sequence_number == 3
        logger.info("✅ voice_ready fired once")

        await client.disconnect()

    asyncio.run(scenario())

def test_displacement_rejoin():
    """Test rejoin after being moved out of the channel"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 3: Displacement Rejoin")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory, auto_reconnect=True)
        await client.connect()
        transport = factory.current

        transport.feed(hello(interval_ms=10000))
        transport.feed(ready())
        transport.feed(voice_update())
        await tick(0.03)
        assert transport.ops() == [2, 4]

        transport.feed(voice_update(channel_id="elsewhere", seq=4))
        transport.feed(voice_update(channel_id=None, seq=5))
        await tick(0.05)
        assert transport.ops() == [2, 4, 4]
        assert client.state.reconnect.attempt_count == 1
        logger.info("✅ One rejoin for two updates while in flight")

        assert factory.attempts == 1
        assert events.count("disconnected") == 0
        logger.info("✅ Transport untouched by displacement")

        await client.disconnect()

    asyncio.run(scenario())

def test_transport_close_reconnects():
    """Test reconnect after the server closes the transport"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 4: Transport Close")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory)
        await client.connect()
        first = factory.current

        first.feed(hello(interval_ms=10))
        first.feed({"op": 0, "t": "TYPING_START", "s": 12, "d": {}})
        await tick()
        first.drop()
        await tick()

        assert events.count("disconnected") == 1
        assert client.get_state() == ConnectionState.RECONNECTING
        assert client.state.sequence_number is None
        assert not client.heartbeat.is_running
        sent_after_close = len(first.sent)
        logger.info("✅ Teardown: heartbeat stopped, sequence cleared")

        await tick(0.06)
        assert factory.attempts == 2
        assert client.state.connection_generation == 2
        assert client.is_connected()
        assert len(first.sent) == sent_after_close
        logger.info("✅ Reconnected after the close delay, old transport silent")

        await client.disconnect()

    asyncio.run(scenario())

def test_invalid_session_single_reconnect():
    """Test invalid session cooldown"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 5: Invalid Session")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory)
        await client.connect()
        first = factory.current

        first.feed(hello(interval_ms=10000))
        first.feed({"op": 9, "t": None, "s": None, "d": False})
        await tick()

        assert first.closed
        assert client.state.session_valid is False
        assert events.count("disconnected") == 1
        assert await client.connect() is False
        logger.info("✅ Transport closed, connect refused during cooldown")

        # Past the 30ms close delay, inside the 150ms cooldown
        await tick(0.08)
        assert factory.attempts == 1
        logger.info("✅ No reconnect from the close path")

        await tick(0.15)
        assert factory.attempts == 2
        assert client.state.session_valid is True
        assert client.is_connected()

        await tick(0.1)
        assert factory.attempts == 2
        logger.info("✅ Exactly one reconnect after the cooldown")

        await client.disconnect()

    asyncio.run(scenario())

def test_manual_disconnect():
    """Test manual disconnect cancels everything"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 6: Manual Disconnect")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory, auto_reconnect=True)
        await client.connect()
        transport = factory.current

        transport.feed(hello(interval_ms=10))
        transport.feed(ready())
        await tick()
        assert client.heartbeat.is_running

        await client.disconnect()
        assert transport.closed
        assert client.get_state() == ConnectionState.CLOSED
        assert client.timers.pending == []
        assert not client.heartbeat.is_running
        assert events.count("disconnected") == 1

        # A late close callback for the old generation is ignored
        await client._handle_close(client.state.connection_generation)
        await tick(0.1)
        assert factory.attempts == 1
        assert events.count("disconnected") == 1
        logger.info("✅ No reconnect, no timers after disconnect")

        assert await client.connect() is True
        assert factory.attempts == 2
        logger.info("✅ Explicit connect() works again")
        await client.disconnect()

    asyncio.run(scenario())

def test_open_failure_retries():
    """Test failure to open the transport"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 7: Open Failure")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory(failures=1)
        client, events = make_client(factory)

        assert await client.connect() is False
        errors = events.payloads("error")
        assert len(errors) == 1 and isinstance(errors[0], OSError)
        assert events.count("disconnected") == 0
        assert client.get_state() == ConnectionState.RECONNECTING

        await tick(0.06)
        assert factory.attempts == 2
        assert client.is_connected()
        logger.info("✅ Error surfaced, reconnected after the close delay")

        await client.disconnect()

    asyncio.run(scenario())

def test_listener_failures_are_contained():
    """Test that a raising listener does not break the client"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 8: Listener Failures")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory)

        def explode(profile):
            raise RuntimeError("listener bug")

        async def async_listener(profile):
            events.events.append(("async_ready", profile))

        client.on_ready(explode)
        client.on_ready(async_listener)
        with pytest.raises(ValueError):
            client.on("voiceReady", lambda: None)

        await client.connect()
        factory.current.feed(ready())
        await tick()
        assert events.count("ready") == 1
        assert events.count("async_ready") == 1
        assert factory.current.ops() == [4]
        logger.info("✅ Raising listener logged, others still ran")

        await client.disconnect()

    asyncio.run(scenario())

def test_processing_failure_closes_transport():
    """Test that a frame which breaks processing does not leak the transport"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 9: Processing Failure")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory)

        handle_frame = client.protocol.handle_frame

        def failing_handle_frame(frame):
            if frame.op == 99:
                raise RuntimeError("broken frame")
            return handle_frame(frame)

        client.protocol.handle_frame = failing_handle_frame

        await client.connect()
        first = factory.current
        first.feed(hello(interval_ms=10))
        first.feed({"op": 99, "t": None, "s": None, "d": {}})
        await tick()

        errors = events.payloads("error")
        assert len(errors) == 1 and isinstance(errors[0], RuntimeError)
        assert events.count("disconnected") == 1
        assert first.closed
        assert not client.heartbeat.is_running
        logger.info("✅ Error surfaced, failing transport closed")

        await tick(0.06)
        assert factory.attempts == 2
        assert [transport.closed for transport in factory.transports] == [True, False]
        logger.info("✅ Exactly one live transport after the reconnect")

        await client.disconnect()

    asyncio.run(scenario())

def test_malformed_frames_keep_connection():
    """Test malformed READY user and non-string event names"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 10: Malformed Frames")
    logger.info("=" * 60)

    async def scenario():
        factory = FakeFactory()
        client, events = make_client(factory)
        await client.connect()
        transport = factory.current

        transport.feed({"op": 0, "t": ["x"], "s": 4, "d": {}})
        transport.feed({"op": 0, "t": "READY", "s": 5, "d": {"user": "not-an-object"}})
        await tick()

        assert events.count("error") == 0
        assert events.payloads("ready") == [{"id": None, "username": None, "discriminator": None}]
        assert client.state.sequence_number == 5
        assert client.is_connected()
        assert factory.attempts == 1
        logger.info("✅ Malformed frames handled without dropping the connection")

        await client.disconnect()

    asyncio.run(scenario())

def test_stale_generation_is_silent():
    """Test timers and heartbeats from a superseded generation"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 11: Stale Generations")
    logger.info("=" * 60)

    async def scenario():
        generation = [1]
        fired = []

        async def callback():
            fired.append(generation[0])

        timers = TimerRegistry(lambda: generation[0])
        timers.start("rejoin", 20, callback, 1)
        generation[0] = 2
        await tick(0.05)
        assert fired == []
        assert timers.pending == []
        logger.info("✅ Timer armed in generation 1 did nothing in generation 2")

        sent = []

        async def send(frame):
            sent.append(frame)
            return True

        heartbeat = HeartbeatManager(send, lambda: 7, lambda: generation[0])
        heartbeat.start(10, 2)
        await tick(0.035)
        assert heartbeat.beats_sent >= 1
        assert sent[0] == {"op": 1, "d": 7}

        generation[0] = 3
        beats = heartbeat.beats_sent
        await tick(0.04)
        assert heartbeat.beats_sent == beats
        assert not heartbeat.is_running
        logger.info("✅ Heartbeat from generation 2 stopped itself in generation 3")

    asyncio.run(scenario())

def test_missing_token_fails_fast():
    """Test config validation at construction"""
    logger.info("\n" + "=" * 60)
    logger.info("TEST 12: Fail-Fast Config")
    logger.info("=" * 60)

    factory = FakeFactory()
    with pytest.raises(ConfigError):
        GatewayClient({"server_id": SERVER_ID, "channel_id": CHANNEL_ID}, transport_factory=factory)
    assert factory.attempts == 0
    logger.info("✅ ConfigError before any connection attempt")

def main():
    """Run all tests"""
    logger.info("\n" + "=" * 60)
    logger.info("🧪 Voice Presence - Gateway Connection Tests")
    logger.info("=" * 60)

    try:
        test_hello_starts_heartbeat()
        test_ready_joins_voice()
        test_displacement_rejoin()
        test_transport_close_reconnects()
        test_invalid_session_single_reconnect()
        test_manual_disconnect()
        test_open_failure_retries()
        test_listener_failures_are_contained()
        test_processing_failure_closes_transport()
        test_malformed_frames_keep_connection()
        test_stale_generation_is_silent()
        test_missing_token_fails_fast()

        logger.info("\n" + "=" * 60)
        logger.info("✅ ALL TESTS COMPLETED SUCCESSFULLY!")
        logger.info("=" * 60)

    except Exception as e:
        logger.error(f"\n❌ Test failed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

if __name__ == "__main__":
    main()
