import asyncio
import json
import time
from types import SimpleNamespace

from busline.runner import SimulationRunner
from busline.sim.engine import SimulationEngine
from busline.sim.entities import Route, Stop
from busline.sim.world import build_fleet
from busline.ws import ObserverConnection, ObserverHub


class FakeWebSocket:
    """Records frames; receive yields fed messages until the test disconnects it."""
    def __init__(self, port: int) -> None:
        self.client = SimpleNamespace(host="test", port=port)
        self.sent: list[str] = []
        self.accepted = False
        self.closed = False
        self._inbox: asyncio.Queue[dict] = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    async def receive(self) -> dict:
        return await self._inbox.get()

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    def feed(self, message: dict) -> None:
        self._inbox.put_nowait(message)

    def disconnect(self) -> None:
        self.feed({"type": "websocket.disconnect", "code": 1000})


class StalledWebSocket(FakeWebSocket):
    """Takes the handshake, then never completes another write."""
    async def send_text(self, data: str) -> None:
        if not self.sent:
            self.sent.append(data)
            return
        await asyncio.Event().wait()


class BrokenWebSocket(FakeWebSocket):
    """Takes the handshake, then fails every write."""
    async def send_text(self, data: str) -> None:
        if not self.sent:
            self.sent.append(data)
            return
        raise ConnectionResetError("peer reset")


class RefusingWebSocket(FakeWebSocket):
    async def send_text(self, data: str) -> None:
        raise ConnectionResetError("gone before handshake")


def _engine() -> SimulationEngine:
    route = Route(name="ABC", stops=[Stop(1, "A", 0, 0), Stop(2, "B", 16, 0), Stop(3, "C", 16, 16)])
    return SimulationEngine(route=route, vehicles=build_fleet(2), base_progress=0.125, jitter=0.0)


async def _wait_for(predicate, timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def test_broadcast_with_no_observers_is_noop():
    async def scenario():
        engine = _engine()
        hub = ObserverHub()
        runner = SimulationRunner(engine, hub, tick_period_s=0.05)
        update = await runner.step()
        assert await hub.broadcast(update) == 0
        assert runner.latest_update is update

    asyncio.run(scenario())


def test_route_sent_once_before_updates_and_in_tick_order():
    async def scenario():
        engine = _engine()
        hub = ObserverHub()
        runner = SimulationRunner(engine, hub, tick_period_s=0.05)
        ws = FakeWebSocket(1)
        task = asyncio.create_task(hub.serve(ws, engine.route_descriptor()))
        await _wait_for(lambda: len(hub) == 1)

        for _ in range(3):
            await runner.step()
        await _wait_for(lambda: len(ws.sent) == 4)

        frames = [json.loads(raw) for raw in ws.sent]
        assert ws.accepted
        assert [f["type"] for f in frames] == ["route", "update", "update", "update"]
        assert frames[0]["name"] == "ABC"
        assert [s["name"] for s in frames[0]["stops"]] == ["A", "B", "C"]
        assert frames[1]["events"] == [{"timestamp": "05:00:01", "message": "Bus 1 has started its route."}]
        assert frames[1]["vehicles"][0] == {"id": 1, "color": "#FF0000", "x": 2, "y": 0, "state": "EN_ROUTE"}
        assert frames[2]["events"] == []
        assert [f["vehicles"][0]["x"] for f in frames[1:]] == [2, 4, 6]

        ws.disconnect()
        await asyncio.wait_for(task, timeout=2)
        assert len(hub) == 0
        assert ws.closed

    asyncio.run(scenario())


def test_connections_receive_identical_messages():
    async def scenario():
        engine = _engine()
        hub = ObserverHub()
        runner = SimulationRunner(engine, hub, tick_period_s=0.05)
        a, b = FakeWebSocket(1), FakeWebSocket(2)
        tasks = [asyncio.create_task(hub.serve(ws, engine.route_descriptor())) for ws in (a, b)]
        await _wait_for(lambda: len(hub) == 2)
        for _ in range(5):
            await runner.step()
        await _wait_for(lambda: len(a.sent) == 6 and len(b.sent) == 6)
        assert a.sent == b.sent

        a.disconnect()
        b.disconnect()
        await asyncio.wait_for(asyncio.gather(*tasks), timeout=2)

    asyncio.run(scenario())


def test_stalled_and_broken_observers_do_not_affect_healthy_one():
    async def scenario():
        engine = _engine()
        hub = ObserverHub(send_timeout_s=2.0)
        runner = SimulationRunner(engine, hub, tick_period_s=0.05)
        healthy, stalled, broken = FakeWebSocket(1), StalledWebSocket(2), BrokenWebSocket(3)
        descriptor = engine.route_descriptor()
        tasks = [asyncio.create_task(hub.serve(ws, descriptor)) for ws in (healthy, stalled, broken)]
        await _wait_for(lambda: len(hub) == 3)

        started = time.monotonic()
        for expected in range(2, 7):
            before = time.monotonic()
            await runner.step()
            assert time.monotonic() - before < 0.05
            await _wait_for(lambda: len(healthy.sent) == expected, timeout=0.5)
        # All five ticks reached the healthy observer well before the stalled send times out.
        assert time.monotonic() - started < 1.0
        assert stalled in [c.websocket for c in hub._connections]

        await _wait_for(lambda: len(hub) == 1, timeout=4.0)
        assert broken.closed
        assert stalled.closed

        for _ in range(3):
            await runner.step()
        await _wait_for(lambda: len(healthy.sent) == 9)
        ticks = [json.loads(raw) for raw in healthy.sent[1:]]
        assert [t["vehicles"][0]["x"] for t in ticks] == [2, 4, 6, 8, 10, 12, 14, 16]

        healthy.disconnect()
        await asyncio.wait_for(asyncio.gather(*tasks), timeout=2)
        assert len(hub) == 0

    asyncio.run(scenario())


def test_failed_handshake_never_registers():
    async def scenario():
        engine = _engine()
        hub = ObserverHub()
        ws = RefusingWebSocket(9)
        await asyncio.wait_for(hub.serve(ws, engine.route_descriptor()), timeout=2)
        assert len(hub) == 0
        assert ws.closed

    asyncio.run(scenario())


def test_inbound_frames_do_not_drop_observer():
    async def scenario():
        engine = _engine()
        hub = ObserverHub()
        runner = SimulationRunner(engine, hub, tick_period_s=0.05)
        ws = FakeWebSocket(1)
        task = asyncio.create_task(hub.serve(ws, engine.route_descriptor()))
        await _wait_for(lambda: len(hub) == 1)

        await runner.step()
        ws.feed({"type": "websocket.receive", "bytes": b"ping"})
        ws.feed({"type": "websocket.receive", "text": "hello"})
        await asyncio.sleep(0.02)
        await runner.step()
        await _wait_for(lambda: len(ws.sent) == 3)
        assert len(hub) == 1
        assert not task.done()

        ws.disconnect()
        await asyncio.wait_for(task, timeout=2)
        assert len(hub) == 0

    asyncio.run(scenario())


def test_failed_connection_refuses_updates_before_socket_close():
    async def scenario():
        engine = _engine()
        ws = BrokenWebSocket(4)
        connection = ObserverConnection(ws, send_timeout_s=1.0)
        await connection.send_route(engine.route_descriptor())

        update = engine.snapshot(engine.tick())
        assert connection.push(update)
        await asyncio.wait_for(connection.serve(), timeout=2)

        assert connection.closed
        assert not ws.closed
        assert not connection.push(update)

        await connection.close()
        await connection.close()
        assert ws.closed

    asyncio.run(scenario())


def test_runner_run_keeps_cadence_and_feeds_observers():
    async def scenario():
        engine = _engine()
        hub = ObserverHub()
        runner = SimulationRunner(engine, hub, tick_period_s=0.01)
        ws = FakeWebSocket(1)
        serve_task = asyncio.create_task(hub.serve(ws, engine.route_descriptor()))
        await _wait_for(lambda: len(hub) == 1)

        loop_task = asyncio.create_task(runner.run())
        await _wait_for(lambda: engine.tick_count >= 5)
        loop_task.cancel()
        await asyncio.gather(loop_task, return_exceptions=True)

        await _wait_for(lambda: len(ws.sent) == engine.tick_count + 1)
        ws.disconnect()
        await asyncio.wait_for(serve_task, timeout=2)

    asyncio.run(scenario())
