from __future__ import annotations

"""
File: busline/ws.py
Purpose: WebSocket observer registry and per-connection delivery.
Key responsibilities:
- Handshake each observer with the route descriptor, then register it.
- Fan each tick's update out without awaiting any network write.
- Contain send failures, timeouts and disconnects to one connection.
"""

import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from busline.schemas import RouteDescriptor, UpdateMessage

logger = logging.getLogger("busline.ws")


def _peer(websocket: WebSocket) -> str:
    client = getattr(websocket, "client", None)
    if client is None:
        return "unknown"
    return f"{client.host}:{client.port}"


class ObserverConnection:
    """One observer socket with its own outbox and writer."""
    def __init__(self, websocket: WebSocket, send_timeout_s: float = 5.0) -> None:
        self.websocket = websocket
        self.send_timeout_s = send_timeout_s
        self.peer = _peer(websocket)
        self.outbox: asyncio.Queue[UpdateMessage] = asyncio.Queue()
        self.sent = 0
        self.closed = False
        self._socket_closed = False

    def push(self, update: UpdateMessage) -> bool:
        """Queue an update for delivery; never blocks."""
        if self.closed:
            return False
        self.outbox.put_nowait(update)
        return True

    async def send_route(self, descriptor: RouteDescriptor) -> None:
        await self._send(descriptor)

    async def serve(self) -> None:
        """Deliver queued updates until the peer goes away or a write fails."""
        writer = asyncio.create_task(self._write_loop())
        reader = asyncio.create_task(self._keepalive_loop())
        try:
            done, _ = await asyncio.wait({writer, reader}, return_when=asyncio.FIRST_COMPLETED)
            self.closed = True
        finally:
            for task in (writer, reader):
                if not task.done():
                    task.cancel()
            await asyncio.gather(writer, reader, return_exceptions=True)

        for task in done:
            exc = task.exception()
            if exc is None or isinstance(exc, WebSocketDisconnect):
                logger.info("observer disconnected peer=%s sent=%s", self.peer, self.sent)
            elif isinstance(exc, asyncio.TimeoutError):
                logger.warning("observer send timed out peer=%s timeout=%ss", self.peer, self.send_timeout_s)
            else:
                logger.warning("observer dropped peer=%s err=%r", self.peer, exc)

    async def close(self) -> None:
        """Close the socket once; errors from an already-dead peer are expected."""
        self.closed = True
        if self._socket_closed:
            return
        self._socket_closed = True
        try:
            await self.websocket.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("close failed peer=%s err=%r", self.peer, exc)

    async def _send(self, message: BaseModel) -> None:
        data = message.model_dump_json()
        await asyncio.wait_for(self.websocket.send_text(data), timeout=self.send_timeout_s)

    async def _write_loop(self) -> None:
        while True:
            update = await self.outbox.get()
            await self._send(update)
            self.sent += 1

    async def _keepalive_loop(self) -> None:
        # Inbound frames of any kind are discarded; only the disconnect matters.
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return


class ObserverHub:
    """Registry of live observers and broadcast fan-out."""
    def __init__(self, send_timeout_s: float = 5.0) -> None:
        self.send_timeout_s = send_timeout_s
        self._connections: set[ObserverConnection] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    async def register(self, connection: ObserverConnection) -> None:
        async with self._lock:
            self._connections.add(connection)
        logger.info("observer registered peer=%s live=%s", connection.peer, len(self._connections))

    async def unregister(self, connection: ObserverConnection) -> None:
        async with self._lock:
            self._connections.discard(connection)
        logger.info("observer removed peer=%s live=%s", connection.peer, len(self._connections))

    async def broadcast(self, update: UpdateMessage) -> int:
        """Queue ``update`` on every live connection; return how many took it."""
        if not self._connections:
            return 0
        async with self._lock:
            connections = list(self._connections)
        return sum(1 for connection in connections if connection.push(update))

    async def serve(self, websocket: WebSocket, descriptor: RouteDescriptor) -> None:
        """Accept, handshake, register and serve one observer until it drops."""
        connection = ObserverConnection(websocket, send_timeout_s=self.send_timeout_s)
        try:
            await websocket.accept()
            await connection.send_route(descriptor)
        except Exception as exc:  # noqa: BLE001
            logger.warning("observer handshake failed peer=%s err=%r", connection.peer, exc)
            await connection.close()
            return

        await self.register(connection)
        try:
            await connection.serve()
        finally:
            await self.unregister(connection)
            await connection.close()
