"""
WebSocket Routes

Real-time worker updates via WebSocket.
"""

import asyncio
from typing import Any, Callable, List, Optional, Set
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from ...core.events import Subscription
from ...core.models import DeliveryStatus, LocationFix, WorkerState
from ...core.worker import LocationWorker


router = APIRouter()


class ConnectionManager:
    """
    Manages WebSocket connections for worker updates.

    Worker callbacks arrive on worker threads; attach() bridges them onto
    the server's event loop as broadcasts.

    Messages sent:
    - type: "fix" - A new successful fix
    - type: "status" - Delivery status change
    - type: "state" - Worker lifecycle state change
    - type: "error" - Worker error message
    """

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscriptions: List[Subscription] = []

    async def connect(self, websocket: WebSocket):
        """Accept a new WebSocket connection"""
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)
        logger.debug("WebSocket connected to worker channel")

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection"""
        async with self._lock:
            self.active_connections.discard(websocket)
        logger.debug("WebSocket disconnected from worker channel")

    async def broadcast(self, message: dict):
        """Broadcast message to all connections"""
        async with self._lock:
            connections = self.active_connections.copy()

        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_json(message)
            except Exception:
                disconnected.append(websocket)

        # Clean up disconnected websockets
        if disconnected:
            async with self._lock:
                for ws in disconnected:
                    self.active_connections.discard(ws)

    async def send_to(self, websocket: WebSocket, message: dict):
        """Send message to a specific connection"""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Failed to send WebSocket message: {e}")

    def get_connection_count(self) -> int:
        """Get number of active connections"""
        return len(self.active_connections)

    def attach(self, worker: LocationWorker, loop: asyncio.AbstractEventLoop) -> None:
        """Forward worker fix, status, state and error events to all connections"""
        self.detach()
        self._loop = loop
        self._subscriptions = [
            worker.observe_fix(self._forward(fix_message)),
            worker.observe_delivery_status(self._forward(status_message), replay=False),
            worker.observe_state(self._forward(state_message), replay=False),
            worker.observe_errors(self._forward(error_message)),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self._loop = None

    def _forward(self, build: Callable[[Any], dict]) -> Callable[[Any], None]:
        def callback(value):
            loop = self._loop
            if loop is None or loop.is_closed() or not self.active_connections:
                return
            asyncio.run_coroutine_threadsafe(self.broadcast(build(value)), loop)
        return callback


def fix_message(fix: LocationFix) -> dict:
    return {'type': 'fix', 'fix': fix.to_dict()}


def status_message(status: DeliveryStatus) -> dict:
    return {'type': 'status', 'status': status.to_dict()}


def state_message(state: WorkerState) -> dict:
    return {'type': 'state', 'state': state.value}


def error_message(message: str) -> dict:
    return {'type': 'error', 'message': message}


@router.websocket("/worker")
async def worker_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for worker updates.

    On connect the current worker snapshot is sent as a "state" message,
    followed by fix, status, state and error messages as they happen.

    Messages received:
    - type: "ping" - Answered with "pong"
    - type: "snapshot" - Answered with the current snapshot
    """
    manager: ConnectionManager = websocket.app.state.connections
    worker: LocationWorker = websocket.app.state.worker

    await manager.connect(websocket)
    try:
        await manager.send_to(websocket, {
            'type': 'state',
            'state': worker.state.value.value,
            'snapshot': worker.snapshot(),
        })

        while True:
            message = await websocket.receive_json()
            msg_type = message.get('type', '')

            if msg_type == 'ping':
                await manager.send_to(websocket, {'type': 'pong'})
            elif msg_type == 'snapshot':
                await manager.send_to(websocket, {
                    'type': 'state',
                    'state': worker.state.value.value,
                    'snapshot': worker.snapshot(),
                })

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Worker WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)
