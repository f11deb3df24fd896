"""
Notification hub — live WebSocket connections and fan-out.

One connection per user. The hub remembers each user's role at connect time
so role fan-out never touches the database. A background heartbeat task
pings every client and drops the ones that fail.

Message shape (every kind):
    {"type": "...", "message": "...", "timestamp": "<ISO-8601>", ...extra}
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import WebSocket, status

from config import settings
from database import async_session
from db_models import Book, Order, User
from domain.constants import (
    NOTIFY_CONNECTION,
    NOTIFY_HEARTBEAT,
    NOTIFY_LOW_STOCK,
    NOTIFY_NEW_ORDER,
    NOTIFY_NEW_REVIEW,
    NOTIFY_NEW_USER,
    NOTIFY_ORDER_STATUS,
    NOTIFY_PONG,
    NOTIFY_PRICE_CHANGE,
)
from domain.enums import Role
from domain.errors import DomainError
from middleware.auth import resolve_user_from_token

logger = logging.getLogger(__name__)

WS_TRY_AGAIN_LATER = 1013


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_notification(kind: str, message: str, **data) -> dict:
    return {"type": kind, "message": message, "timestamp": _timestamp(), **data}


class NotificationHub:
    """Registry of live sockets keyed by user id."""

    def __init__(self, max_connections: int = 1000):
        self.max_connections = max_connections
        # {user_id: (websocket, role)}
        self._clients: dict[int, tuple[WebSocket, str]] = {}
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket, user_id: int, role: str) -> bool:
        """
        Accept a socket for an authenticated user.

        Returns False (after closing with 1013) when the hub is full. A user's
        previous connection is replaced and closed.
        """
        if user_id not in self._clients and len(self._clients) >= self.max_connections:
            logger.warning(f"Notification hub full ({self.max_connections}), refusing user={user_id}")
            await websocket.close(code=WS_TRY_AGAIN_LATER)
            return False

        await websocket.accept()
        previous = self._clients.get(user_id)
        self._clients[user_id] = (websocket, role)

        if previous is not None:
            try:
                await previous[0].close(code=status.WS_1000_NORMAL_CLOSURE)
            except Exception as e:
                logger.debug(f"Closing replaced socket for user={user_id} failed: {e}")

        logger.info(f"WebSocket connected: user={user_id} role={role} (total={len(self._clients)})")
        await self._send(user_id, websocket, {
            "type": NOTIFY_CONNECTION,
            "message": "Connected to BookNest notifications",
        })
        return True

    def disconnect(self, user_id: int, websocket: Optional[WebSocket] = None) -> None:
        """Forget a user's socket. With `websocket`, only if it is still the live one."""
        current = self._clients.get(user_id)
        if current is None:
            return
        if websocket is not None and current[0] is not websocket:
            return
        del self._clients[user_id]
        logger.info(f"WebSocket disconnected: user={user_id} (total={len(self._clients)})")

    async def _send(self, user_id: int, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Dropping socket for user={user_id}: {e}")
            self.disconnect(user_id, websocket)
            return False

    async def send_to_user(self, user_id: int, message: dict) -> bool:
        client = self._clients.get(user_id)
        if client is None:
            return False
        return await self._send(user_id, client[0], message)

    async def send_to_role(self, role: str, message: dict) -> int:
        targets = [(uid, ws) for uid, (ws, r) in list(self._clients.items()) if r == role]
        sent = 0
        for uid, ws in targets:
            if await self._send(uid, ws, message):
                sent += 1
        return sent

    async def broadcast(self, message: dict) -> int:
        sent = 0
        for uid, (ws, _role) in list(self._clients.items()):
            if await self._send(uid, ws, message):
                sent += 1
        return sent

    async def handle_message(self, user_id: int, raw: str) -> None:
        """Answer pings; anything else (including malformed JSON) is ignored."""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            return
        if isinstance(payload, dict) and payload.get("type") == "ping":
            await self.send_to_user(user_id, {"type": NOTIFY_PONG, "timestamp": _timestamp()})

    async def heartbeat_once(self) -> int:
        return await self.broadcast({"type": NOTIFY_HEARTBEAT, "timestamp": _timestamp()})

    async def _heartbeat_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.heartbeat_once()

    def start(self, interval: float | None = None) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            interval = interval or settings.ws_heartbeat_seconds
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(interval))
            logger.info(f"Notification heartbeat started (every {interval}s)")

    async def stop(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for uid, (ws, _role) in list(self._clients.items()):
            try:
                await ws.close(code=status.WS_1001_GOING_AWAY)
            except Exception as e:
                logger.debug(f"Closing socket for user={uid} on shutdown failed: {e}")
        self._clients.clear()
        logger.info("Notification hub stopped")


hub = NotificationHub(max_connections=settings.ws_max_connections)


async def authenticate_socket(token: Optional[str]) -> Optional[User]:
    """Resolve the `?token=` query value to an active user, or None."""
    if not token:
        return None
    async with async_session() as db:
        try:
            return await resolve_user_from_token(db, token)
        except DomainError as e:
            logger.warning(f"WebSocket auth rejected: {e.message}")
            return None


# ── Notification helpers ────────────────────────────────────────────

async def notify_order_status(order: Order) -> bool:
    return await hub.send_to_user(order.user_id, build_notification(
        NOTIFY_ORDER_STATUS,
        f"Your order #{order.id} is now {order.status}",
        orderId=order.id,
        status=order.status,
    ))


async def notify_new_order(order: Order) -> bool:
    return await hub.send_to_user(order.seller_id, build_notification(
        NOTIFY_NEW_ORDER,
        f"New order #{order.id} received",
        orderId=order.id,
        total=order.total_amount,
    ))


async def notify_low_stock(book: Book) -> bool:
    return await hub.send_to_user(book.seller_id, build_notification(
        NOTIFY_LOW_STOCK,
        f"Low stock alert: {book.title} has only {book.stock} left",
        bookId=book.id,
        title=book.title,
        quantity=book.stock,
    ))


async def notify_new_review(book: Book, rating: int) -> bool:
    return await hub.send_to_user(book.seller_id, build_notification(
        NOTIFY_NEW_REVIEW,
        f"New {rating}-star review on {book.title}",
        bookId=book.id,
        title=book.title,
        rating=rating,
    ))


async def notify_price_change(book: Book, old_price: float) -> int:
    return await hub.broadcast(build_notification(
        NOTIFY_PRICE_CHANGE,
        f"Price of {book.title} changed from {old_price} to {book.price}",
        bookId=book.id,
        title=book.title,
        oldPrice=old_price,
        newPrice=book.price,
    ))


async def notify_new_user(user: User) -> int:
    return await hub.send_to_role(Role.ADMIN.value, build_notification(
        NOTIFY_NEW_USER,
        f"New {user.role} registered: {user.name}",
        userId=user.id,
    ))
