"""Remote per-identity watchlist documents with push-based change notification."""
from __future__ import annotations

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from etf_tracker.adapters.base import Quote, entries_from_payload, entries_to_payload
from etf_tracker.errors import StorageUnavailable, TransientSyncError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[List[Quote]], Any]
ErrorCallback = Callable[[TransientSyncError], Any]
Unsubscribe = Callable[[], Awaitable[None]]


def document_path(app_id: str, user_key: str) -> str:
    return f"artifacts/{app_id}/users/{user_key}/etfData/userETFs"


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    res = callback(*args)
    if asyncio.iscoroutine(res):
        await res


class RemoteWatchlistStore(ABC):
    """One ``{"entries": [...]}`` document per authenticated user.

    ``get`` returns ``None`` when the document does not exist and raises
    StorageUnavailable when the tier cannot be reached, so callers never
    confuse "not ready" with "absent". Subscribers receive the full entry
    sequence after every change.
    """

    tier = "remote"

    def __init__(self, app_id: str = "default-app-id"):
        self.app_id = app_id

    def path_for(self, user_key: str) -> str:
        return document_path(self.app_id, user_key)

    @abstractmethod
    async def get(self, user_key: str) -> list[Quote] | None: ...

    @abstractmethod
    async def put(self, user_key: str, entries: list[Quote]) -> None: ...

    @abstractmethod
    async def delete(self, user_key: str) -> None: ...

    @abstractmethod
    async def subscribe(
        self,
        user_key: str,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe: ...

    async def close(self) -> None:
        return None


class InMemoryRemoteStore(RemoteWatchlistStore):
    """Process-local document store used in demo mode and tests.

    Notifications are delivered on separate tasks, like a real change feed,
    so a writer never runs its own listeners inline.
    """

    def __init__(self, app_id: str = "default-app-id"):
        super().__init__(app_id)
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._listeners: Dict[str, List[ChangeCallback]] = {}
        self._pending: Set[asyncio.Task] = set()

    def document(self, user_key: str) -> Optional[Dict[str, Any]]:
        doc = self._documents.get(self.path_for(user_key))
        return copy.deepcopy(doc) if doc is not None else None

    async def get(self, user_key: str) -> list[Quote] | None:
        doc = self._documents.get(self.path_for(user_key))
        if doc is None:
            return None
        return entries_from_payload(doc.get("entries"))

    async def put(self, user_key: str, entries: list[Quote]) -> None:
        path = self.path_for(user_key)
        self._documents[path] = {"entries": entries_to_payload(entries)}
        self._notify(path)

    async def delete(self, user_key: str) -> None:
        path = self.path_for(user_key)
        if self._documents.pop(path, None) is not None:
            self._notify(path)

    async def subscribe(
        self,
        user_key: str,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        path = self.path_for(user_key)
        self._listeners.setdefault(path, []).append(callback)

        async def _unsubscribe() -> None:
            listeners = self._listeners.get(path, [])
            if callback in listeners:
                listeners.remove(callback)
            if not listeners:
                self._listeners.pop(path, None)

        return _unsubscribe

    def _notify(self, path: str) -> None:
        doc = self._documents.get(path)
        payload = doc.get("entries") if doc else []
        for cb in list(self._listeners.get(path, [])):
            task = asyncio.create_task(self._deliver(cb, entries_from_payload(payload)))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, callback: ChangeCallback, entries: list[Quote]) -> None:
        try:
            await _invoke(callback, entries)
        except Exception:
            logger.exception("Remote change listener failed")

    async def flush(self) -> None:
        """Wait until every queued change notification has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class RedisRemoteStore(RemoteWatchlistStore):
    """Documents as JSON strings in Redis; changes announced on a pub/sub channel per document."""

    def __init__(
        self,
        redis_url: str,
        app_id: str = "default-app-id",
        key_prefix: str = "etftracker:",
        retry_seconds: float = 2.0,
    ):
        super().__init__(app_id)
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.retry_seconds = retry_seconds
        self._redis: Optional[aioredis.Redis] = None
        self._pubsub: Optional[aioredis.client.PubSub] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._listeners: Dict[str, List[tuple[ChangeCallback, ErrorCallback | None]]] = {}
        self._lock = asyncio.Lock()

    def _key(self, user_key: str) -> str:
        return f"{self.key_prefix}{self.path_for(user_key)}"

    def _channel(self, user_key: str) -> str:
        return f"{self.key_prefix}changes:{self.path_for(user_key)}"

    async def _client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
            try:
                await self._redis.ping()
            except (RedisError, OSError) as exc:
                self._redis = None
                raise StorageUnavailable(self.tier, "Remote storage is not ready.") from exc
            logger.info("Remote watchlist store connected to %s", self.redis_url)
        return self._redis

    async def get(self, user_key: str) -> list[Quote] | None:
        try:
            client = await self._client()
            raw = await client.get(self._key(user_key))
        except (RedisError, OSError) as exc:
            logger.warning("Remote watchlist read failed: %s", exc)
            raise StorageUnavailable(self.tier, "Remote storage could not be read.") from exc
        if raw is None:
            return None
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Remote watchlist document for %s is malformed", user_key)
            raise StorageUnavailable(self.tier, "Remote document could not be decoded.") from exc
        return entries_from_payload(doc.get("entries") if isinstance(doc, dict) else None)

    async def put(self, user_key: str, entries: list[Quote]) -> None:
        doc = json.dumps({"entries": entries_to_payload(entries)})
        try:
            client = await self._client()
            await client.set(self._key(user_key), doc)
            await client.publish(self._channel(user_key), doc)
        except (RedisError, OSError) as exc:
            logger.warning("Remote watchlist write failed: %s", exc)
            raise StorageUnavailable(self.tier, "Remote storage could not be written.") from exc

    async def delete(self, user_key: str) -> None:
        try:
            client = await self._client()
            removed = await client.delete(self._key(user_key))
            if removed:
                await client.publish(self._channel(user_key), json.dumps({"entries": []}))
        except (RedisError, OSError) as exc:
            logger.warning("Remote watchlist delete failed: %s", exc)
            raise StorageUnavailable(self.tier, "Remote storage could not be written.") from exc

    async def subscribe(
        self,
        user_key: str,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        channel = self._channel(user_key)
        async with self._lock:
            first = channel not in self._listeners
            self._listeners.setdefault(channel, []).append((callback, on_error))
            if first:
                try:
                    await self._ensure_pubsub()
                    await self._pubsub.subscribe(channel)
                    logger.info("Subscribed to remote watchlist channel: %s", channel)
                except (RedisError, OSError, StorageUnavailable) as exc:
                    # The listen loop reconnects and resubscribes every known channel.
                    logger.warning("Remote subscribe failed for %s: %s", channel, exc)
                    self._pubsub = None
                    self._start_listener()
                    await self._report_error(channel, exc)

        async def _unsubscribe() -> None:
            async with self._lock:
                listeners = self._listeners.get(channel, [])
                listeners[:] = [pair for pair in listeners if pair[0] is not callback]
                if not listeners:
                    self._listeners.pop(channel, None)
                    if self._pubsub is not None:
                        try:
                            await self._pubsub.unsubscribe(channel)
                        except (RedisError, OSError):
                            logger.warning("Remote unsubscribe failed for %s", channel)

        return _unsubscribe

    def _start_listener(self) -> None:
        if self._listen_task is None or self._listen_task.done():
            self._listen_task = asyncio.create_task(self._listen_loop(), name="remote-watchlist-listen")

    async def _ensure_pubsub(self) -> None:
        if self._pubsub is None:
            client = await self._client()
            self._pubsub = client.pubsub()
        self._start_listener()

    async def _listen_loop(self) -> None:
        while self._listeners:
            try:
                if self._pubsub is None:
                    client = await self._client()
                    self._pubsub = client.pubsub()
                    if self._listeners:
                        await self._pubsub.subscribe(*self._listeners.keys())
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message.get("type") == "message":
                    await self._dispatch(message["channel"], message["data"])
                await asyncio.sleep(0.01)
            except asyncio.CancelledError:
                raise
            except (RedisError, OSError, StorageUnavailable) as exc:
                logger.exception("Remote watchlist listen loop error; retrying in %ss", self.retry_seconds)
                for channel in list(self._listeners):
                    await self._report_error(channel, exc)
                self._pubsub = None
                self._redis = None
                await asyncio.sleep(self.retry_seconds)

    async def _dispatch(self, channel: str, data: str) -> None:
        try:
            doc = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed change payload on %s", channel)
            return
        entries = entries_from_payload(doc.get("entries") if isinstance(doc, dict) else None)
        for callback, _ in list(self._listeners.get(channel, [])):
            try:
                await _invoke(callback, [entry.copy() for entry in entries])
            except Exception:
                logger.exception("Remote change listener failed")

    async def _report_error(self, channel: str, exc: BaseException) -> None:
        error = TransientSyncError(f"Change feed interrupted: {exc}")
        for _, on_error in list(self._listeners.get(channel, [])):
            if on_error is None:
                continue
            try:
                await _invoke(on_error, error)
            except Exception:
                logger.exception("Remote error listener failed")

    async def close(self) -> None:
        self._listeners.clear()
        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        if self._pubsub:
            await self._pubsub.close()
            self._pubsub = None
        if self._redis:
            await self._redis.close()
            self._redis = None
