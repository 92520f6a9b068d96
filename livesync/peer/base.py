"""
Replication peer interface.

Defines the contract every peer client implements, and the reactive
state subscription handed to read-only consumers of the state tree.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any

from ..state.types import Transaction

logger = logging.getLogger(__name__)

_CLOSED = object()


def normalize_keypath(keypath: str | tuple[str, ...] | list[str] | None) -> tuple[str, ...]:
    """Turn ``"streams.0xabc"`` or a sequence of keys into a tuple of keys."""
    if keypath is None:
        return ()
    if isinstance(keypath, str):
        return tuple(part for part in keypath.strip(".").split(".") if part)
    return tuple(keypath)


def resolve_keypath(tree: Any, keypath: tuple[str, ...]) -> Any:
    """Read the value at ``keypath`` in a JSON tree, or None if absent."""
    node = tree
    for key in keypath:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


class StateSubscription:
    """Reactive, read-only view of one keypath of a state tree.

    The value is replaced whenever a committed transaction touches the
    keypath. Consumers either register ``on_change`` callbacks or
    iterate asynchronously over successive values.

    Example:
        >>> sub = await peer.subscribe("p2pair.local/video", "streams")
        >>> sub.on_change(lambda value: print(sorted(value)))
        >>> async for value in sub:
        ...     render(value)
    """

    def __init__(
        self,
        state_uri: str,
        keypath: tuple[str, ...],
        on_close: Callable[[StateSubscription], None] | None = None,
    ) -> None:
        self.state_uri = state_uri
        self.keypath = keypath
        self._value: Any = None
        self._callbacks: list[Callable[[Any], None]] = []
        self._queues: list[asyncio.Queue[Any]] = []
        self._closed = False
        self._on_close = on_close

    @property
    def value(self) -> Any:
        """Latest known value at the keypath."""
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    def on_change(self, callback: Callable[[Any], None]) -> None:
        """Register a callback invoked with each new value."""
        self._callbacks.append(callback)

    def publish(self, value: Any) -> None:
        """Replace the value and notify listeners.

        Called by peer implementations only.
        """
        if self._closed:
            return
        self._value = value
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception as e:
                logger.warning(f"State subscription callback failed: {e}")
        for queue in self._queues:
            queue.put_nowait(value)

    async def __aiter__(self) -> AsyncIterator[Any]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    async def close(self) -> None:
        """Stop receiving updates."""
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)


class PeerClient(ABC):
    """Abstract replication peer.

    The peer stores blobs by content, accepts transactions whose parents
    it has already acknowledged, and serves reads of the state tree.
    """

    @abstractmethod
    async def authorize(self) -> None:
        """Prove our identity to the peer.

        Raises:
            AuthenticationError: If the peer refuses the identity
        """
        ...

    @abstractmethod
    async def store_ref(self, data: bytes) -> dict[str, str]:
        """Upload a blob.

        Returns:
            Digests computed by the peer, keyed by algorithm ("sha1", "sha3")

        Raises:
            TransientIOError: If the upload fails
        """
        ...

    @abstractmethod
    async def put(self, tx: Transaction) -> None:
        """Submit a transaction; returns once the peer acknowledged it.

        Raises:
            ConflictError: Parents are unknown or stale
            ValidationError: The peer rejected a patch
            TransientIOError: Network failure
        """
        ...

    @abstractmethod
    async def fetch_state(self, state_uri: str, keypath: str | tuple[str, ...] = ()) -> Any:
        """Read the current value at ``keypath``."""
        ...

    @abstractmethod
    async def subscribe(
        self, state_uri: str, keypath: str | tuple[str, ...] = ()
    ) -> StateSubscription:
        """Open a reactive subscription on ``keypath``."""
        ...

    async def close(self) -> None:
        """Release connections held by the client."""
        return None

    async def __aenter__(self) -> PeerClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
