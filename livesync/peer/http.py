"""
HTTP replication peer client.

Talks to a peer's HTTP transport:
- ``POST /`` with ``Blob: true`` and a multipart ``blob`` field stores a blob
- ``PUT /`` with ``Version``, ``Parents`` and ``State-URI`` headers submits
  a transaction whose body is one serialized patch per line
- ``GET /<keypath>`` with ``State-URI`` reads state
- ``GET /`` with ``Subscribe: states`` opens a server-sent event stream
- ``AUTHORIZE /`` runs the identity challenge handshake
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from ..exceptions import (
    AuthenticationError,
    ConflictError,
    TransientIOError,
    ValidationError,
)
from ..identity.types import PeerIdentity
from ..state.types import Transaction
from .base import PeerClient, StateSubscription, normalize_keypath

logger = logging.getLogger(__name__)

_PARENT_HINTS = ("parent", "unknown tx", "stale")


def classify_put_failure(status: int, body: str, tx: Transaction) -> Exception:
    """Map a failed ``PUT`` response onto the error taxonomy.

    Args:
        status: HTTP status code
        body: Response body text
        tx: Transaction that was rejected

    Returns:
        The exception to raise
    """
    lowered = body.lower()
    if status == 409 or (status in (400, 404, 422) and any(h in lowered for h in _PARENT_HINTS)):
        return ConflictError(tx.state_uri, tx.id, tx.sorted_parents(), body.strip() or None)
    if status in (400, 422):
        return ValidationError("transaction", body.strip() or f"HTTP {status}", tx.id)
    if status in (401, 403):
        return AuthenticationError("put", body.strip() or None)
    return TransientIOError("put", f"HTTP {status}: {body.strip()}")


class HttpPeerClient(PeerClient):
    """Peer client speaking the HTTP transport.

    Example:
        >>> async with HttpPeerClient("http://localhost:8080", identity) as peer:
        ...     await peer.authorize()
        ...     digests = await peer.store_ref(b"...")
    """

    def __init__(
        self,
        base_url: str,
        identity: PeerIdentity | None = None,
        timeout: float | None = 30.0,
        reconnect_delay: float = 5.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Peer endpoint, e.g. ``http://localhost:8080``
            identity: Identity used to sign challenges and transactions
            timeout: Total seconds allowed per request (None for no limit)
            reconnect_delay: Seconds to wait before reopening a dropped subscription
            session: Existing aiohttp session to reuse (not closed by this client)
        """
        self.base_url = base_url.rstrip("/")
        self.identity = identity
        self.timeout = timeout
        self.reconnect_delay = reconnect_delay
        self._session = session
        self._owns_session = session is None
        self._subscription_tasks: dict[StateSubscription, asyncio.Task[None]] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        for sub in list(self._subscription_tasks):
            await sub.close()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def authorize(self) -> None:
        signer = self.identity.signer if self.identity else None
        if signer is None:
            logger.info(f"No signer configured, skipping authorization with {self.base_url}")
            return

        session = await self._get_session()
        try:
            async with session.request("AUTHORIZE", self.base_url + "/") as response:
                if response.status != 200:
                    raise AuthenticationError(self.base_url, f"challenge failed: {response.status}")
                challenge_hex = (await response.text()).strip()

            signature = signer.sign_challenge(bytes.fromhex(challenge_hex))
            async with session.request(
                "AUTHORIZE", self.base_url + "/", headers={"Response": signature}
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise AuthenticationError(self.base_url, body.strip() or str(response.status))
        except ValueError as e:
            raise AuthenticationError(self.base_url, f"bad challenge: {e}") from e
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransientIOError("authorize", self.base_url, e) from e

        logger.info(f"Authorized with {self.base_url} as {self.identity.address}")

    async def store_ref(self, data: bytes) -> dict[str, str]:
        session = await self._get_session()
        form = aiohttp.FormData()
        form.add_field("blob", data, filename="blob", content_type="application/octet-stream")
        try:
            async with session.post(
                self.base_url + "/", data=form, headers={"Blob": "true"}
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise TransientIOError("store_ref", f"HTTP {response.status}: {body.strip()}")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransientIOError("store_ref", self.base_url, e) from e

        if not isinstance(payload, dict):
            raise TransientIOError("store_ref", "unexpected response body")
        return {str(k).lower(): str(v).lower() for k, v in payload.items()}

    async def put(self, tx: Transaction) -> None:
        headers = {
            "Version": tx.id,
            "Parents": ",".join(tx.sorted_parents()),
            "State-URI": tx.state_uri,
            "Content-Type": "text/plain",
        }
        signer = self.identity.signer if self.identity else None
        if signer is not None:
            headers["Signature"] = signer.sign_transaction(tx)

        session = await self._get_session()
        try:
            async with session.put(
                self.base_url + "/", data="\n".join(tx.patch_lines()), headers=headers
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise classify_put_failure(response.status, body, tx)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransientIOError("put", tx.id, e) from e

    async def fetch_state(self, state_uri: str, keypath: str | tuple[str, ...] = ()) -> Any:
        keys = normalize_keypath(keypath)
        url = self.base_url + "/" + "/".join(keys)
        session = await self._get_session()
        try:
            async with session.get(
                url, headers={"State-URI": state_uri, "Accept": "application/json"}
            ) as response:
                if response.status == 404:
                    return None
                if response.status != 200:
                    raise TransientIOError("fetch_state", f"HTTP {response.status}")
                return await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransientIOError("fetch_state", url, e) from e

    async def subscribe(
        self, state_uri: str, keypath: str | tuple[str, ...] = ()
    ) -> StateSubscription:
        sub = StateSubscription(
            state_uri, normalize_keypath(keypath), on_close=self._cancel_subscription
        )
        self._subscription_tasks[sub] = asyncio.create_task(self._subscription_loop(sub))
        return sub

    def _cancel_subscription(self, sub: StateSubscription) -> None:
        task = self._subscription_tasks.pop(sub, None)
        if task is not None:
            task.cancel()

    async def _subscription_loop(self, sub: StateSubscription) -> None:
        """Keep a subscription stream open, reconnecting on failure."""
        while not sub.closed:
            try:
                await self._read_subscription(sub)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"State subscription error ({sub.state_uri}): {e}")
            if sub.closed:
                break
            logger.info(f"Reopening subscription in {self.reconnect_delay}s...")
            try:
                await asyncio.sleep(self.reconnect_delay)
            except asyncio.CancelledError:
                break

    async def _read_subscription(self, sub: StateSubscription) -> None:
        headers = {
            "State-URI": sub.state_uri,
            "Keypath": "/".join(sub.keypath),
            "Subscribe": "states",
            "Accept": "text/event-stream",
        }
        session = await self._get_session()
        async with session.get(
            self.base_url + "/", headers=headers, timeout=aiohttp.ClientTimeout(total=None)
        ) as response:
            if response.status != 200:
                raise TransientIOError("subscribe", f"HTTP {response.status}")
            async for payload in _parse_sse_stream(response.content):
                sub.publish(payload.get("state") if isinstance(payload, dict) else payload)


async def _parse_sse_stream(content: Any) -> AsyncIterator[Any]:
    """Parse a server-sent event stream into JSON payloads."""
    buffer = ""

    async for chunk in content.iter_any():
        buffer += chunk.decode("utf-8")
        buffer = buffer.replace("\r\n", "\n")

        while "\n\n" in buffer:
            event_str, buffer = buffer.split("\n\n", 1)
            payload = _parse_sse_event(event_str)
            if payload is not None:
                yield payload


def _parse_sse_event(event_str: str) -> Any | None:
    """Parse a single SSE event's ``data:`` lines as JSON."""
    data_lines = [
        line[5:].strip() for line in event_str.split("\n") if line.startswith("data:")
    ]
    if not data_lines:
        return None

    data = "\n".join(data_lines)
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse SSE data: {data}")
        return None
