"""
Messaging transport — the only component that talks to the outside world.

The run loop needs four things from a transport:
    await transport.connect()
    await transport.await_pairing()     # suspends until the device is paired
    await transport.await_ready()       # suspends until the session is usable
    await transport.resolve_recipient(id) -> chat id or None
    await transport.send(chat_id, payload)  # raises TransportError

Implementations:
    GatewayTransport  — WhatsApp HTTP gateway (WAHA-compatible REST API)
    DryRunTransport   — resolves and "sends" in memory, no I/O
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import aiohttp

from campaign.errors import TransportError
from campaign.messages import Payload

logger = logging.getLogger("broadcast.transport")


class SessionStatus:
    STARTING = "STARTING"
    SCAN_QR_CODE = "SCAN_QR_CODE"
    WORKING = "WORKING"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class Transport(ABC):
    """Interface the campaign engine depends on."""

    async def connect(self):
        pass

    async def await_pairing(self):
        pass

    async def await_ready(self):
        pass

    @abstractmethod
    async def resolve_recipient(self, recipient: str) -> Optional[str]:
        """Chat id for `recipient`, or None if unknown to the network."""

    @abstractmethod
    async def send(self, resolved_id: str, payload: Payload):
        """Deliver `payload`. Raises TransportError on failure."""

    async def close(self):
        pass


def default_chat_id(recipient: str) -> str:
    return recipient if "@" in recipient else f"{recipient}@c.us"


class GatewayTransport(Transport):
    """
    Client for a WhatsApp HTTP gateway.

    Lifecycle:
        transport = GatewayTransport("http://localhost:3000", session="default")
        await transport.connect()
        await transport.await_pairing()   # writes qr.png while a scan is pending
        await transport.await_ready()     # removes qr.png
        ...
        await transport.close()
    """

    def __init__(
        self,
        base_url: str,
        session: str = "default",
        api_key: str = "",
        timeout_seconds: float = 60,
        pairing_timeout_seconds: float = 600,
        poll_interval_seconds: float = 3,
        qr_path: str = "qr.png",
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.pairing_timeout_seconds = pairing_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.qr_path = qr_path
        self._http: Optional[aiohttp.ClientSession] = None

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(self):
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        self._http = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
        )
        logger.info(f"Connecting to gateway {self.base_url} (session '{self.session}')")
        try:
            await self._request("POST", "/api/sessions/start", json={"name": self.session})
        except TransportError as e:
            # 422: session already started
            if e.status != 422:
                raise
            logger.info(f"Session '{self.session}' already started")

    async def await_pairing(self):
        """
        Suspend until the session has left the pairing phase.

        While the gateway is waiting for a QR scan, the current code is
        saved to `qr_path` so it can be picked up (e.g. as a CI artifact).
        """
        deadline = time.monotonic() + self.pairing_timeout_seconds
        announced = False
        while True:
            status = await self.session_status()
            if status == SessionStatus.SCAN_QR_CODE:
                await self._save_qr()
                if not announced:
                    logger.info(f"QR RECEIVED. Scan the code saved to {self.qr_path}")
                    announced = True
            elif status in (SessionStatus.FAILED, SessionStatus.STOPPED):
                raise TransportError(f"Session '{self.session}' is {status}")
            elif status != SessionStatus.STARTING:
                logger.info(f"✅ Authenticated (status {status})")
                return
            await self._wait_or_timeout(deadline, "pairing")

    async def await_ready(self):
        """Suspend until the session reports WORKING."""
        deadline = time.monotonic() + self.pairing_timeout_seconds
        while True:
            status = await self.session_status()
            if status == SessionStatus.WORKING:
                break
            if status in (SessionStatus.FAILED, SessionStatus.STOPPED):
                raise TransportError(f"Session '{self.session}' is {status}")
            await self._wait_or_timeout(deadline, "readiness")

        if self.qr_path and os.path.exists(self.qr_path):
            os.remove(self.qr_path)
        logger.info("🤖 Session ready")

    async def close(self):
        if self._http is not None:
            await self._http.close()
            self._http = None

    # ── Operations ───────────────────────────────────────────────────

    async def session_status(self) -> str:
        data = await self._request("GET", f"/api/sessions/{self.session}")
        return (data or {}).get("status", SessionStatus.STARTING)

    async def resolve_recipient(self, recipient: str) -> Optional[str]:
        phone = recipient.split("@")[0]
        data = await self._request(
            "GET",
            "/api/contacts/check-exists",
            params={"phone": phone, "session": self.session},
        )
        if not data or not data.get("numberExists"):
            logger.debug(f"recipient_unknown: {recipient}")
            return None
        return data.get("chatId") or default_chat_id(recipient)

    async def send(self, resolved_id: str, payload: Payload):
        if payload.media is not None:
            body = {
                "session": self.session,
                "chatId": resolved_id,
                "file": {
                    "mimetype": payload.media.mimetype,
                    "filename": payload.media.filename,
                    "data": payload.media.data,
                },
                "caption": payload.text,
            }
            await self._request("POST", "/api/sendImage", json=body)
        else:
            body = {"session": self.session, "chatId": resolved_id, "text": payload.text}
            await self._request("POST", "/api/sendText", json=body)

    # ── Internals ────────────────────────────────────────────────────

    async def _save_qr(self):
        try:
            image = await self._request(
                "GET", f"/api/{self.session}/auth/qr", params={"format": "image"}, raw=True
            )
        except TransportError as e:
            logger.warning(f"QR fetch failed: {e}")
            return
        with open(self.qr_path, "wb") as f:
            f.write(image)

    async def _wait_or_timeout(self, deadline: float, phase: str):
        if time.monotonic() >= deadline:
            raise TransportError(
                f"Timed out after {self.pairing_timeout_seconds:.0f}s waiting for {phase}"
            )
        await asyncio.sleep(self.poll_interval_seconds)

    async def _request(self, method: str, path: str, raw: bool = False, **kwargs):
        if self._http is None:
            raise TransportError("Transport is not connected")
        url = f"{self.base_url}{path}"
        try:
            async with self._http.request(method, url, **kwargs) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise TransportError(
                        f"{method} {path} returned {resp.status}: {body[:200]}",
                        status=resp.status,
                    )
                if raw:
                    return await resp.read()
                if resp.content_type == "application/json":
                    return await resp.json()
                return None
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {path} timed out") from e


class DryRunTransport(Transport):
    """
    Never sends anything. Every recipient resolves (unless listed in
    `unknown`) and every send is recorded in `sent`.
    """

    def __init__(self, unknown=()):
        self.unknown = set(unknown)
        self.sent: List[Tuple[str, Payload]] = []

    async def resolve_recipient(self, recipient: str) -> Optional[str]:
        if recipient in self.unknown:
            return None
        return default_chat_id(recipient)

    async def send(self, resolved_id: str, payload: Payload):
        preview = payload.text[:40].replace("\n", " ")
        logger.info(f"DRY_RUN: to={resolved_id} text={preview!r}")
        self.sent.append((resolved_id, payload))
