# src/taskflow/notify/matrix_push.py

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse, RoomSendResponse

from ..errors import TransientDeliveryFailure

logger = logging.getLogger(__name__)


def _session_path(store_dir: Path) -> Path:
    return store_dir / "session.json"


def _load_json(path: Path) -> dict[str, Any]:
    val = json.loads(path.read_text("utf-8"))
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.debug("chmod failed for %s", path, exc_info=True)


async def create_matrix_client(
    *,
    homeserver: str,
    user_id: str,
    password: str,
    store_dir: Path,
    device_name: str = "taskflow (Python)",
) -> AsyncClient | None:
    """
    Create a logged-in Matrix AsyncClient.

    session.json under store_dir keeps the access token/device id across
    restarts; the password is only needed to bootstrap it once.
    """
    homeserver = (homeserver or "").strip()
    user_id = (user_id or "").strip()
    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set TASKFLOW_MATRIX_HOMESERVER and TASKFLOW_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = _session_path(store_dir)

    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False),
    )

    if session_file.exists():
        try:
            data = _load_json(session_file)
            access_token = data.get("access_token")
            sess_user_id = data.get("user_id")
            device_id = data.get("device_id")
            if not access_token or not sess_user_id or not device_id:
                raise ValueError("session.json is missing required fields")

            client.access_token = str(access_token)
            client.user_id = str(sess_user_id)
            client.device_id = str(device_id)
            logger.info("Matrix session restored for %s", client.user_id)
            return client
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore Matrix session.json, will try password login: %r", e)

    if not password:
        logger.error(
            "Matrix session.json not found and password is not set. "
            "Set TASKFLOW_MATRIX_PASSWORD once to bootstrap a session."
        )
        await client.close()
        return None

    logger.info("Logging in to Matrix to bootstrap a new session (device_name=%r)...", device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        _atomic_write_json(
            session_file,
            {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
        )
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        logger.warning("Failed to write Matrix session.json (%s): %r", session_file, e)

    return client


class MatrixPushNotifier:
    """
    Push delivery through Matrix: the user's push token is the room id the
    reminder is posted to.

    The client is created lazily on first use, inside the scheduler's event
    loop.
    """

    def __init__(self, *, homeserver: str, user_id: str, password: str, store_dir: Path) -> None:
        self._homeserver = homeserver
        self._user_id = user_id
        self._password = password
        self._store_dir = Path(store_dir)
        self._client: AsyncClient | None = None
        self._lock: asyncio.Lock | None = None

    async def _get_client(self) -> AsyncClient:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._client is None:
                self._client = await create_matrix_client(
                    homeserver=self._homeserver,
                    user_id=self._user_id,
                    password=self._password,
                    store_dir=self._store_dir,
                )
            if self._client is None:
                raise TransientDeliveryFailure("push", None, "Matrix client unavailable")
            return self._client

    async def notify_push(self, token: str, title: str, body: str) -> None:
        client = await self._get_client()
        content = {
            "msgtype": "m.text",
            "body": f"{title}: {body}",
            "format": "org.matrix.custom.html",
            "formatted_body": f"<b>{title}</b>: {body}",
        }
        try:
            resp = await client.room_send(
                room_id=token,
                message_type="m.room.message",
                content=content,
                ignore_unverified_devices=True,
            )
        except Exception as e:
            raise TransientDeliveryFailure("push", token, repr(e)) from e

        if not isinstance(resp, RoomSendResponse):
            logger.error("Error sending push notification to %s: %r", token, resp)
            raise TransientDeliveryFailure("push", token, repr(resp))
        logger.info("Push notification sent to %s", token)

    async def notify_email(self, address: str, subject: str, body: str) -> None:
        raise TransientDeliveryFailure("email", address, "Matrix notifier cannot deliver email")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
