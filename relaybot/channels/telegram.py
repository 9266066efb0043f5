"""Telegram channel implementation using raw HTTP polling."""

import asyncio
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from relaybot.bus.events import OutboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.channels.base import BaseChannel
from relaybot.config.loader import get_data_dir
from relaybot.config.schema import TelegramConfig
from relaybot.providers.transcription import GroqTranscriptionProvider

# Telegram rejects messages longer than this
MAX_MESSAGE_LENGTH = 4096


class TelegramChannel(BaseChannel):
    """
    Telegram integration channel.

    Uses httpx for long-polling the getUpdates endpoint. Senders are
    identified as ``"<user_id>|<username>"`` so the allow list may hold
    either form. Photos are downloaded into ``media_dir`` and handed to the
    agent as media; voice notes are transcribed when a transcriber is set.
    """

    def __init__(
        self,
        config: TelegramConfig,
        bus: MessageBus,
        media_dir: Path | None = None,
        transcriber: GroqTranscriptionProvider | None = None,
    ) -> None:
        super().__init__(config, bus)
        self.api_url = f"https://api.telegram.org/bot{config.token}"
        self.file_url = f"https://api.telegram.org/file/bot{config.token}"
        self.media_dir = media_dir or get_data_dir() / "media"
        self.transcriber = transcriber
        self._offset = 0
        self._client: httpx.AsyncClient | None = None
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        return "telegram"

    async def start(self) -> None:
        """Initialize the client and start the polling loop."""
        if not self.config.token:
            logger.warning("Telegram token is empty. Channel disabled.")
            return

        self._running = True
        self._client = httpx.AsyncClient(timeout=60.0)
        self._poll_task = asyncio.create_task(self._poll_updates())
        logger.info("Telegram channel started.")

    async def stop(self) -> None:
        """Stop polling and close the client."""
        self._running = False
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self._client:
            await self._client.aclose()
            self._client = None

        logger.info("Telegram channel stopped.")

    async def send(self, msg: OutboundMessage) -> None:
        """Send a message to its Telegram chat, split into API-sized chunks."""
        if not self._client or not self._running:
            logger.warning("Cannot send Telegram message: channel not running.")
            return

        url = f"{self.api_url}/sendMessage"
        text = msg.content or "(empty response)"
        for start in range(0, len(text), MAX_MESSAGE_LENGTH):
            payload: dict[str, Any] = {"chat_id": msg.chat_id, "text": text[start : start + MAX_MESSAGE_LENGTH]}
            if msg.reply_to:
                payload["reply_to_message_id"] = msg.reply_to
            try:
                response = await self._client.post(url, json=payload, timeout=10.0)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to send Telegram message to {msg.chat_id}: {e}")
                return

    async def _poll_updates(self) -> None:
        """Long-polling loop for receiving updates."""
        if not self._client:
            return

        url = f"{self.api_url}/getUpdates"

        while self._running:
            try:
                params: dict[str, Any] = {"offset": self._offset, "timeout": 30}
                response = await self._client.get(url, params=params, timeout=40.0)

                if response.status_code != 200:
                    logger.warning(f"Telegram polling returned HTTP {response.status_code}")
                    await asyncio.sleep(2)
                    continue

                data = response.json()
                if not data.get("ok"):
                    logger.error(f"Telegram API error: {data.get('description')}")
                    await asyncio.sleep(2)
                    continue

                for update in data.get("result", []):
                    self._offset = max(self._offset, update["update_id"] + 1)
                    await self._process_update(update)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Telegram polling error: {e}")
                await asyncio.sleep(2)

    async def _process_update(self, update: dict[str, Any]) -> None:
        """Process a single incoming Telegram update."""
        message = update.get("message")
        if not message:
            return

        chat = message.get("chat", {})
        from_user = message.get("from", {})
        user_id = str(from_user.get("id"))
        username = from_user.get("username", "")
        sender_id = f"{user_id}|{username}" if username else user_id

        if not self.is_allowed(sender_id):
            logger.warning(f"Unauthorized telegram sender ignored: {sender_id}")
            return

        content_parts: list[str] = []
        media_paths: list[str] = []
        for key in ("text", "caption"):
            if message.get(key):
                content_parts.append(message[key])

        if message.get("photo"):
            # Sizes are ordered smallest first
            photo = message["photo"][-1]
            path = await self._download_file(photo["file_id"], ".jpg")
            if path:
                media_paths.append(str(path))
                content_parts.append(f"[image: {path.name}]")
            else:
                content_parts.append("[image: download failed]")

        voice = message.get("voice") or message.get("audio")
        if voice:
            content_parts.append(await self._voice_to_text(voice))

        document = message.get("document")
        if document:
            content_parts.append(f"[file: {document.get('file_name') or document.get('file_id')}]")

        if not content_parts:
            return

        content = "\n".join(content_parts)
        await self._handle_message(
            sender_id=sender_id,
            chat_id=str(chat.get("id")),
            content=content,
            media=media_paths,
            metadata={
                "message_id": message.get("message_id"),
                "username": username,
                "first_name": from_user.get("first_name", ""),
                "is_group": chat.get("type", "private") != "private",
            },
        )
        logger.debug(f"Received Telegram message from {sender_id}: {content[:50]}")

    async def _voice_to_text(self, voice: dict[str, Any]) -> str:
        path = await self._download_file(voice["file_id"], ".ogg")
        if path is None:
            return "[voice: download failed]"
        if self.transcriber:
            text = await self.transcriber.transcribe(path)
            if text:
                return f"[transcription: {text}]"
        return f"[voice: {path.name}]"

    async def _download_file(self, file_id: str, default_suffix: str) -> Path | None:
        """Resolve a file through getFile and save it under ``media_dir``."""
        if not self._client:
            return None

        try:
            response = await self._client.get(f"{self.api_url}/getFile", params={"file_id": file_id}, timeout=10.0)
            response.raise_for_status()
            remote_path = response.json()["result"]["file_path"]

            download = await self._client.get(f"{self.file_url}/{remote_path}", timeout=60.0)
            download.raise_for_status()

            self.media_dir.mkdir(parents=True, exist_ok=True)
            local_path = self.media_dir / f"{file_id}{Path(remote_path).suffix or default_suffix}"
            local_path.write_bytes(download.content)
            return local_path
        except (httpx.HTTPError, KeyError, ValueError, OSError) as e:
            logger.warning(f"Telegram file download failed for {file_id}: {e}")
            return None
