"""Telegram transport built on python-telegram-bot.

Chat ids are used as conversation ids and user ids as identities, so group
chats (negative ids) and private chats map onto the generic conversation
model without translation.
"""

from __future__ import annotations

import logging
from typing import Any

from telegram import InputFile, Message, MessageEntity, Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from butler.enums import IndicatorKind, MessageKind
from butler.exceptions import TransportError
from butler.models.domain import InboundMessage, MediaAttachment
from butler.transport.base import MessageCallback

logger = logging.getLogger(__name__)

TELEGRAM_MAX_MESSAGE_LENGTH = 4096


def split_text(text: str, max_len: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> list[str]:
    """Split text into chunks on line boundaries, hard-slicing overlong lines."""
    if not text:
        return [""]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        if len(current) + len(line) <= max_len:
            current += line
            continue
        if current:
            chunks.append(current)
            current = ""
        if len(line) > max_len:
            for i in range(0, len(line), max_len):
                part = line[i : i + max_len]
                if len(part) == max_len:
                    chunks.append(part)
                else:
                    current = part
        else:
            current = line
    if current:
        chunks.append(current)
    return chunks


def _attachment_for(message: Message) -> tuple[MessageKind, MediaAttachment | None]:
    if message.photo:
        largest = message.photo[-1]
        return MessageKind.IMAGE, MediaAttachment(
            file_id=largest.file_id, mime_type="image/jpeg", size=largest.file_size
        )
    if message.sticker:
        s = message.sticker
        mime = "video/webm" if s.is_video else "application/x-tgsticker" if s.is_animated else "image/webp"
        return MessageKind.STICKER, MediaAttachment(
            file_id=s.file_id, mime_type=mime, size=s.file_size
        )
    for attr, kind, default_mime in (
        ("video", MessageKind.VIDEO, "video/mp4"),
        ("video_note", MessageKind.VIDEO, "video/mp4"),
        ("animation", MessageKind.VIDEO, "video/mp4"),
        ("audio", MessageKind.AUDIO, "audio/mpeg"),
        ("voice", MessageKind.AUDIO, "audio/ogg"),
        ("document", MessageKind.DOCUMENT, None),
    ):
        media = getattr(message, attr, None)
        if media is None:
            continue
        return kind, MediaAttachment(
            file_id=media.file_id,
            mime_type=getattr(media, "mime_type", None) or default_mime,
            file_name=getattr(media, "file_name", None),
            size=media.file_size,
        )
    return MessageKind.TEXT, None


class TelegramTransport:
    """Transport implementation for the Telegram Bot API."""

    def __init__(self, token: str, *, application: Application | None = None):
        self.application = application or Application.builder().token(token).build()
        self._on_message: MessageCallback | None = None
        # @username -> user id, learned from senders the bot has seen
        self._usernames: dict[str, str] = {}
        self.application.add_handler(
            MessageHandler(
                filters.UpdateType.MESSAGE & ~filters.StatusUpdate.ALL,
                self._handle_update,
            )
        )

    @property
    def bot(self) -> Any:
        return self.application.bot

    @property
    def own_identity(self) -> str | None:
        try:
            return str(self.bot.id)
        except RuntimeError:
            # Bot.id is only available after initialize()
            return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, on_message: MessageCallback) -> None:
        self._on_message = on_message
        logger.info("Starting Telegram transport...")
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling(allowed_updates=[Update.MESSAGE])
        logger.info("Telegram transport polling as %s", self.own_identity)

    async def stop_intake(self) -> None:
        logger.info("Stopping Telegram polling...")
        if self.application.updater and self.application.updater.running:
            await self.application.updater.stop()
        # Application.stop() hands queued updates to the callback before returning
        if self.application.running:
            await self.application.stop()

    async def stop(self) -> None:
        logger.info("Stopping Telegram transport...")
        await self.stop_intake()
        await self.application.shutdown()
        logger.info("Telegram transport stopped")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.message
        if message is None or self._on_message is None:
            return
        inbound = self.to_inbound(message)
        if inbound is None:
            return
        await self._on_message(inbound)

    def remember_user(self, user: Any) -> None:
        if user is not None and user.username:
            self._usernames[user.username.lower()] = str(user.id)

    def resolve_username(self, username: str) -> str | None:
        return self._usernames.get(username.lstrip("@").lower())

    def to_inbound(self, message: Message) -> InboundMessage | None:
        """Convert a Telegram message; returns None for messages without a sender."""
        user = message.from_user
        if user is None:
            return None
        self.remember_user(user)

        kind, media = _attachment_for(message)
        mentions: list[str] = []
        mention_types = [MessageEntity.MENTION, MessageEntity.TEXT_MENTION]
        if message.text is not None:
            entities = message.parse_entities(mention_types)
        elif message.caption is not None:
            entities = message.parse_caption_entities(mention_types)
        else:
            entities = {}
        for entity, value in entities.items():
            if entity.type == MessageEntity.TEXT_MENTION and entity.user is not None:
                self.remember_user(entity.user)
                mentions.append(str(entity.user.id))
                continue
            resolved = self.resolve_username(value)
            if resolved is None:
                logger.debug("Unknown mention %s in chat %s", value, message.chat_id)
                continue
            mentions.append(resolved)

        reply_to_sender = None
        replied = message.reply_to_message
        if replied is not None and replied.from_user is not None:
            self.remember_user(replied.from_user)
            reply_to_sender = str(replied.from_user.id)

        return InboundMessage(
            message_id=f"{message.chat_id}:{message.message_id}",
            conversation_id=str(message.chat_id),
            sender=str(user.id),
            text=message.text or message.caption or "",
            timestamp=message.date,
            from_me=self.own_identity == str(user.id),
            kind=kind,
            media=media,
            sender_name=user.full_name,
            mentions=mentions,
            reply_to_sender=reply_to_sender,
        )

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_text(self, conversation_id: str, text: str) -> None:
        for chunk in split_text(text):
            try:
                await self.bot.send_message(
                    chat_id=conversation_id, text=chunk, parse_mode=ParseMode.MARKDOWN
                )
                continue
            except TelegramError as e:
                logger.warning(
                    "Markdown send to chat %s failed (falling back to plain text): %s",
                    conversation_id,
                    e,
                )
            try:
                await self.bot.send_message(chat_id=conversation_id, text=chunk)
            except TelegramError as e:
                raise TransportError(f"Failed to send message to {conversation_id}: {e}") from e
        logger.debug("Sent %d chars to chat %s", len(text), conversation_id)

    async def send_media(
        self,
        conversation_id: str,
        data: bytes,
        *,
        mime_type: str | None = None,
        file_name: str | None = None,
        caption: str | None = None,
    ) -> None:
        mime = (mime_type or "").lower()
        payload = InputFile(data, filename=file_name)
        try:
            if mime.startswith("image/") and mime != "image/webp":
                await self.bot.send_photo(chat_id=conversation_id, photo=payload, caption=caption)
            elif mime.startswith("video/"):
                await self.bot.send_video(chat_id=conversation_id, video=payload, caption=caption)
            elif mime.startswith("audio/"):
                await self.bot.send_audio(chat_id=conversation_id, audio=payload, caption=caption)
            else:
                await self.bot.send_document(
                    chat_id=conversation_id, document=payload, caption=caption
                )
        except TelegramError as e:
            raise TransportError(f"Failed to send media to {conversation_id}: {e}") from e
        logger.info("Media sent to chat %s (%d bytes)", conversation_id, len(data))

    async def send_transient_indicator(
        self, message: InboundMessage, kind: IndicatorKind
    ) -> None:
        # Chat actions expire on their own; there is nothing to clear
        if kind is not IndicatorKind.PROCESSING:
            return
        try:
            await self.bot.send_chat_action(
                chat_id=message.conversation_id, action=ChatAction.TYPING
            )
        except TelegramError as e:
            raise TransportError(f"Failed to send chat action: {e}") from e

    async def download_media(self, message: InboundMessage) -> bytes:
        if message.media is None:
            raise TransportError(f"Message {message.message_id} has no media")
        try:
            file = await self.bot.get_file(message.media.file_id)
            data = await file.download_as_bytearray()
        except TelegramError as e:
            raise TransportError(f"Failed to download media for {message.message_id}: {e}") from e
        return bytes(data)
