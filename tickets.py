# ─────────────────────────────────────────────────────────────────────────────
# File: tickets.py
# Admin support inbox: ticket channels live under one Discord category and the
# bot reads/writes them on the admin's behalf.
# ─────────────────────────────────────────────────────────────────────────────
from __future__ import annotations
import logging
from typing import Optional

import discord_api
from discord_api import TEXT_CHANNEL
from errors import BadRequest

logger = logging.getLogger(__name__)

MESSAGE_LIMIT = 50
MAX_CONTENT = 1900  # Discord caps messages at 2000


def _snowflake(value, missing: str, invalid: str) -> str:
    value = (value or "").strip()
    if not value:
        raise BadRequest(missing)
    # snowflakes are ascii digits; keeps ids from reaching other API paths
    if not (value.isascii() and value.isdigit()):
        raise BadRequest(invalid)
    return value


def list_tickets(bot_token: Optional[str], guild_id: Optional[str], category_id: Optional[str]) -> list[dict]:
    if not category_id:
        raise BadRequest("missing_tickets_category")
    guild_id = _snowflake(guild_id, "missing_guild_id", "invalid_guild_id")

    channels = discord_api.list_guild_channels(bot_token, guild_id)
    return [
        {"id": ch.id, "name": ch.name}
        for ch in channels
        if ch.parent_id == str(category_id) and ch.type == TEXT_CHANNEL
    ]


def read_ticket(bot_token: Optional[str], channel_id: str) -> list[dict]:
    channel_id = _snowflake(channel_id, "missing_channel_id", "invalid_channel_id")

    msgs = discord_api.fetch_channel_messages(bot_token, channel_id, limit=MESSAGE_LIMIT)
    # Discord returns newest first
    return [
        {
            "id": m.id,
            "author": m.author,
            "authorType": "bot" if m.author_is_bot else "user",
            "content": m.content,
            "timestamp": m.timestamp,
        }
        for m in reversed(msgs)
    ]


def send_to_ticket(bot_token: Optional[str], channel_id: str, content) -> None:
    channel_id = _snowflake(channel_id, "missing_channel_id", "invalid_channel_id")
    content = (content if isinstance(content, str) else "").strip()
    if not content:
        raise BadRequest("missing_content")

    if len(content) > MAX_CONTENT:
        logger.info("[tickets] truncating reply to %s from %s chars", channel_id, len(content))
        content = content[:MAX_CONTENT]
    discord_api.create_message(bot_token, channel_id, content)
