# ─────────────────────────────────────────────────────────────────────────────
# File: discord_api.py
# Thin Discord REST/OAuth2 client: token exchange, @me, guild channels and
# channel messages. Every call re-fetches; nothing is cached.
# ─────────────────────────────────────────────────────────────────────────────
from __future__ import annotations
import os, logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from errors import ConfigError, UpstreamError

logger = logging.getLogger(__name__)

DISCORD_API   = "https://discord.com/api/v10"
AUTHORIZE_URL = "https://discord.com/oauth2/authorize"
TOKEN_URL     = f"{DISCORD_API}/oauth2/token"
DEFAULT_HTTP_TIMEOUT = 10.0

TEXT_CHANNEL = 0  # Discord channel type for a guild text channel


# ─────────────────────────────────────────────────────────────────────────────
# Result types
# ─────────────────────────────────────────────────────────────────────────────
def _require(data: Any, what: str, *keys: str) -> dict:
    if not isinstance(data, dict):
        raise UpstreamError(f"{what}: expected an object, got {type(data).__name__}")
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        raise UpstreamError(f"{what}: missing {', '.join(missing)}")
    return data


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    token_type: str = "Bearer"
    scope: str = ""
    expires_in: Optional[int] = None

    @classmethod
    def from_json(cls, data: Any) -> "TokenResponse":
        d = _require(data, "token response", "access_token")
        return cls(
            access_token=d["access_token"],
            token_type=d.get("token_type") or "Bearer",
            scope=d.get("scope") or "",
            expires_in=d.get("expires_in"),
        )


@dataclass(frozen=True)
class DiscordUser:
    id: str
    username: str
    global_name: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "DiscordUser":
        d = _require(data, "user profile", "id", "username")
        return cls(id=str(d["id"]), username=d["username"],
                   global_name=d.get("global_name"), avatar=d.get("avatar"))

    @property
    def display_name(self) -> str:
        return self.global_name or self.username


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    type: int
    parent_id: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "Channel":
        d = _require(data, "channel", "id", "type")
        parent = d.get("parent_id")
        return cls(id=str(d["id"]), name=d.get("name") or "", type=int(d["type"]),
                   parent_id=str(parent) if parent else None)


@dataclass(frozen=True)
class Message:
    id: str
    author: str
    author_is_bot: bool
    content: str
    timestamp: Optional[str]

    @classmethod
    def from_json(cls, data: Any) -> "Message":
        d = _require(data, "message", "id")
        author = d.get("author") or {}
        return cls(
            id=str(d["id"]),
            author=author.get("global_name") or author.get("username") or "User",
            author_is_bot=bool(author.get("bot")),
            content=d.get("content") or "",
            timestamp=d.get("timestamp"),
        )


# ─────────────────────────────────────────────────────────────────────────────
# HTTP plumbing
# ─────────────────────────────────────────────────────────────────────────────
def http_timeout() -> float:
    # read per call, after .env is loaded
    return float(os.environ.get("DISCORD_HTTP_TIMEOUT") or DEFAULT_HTTP_TIMEOUT)


def bot_headers(bot_token: Optional[str]) -> dict:
    if not bot_token:
        raise ConfigError("missing_bot_token", "Missing DISCORD_BOT_TOKEN")
    return {"Authorization": f"Bot {bot_token}"}


def _call(method: str, url: str, what: str, **kwargs) -> Any:
    if not url.startswith("http"):
        url = f"{DISCORD_API}{url}"
    try:
        r = requests.request(method, url, timeout=http_timeout(), **kwargs)
    except requests.RequestException as e:
        logger.error("[discord] %s failed: %s", what, e)
        raise UpstreamError(f"{what} failed: {e}") from e

    if not r.ok:
        body = r.text
        logger.error("[discord] %s failed: %s %s", what, r.status_code, body)
        raise UpstreamError(f"{what} failed", upstream_status=r.status_code, body=body)

    if r.status_code == 204 or not r.content:
        return None
    try:
        return r.json()
    except ValueError as e:
        logger.error("[discord] %s returned non-JSON body: %r", what, r.text[:200])
        raise UpstreamError(f"{what} returned non-JSON body") from e


# ─────────────────────────────────────────────────────────────────────────────
# OAuth2 (end-user)
# ─────────────────────────────────────────────────────────────────────────────
def exchange_code(client_id: str, client_secret: str, code: str, redirect_uri: str,
                  code_verifier: Optional[str] = None) -> TokenResponse:
    data = {
        "client_id": client_id,
        "client_secret": client_secret,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    if code_verifier:
        data["code_verifier"] = code_verifier
    payload = _call(
        "POST", TOKEN_URL, "token exchange",
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    return TokenResponse.from_json(payload)


def fetch_current_user(access_token: str) -> DiscordUser:
    payload = _call("GET", "/users/@me", "profile fetch",
                    headers={"Authorization": f"Bearer {access_token}"})
    return DiscordUser.from_json(payload)


# ─────────────────────────────────────────────────────────────────────────────
# Bot REST (tickets)
# ─────────────────────────────────────────────────────────────────────────────
def list_guild_channels(bot_token: Optional[str], guild_id: str) -> list[Channel]:
    payload = _call("GET", f"/guilds/{guild_id}/channels", "guild channels fetch",
                    headers=bot_headers(bot_token))
    if not isinstance(payload, list):
        raise UpstreamError("guild channels fetch: expected a list")
    return [Channel.from_json(c) for c in payload if c]


def fetch_channel_messages(bot_token: Optional[str], channel_id: str, limit: int = 50) -> list[Message]:
    """Most recent ``limit`` messages, newest first (Discord's order)."""
    payload = _call("GET", f"/channels/{channel_id}/messages", "channel messages fetch",
                    params={"limit": limit}, headers=bot_headers(bot_token))
    if not isinstance(payload, list):
        raise UpstreamError("channel messages fetch: expected a list")
    return [Message.from_json(m) for m in payload if m]


def create_message(bot_token: Optional[str], channel_id: str, content: str) -> Optional[dict]:
    return _call("POST", f"/channels/{channel_id}/messages", "message send",
                 json={"content": content}, headers=bot_headers(bot_token))
