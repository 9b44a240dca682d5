# ─────────────────────────────────────────────────────────────────────────────
# File: oauth.py
# Discord OAuth2 helpers: handshake (state + PKCE), authorize URL, identity.
# ─────────────────────────────────────────────────────────────────────────────
from __future__ import annotations
import base64, hashlib, secrets, time
from typing import Optional
from urllib.parse import urlencode

from discord_api import AUTHORIZE_URL, DiscordUser

CDN = "https://cdn.discordapp.com"
DEFAULT_AVATAR_URL = f"{CDN}/embed/avatars/0.png"


def generate_state() -> str:
    return secrets.token_hex(16)


def generate_verifier() -> str:
    # 32 random bytes -> 43 url-safe chars, the RFC 7636 minimum
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("ascii").rstrip("=")


def code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def new_handshake(use_pkce: bool = True) -> dict:
    """The pending handshake kept in the session until the callback consumes it."""
    return {
        "state": generate_state(),
        "verifier": generate_verifier() if use_pkce else None,
        "created_at": int(time.time()),
    }


def authorize_url(client_id: str, redirect_uri: str, handshake: dict, scope: str = "identify") -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "state": handshake["state"],
        "prompt": "none",
    }
    if handshake.get("verifier"):
        params["code_challenge"] = code_challenge(handshake["verifier"])
        params["code_challenge_method"] = "S256"
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def handshake_expired(handshake: dict, ttl_seconds: int, now: Optional[float] = None) -> bool:
    if ttl_seconds <= 0:
        return False
    now = time.time() if now is None else now
    return now - int(handshake.get("created_at") or 0) > ttl_seconds


def avatar_url(user_id: str, avatar: Optional[str]) -> str:
    if not avatar:
        return DEFAULT_AVATAR_URL
    ext = "gif" if avatar.startswith("a_") else "png"
    return f"{CDN}/avatars/{user_id}/{avatar}.{ext}?size=128"


def session_identity(user: DiscordUser) -> dict:
    return {
        "discordId": user.id,
        "username": user.display_name,
        "globalName": user.global_name,
        "avatar": user.avatar,
        "avatarUrl": avatar_url(user.id, user.avatar),
    }
