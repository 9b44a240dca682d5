import os, json

# app.py refuses to import without its required environment
os.environ.update({
    "SESSION_SECRET": "test-secret",
    "DISCORD_CLIENT_ID": "client-123",
    "DISCORD_CLIENT_SECRET": "shh",
    "DISCORD_REDIRECT_URI": "http://localhost:3000/auth/discord/callback",
    "ADMIN_PASS_1": "first",
    "ADMIN_PASS_2": "second",
    "DISCORD_BOT_TOKEN": "bot-token",
    "DISCORD_TICKETS_CATEGORY_ID": "900",
    "DISCORD_GUILD_ID": "100",
})

import pytest
import requests

import app as webapp
import discord_api


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode()

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class FakeDiscord:
    """Stands in for requests.request; answers by (method, path under the API base)."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, status=200, payload=None, text=None, exc=None):
        self.routes[(method, path)] = exc or FakeResponse(status, payload, text)

    def __call__(self, method, url, timeout=None, **kwargs):
        assert timeout, "upstream calls must carry a timeout"
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        path = url[len(discord_api.DISCORD_API):] if url.startswith(discord_api.DISCORD_API) else url
        resp = self.routes.get((method, path))
        if resp is None:
            raise AssertionError(f"unexpected upstream call {method} {url}")
        if isinstance(resp, Exception):
            raise resp
        return resp


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeDiscord()
    monkeypatch.setattr(requests, "request", fake)
    return fake


@pytest.fixture
def client():
    webapp.app.config["TESTING"] = True
    with webapp.app.test_client() as c:
        yield c


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess["admin"] = {"ok": True, "ts": 0}
    return client


@pytest.fixture
def user_client(client):
    with client.session_transaction() as sess:
        sess["user"] = {"discordId": "42", "username": "Ola", "avatarUrl": "x"}
    return client
