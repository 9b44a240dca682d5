# ─────────────────────────────────────────────────────────────────────────────
# File: errors.py
# Error taxonomy shared by the web app, the Discord client and the bot.
# ─────────────────────────────────────────────────────────────────────────────
from __future__ import annotations
from typing import Optional


class AppError(Exception):
    status = 500
    code = "internal_error"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None):
        self.code = code or self.code
        super().__init__(message or self.code)


class BadRequest(AppError):
    status = 400
    code = "bad_request"


class Unauthorized(AppError):
    status = 401
    code = "unauthorized"


class UpstreamError(AppError):
    """Discord answered with a non-success status, timed out, or sent a body we can't use.

    ``status`` on the instance is what we return to the browser (always 500);
    the upstream status and body stay on ``upstream_status``/``body`` for the log.
    """
    code = "upstream_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None, body: str = ""):
        super().__init__(message=message)
        self.upstream_status = upstream_status
        self.body = body


class ConfigError(AppError):
    code = "config_error"
