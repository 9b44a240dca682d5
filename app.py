# ─────────────────────────────────────────────────────────────────────────────
# File: app.py
# LiteSolutions site — static pages, Discord OAuth client panel, admin login,
# and the admin ticket inbox bridged to Discord through the bot.
# ─────────────────────────────────────────────────────────────────────────────
from __future__ import annotations
import os, hmac, logging, time
from datetime import timedelta
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import (
    Flask, request, redirect, session, jsonify, send_from_directory
)
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv

# ─────────────────────────────────────────────────────────────────────────────
# Env + App
# ─────────────────────────────────────────────────────────────────────────────
ROOT = Path(__file__).parent
PUBLIC_DIR = ROOT / "public"
load_dotenv(ROOT / ".env")  # before the local modules read their settings

import discord_api, tickets
from errors import AppError, BadRequest, ConfigError, UpstreamError
from oauth import authorize_url, handshake_expired, new_handshake, session_identity

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

REQUIRED_ENV = (
    "SESSION_SECRET",
    # client panel OAuth
    "DISCORD_CLIENT_ID", "DISCORD_CLIENT_SECRET", "DISCORD_REDIRECT_URI",
    # admin panel
    "ADMIN_PASS_1",
)


def require_env(*names: str):
    missing = [n for n in names if not os.environ.get(n)]
    if missing:
        for n in missing:
            logger.error("[env] Missing %s", n)
        raise ConfigError("missing_env", f"Missing required environment: {', '.join(missing)}")


require_env(*REQUIRED_ENV)

APP_ENV    = os.environ.get("APP_ENV") or os.environ.get("NODE_ENV") or "development"
IS_PROD    = APP_ENV == "production"
PORT       = int(os.environ.get("PORT", "3000"))
CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "")

# Discord OAuth (client panel)
DISCORD_CLIENT_ID     = os.environ["DISCORD_CLIENT_ID"]
DISCORD_CLIENT_SECRET = os.environ["DISCORD_CLIENT_SECRET"]
DISCORD_REDIRECT_URI  = os.environ["DISCORD_REDIRECT_URI"]
POST_LOGIN_REDIRECT   = os.environ.get("POST_LOGIN_REDIRECT", "/panel.html")
OAUTH_USE_PKCE        = os.environ.get("OAUTH_USE_PKCE", "true").lower() not in ("0", "false", "no", "off")
OAUTH_STATE_TTL       = int(os.environ.get("OAUTH_STATE_TTL", "600"))

# Admin login (second password is optional)
ADMIN_PASS_1 = os.environ["ADMIN_PASS_1"]
ADMIN_PASS_2 = os.environ.get("ADMIN_PASS_2", "")

# Discord bot (admin ticket inbox)
DISCORD_BOT_TOKEN           = os.environ.get("DISCORD_BOT_TOKEN", "")
DISCORD_TICKETS_CATEGORY_ID = os.environ.get("DISCORD_TICKETS_CATEGORY_ID", "")
DISCORD_GUILD_ID            = os.environ.get("DISCORD_GUILD_ID", "")

app = Flask(__name__, static_folder=str(PUBLIC_DIR), static_url_path="")
app.secret_key = os.environ["SESSION_SECRET"]
app.config.update(
    SESSION_COOKIE_NAME="ls_sid",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=IS_PROD,
    PERMANENT_SESSION_LIFETIME=timedelta(days=7),
)
# one reverse proxy hop in front (Railway)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

if CORS_ORIGIN:
    CORS(app, origins=[CORS_ORIGIN], supports_credentials=True,
         resources=[r"/api/*", r"/auth/*", r"/admin/auth/*"])

# ─────────────────────────────────────────────────────────────────────────────
# Helpers (session + guards)
# ─────────────────────────────────────────────────────────────────────────────
def session_user() -> Optional[dict]:
    return session.get("user")

def is_admin() -> bool:
    return bool((session.get("admin") or {}).get("ok"))

def require_user(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not session_user():
            return jsonify({"error": "unauthorized"}), 401
        return view(*args, **kwargs)
    return wrapped

def require_admin(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not is_admin():
            return jsonify({"error": "admin_unauthorized"}), 401
        return view(*args, **kwargs)
    return wrapped

def _same(given, expected: str) -> bool:
    return isinstance(given, str) and hmac.compare_digest(given.encode(), expected.encode())

def check_admin_passwords(pass1, pass2=None) -> bool:
    if not _same(pass1, ADMIN_PASS_1):
        return False
    if ADMIN_PASS_2:
        return _same(pass2, ADMIN_PASS_2)
    return True

def text(body: str, status: int):
    return body, status, {"Content-Type": "text/plain; charset=utf-8"}

def page(name: str):
    resp = send_from_directory(PUBLIC_DIR, name)
    resp.headers["Cache-Control"] = "no-store"
    return resp

@app.errorhandler(AppError)
def handle_app_error(e: AppError):
    return jsonify({"error": e.code}), e.status

@app.errorhandler(404)
def not_found(_e):
    return text("Not Found", 404)

# ─────────────────────────────────────────────────────────────────────────────
# Client auth (Discord OAuth2)
# ─────────────────────────────────────────────────────────────────────────────
@app.route("/auth/discord")
def discord_login():
    handshake = new_handshake(use_pkce=OAUTH_USE_PKCE)
    session["oauth"] = handshake  # a second start discards the first
    return redirect(authorize_url(DISCORD_CLIENT_ID, DISCORD_REDIRECT_URI, handshake))

def complete_login(pending: Optional[dict], args) -> dict:
    """Validate the callback against the pending handshake, then exchange and fetch the profile."""
    if args.get("error"):
        raise BadRequest("access_denied", "Discord authorization was denied")
    code = args.get("code")
    if not code:
        raise BadRequest("missing_code", "Missing code")
    if not pending:
        raise BadRequest("no_pending_login", "No login in progress")
    state = args.get("state")
    if not state or state != pending.get("state"):
        raise BadRequest("invalid_state", "Invalid state")
    if handshake_expired(pending, OAUTH_STATE_TTL):
        raise BadRequest("expired_state", "Login expired, please try again")

    token = discord_api.exchange_code(
        DISCORD_CLIENT_ID, DISCORD_CLIENT_SECRET, code, DISCORD_REDIRECT_URI,
        code_verifier=pending.get("verifier"),
    )
    user = discord_api.fetch_current_user(token.access_token)
    return session_identity(user)

@app.route("/auth/discord/callback")
def discord_callback():
    # single use: consumed whether this attempt succeeds or not
    pending = session.pop("oauth", None)
    try:
        identity = complete_login(pending, request.args)
    except BadRequest as e:
        logger.warning("[oauth] callback rejected: %s", e.code)
        return text(str(e), 400)
    except (UpstreamError, ConfigError) as e:
        logger.error("[oauth] login failed: %s", e)
        return text("Discord login failed", 500)

    session["user"] = identity
    session.permanent = True
    logger.info("[oauth] %s (%s) signed in", identity["username"], identity["discordId"])
    return redirect(POST_LOGIN_REDIRECT)

@app.post("/auth/logout")
def logout():
    session.pop("user", None)
    session.pop("oauth", None)
    if not is_admin():
        session.clear()  # empty session -> Flask drops the cookie
    return jsonify({"ok": True})

@app.get("/api/me")
@require_user
def api_me():
    return jsonify({"user": session_user()})

# ─────────────────────────────────────────────────────────────────────────────
# Admin auth
# ─────────────────────────────────────────────────────────────────────────────
@app.post("/admin/auth/login")
def admin_login():
    data = request.get_json(silent=True) or request.form.to_dict()
    if not check_admin_passwords(data.get("pass1"), data.get("pass2")):
        logger.warning("[admin] failed login from %s", request.remote_addr)
        return jsonify({"error": "invalid_admin_passwords"}), 401

    session["admin"] = {"ok": True, "ts": int(time.time())}
    session.permanent = True
    logger.info("[admin] login from %s", request.remote_addr)
    return jsonify({"ok": True})

@app.post("/admin/auth/logout")
def admin_logout():
    session.pop("admin", None)
    return jsonify({"ok": True})

@app.get("/api/admin/me")
@require_admin
def api_admin_me():
    return jsonify({"ok": True})

# ─────────────────────────────────────────────────────────────────────────────
# Admin ticket inbox (Discord bot)
# ─────────────────────────────────────────────────────────────────────────────
@app.get("/api/admin/tickets")
@require_admin
def api_tickets():
    guild_id = (request.args.get("guildId") or "").strip() or DISCORD_GUILD_ID
    try:
        items = tickets.list_tickets(DISCORD_BOT_TOKEN, guild_id, DISCORD_TICKETS_CATEGORY_ID)
    except (UpstreamError, ConfigError) as e:
        logger.error("[tickets] list failed: %s", e)
        return jsonify({"error": "tickets_fetch_failed"}), 500
    return jsonify({"tickets": items})

@app.get("/api/admin/tickets/<channel_id>")
@require_admin
def api_ticket_messages(channel_id: str):
    try:
        messages = tickets.read_ticket(DISCORD_BOT_TOKEN, channel_id)
    except (UpstreamError, ConfigError) as e:
        logger.error("[tickets] read %s failed: %s", channel_id, e)
        return jsonify({"error": "ticket_messages_failed"}), 500
    return jsonify({"messages": messages})

@app.post("/api/admin/tickets/<channel_id>/send")
@require_admin
def api_ticket_send(channel_id: str):
    data = request.get_json(silent=True) or {}
    try:
        tickets.send_to_ticket(DISCORD_BOT_TOKEN, channel_id, data.get("content"))
    except (UpstreamError, ConfigError) as e:
        logger.error("[tickets] send to %s failed: %s", channel_id, e)
        return jsonify({"error": "ticket_send_failed"}), 500
    return jsonify({"ok": True})

# ─────────────────────────────────────────────────────────────────────────────
# Pages
# ─────────────────────────────────────────────────────────────────────────────
@app.route("/")
def home():
    return page("index.html")

@app.route("/panel.html")
def panel():
    if not session_user():
        return redirect("/auth/discord")
    return page("panel.html")

@app.route("/admin.html")
def admin_page():
    if not is_admin():
        return redirect("/admin/login.html")
    return page("admin.html")

@app.route("/admin/login.html")
def admin_login_page():
    return page("admin/login.html")

@app.route("/healthz")
def healthz():
    return jsonify({"ok": True})

@app.route("/favicon.ico")
def favicon():
    return ("", 204)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=PORT, debug=not IS_PROD)
