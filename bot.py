# ─────────────────────────────────────────────────────────────────────────────
# File: bot.py
# Companion Discord bot: posts the ticket panel and opens one private ticket
# channel per user under DISCORD_TICKETS_CATEGORY_ID.
# ─────────────────────────────────────────────────────────────────────────────
from __future__ import annotations
import os, re, logging
from pathlib import Path
from typing import Optional

import discord
from discord.ext import commands
from dotenv import load_dotenv

from errors import ConfigError

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

logger = logging.getLogger(__name__)

DISCORD_BOT_TOKEN   = os.environ.get("DISCORD_BOT_TOKEN", "")
TICKETS_CATEGORY_ID = os.environ.get("DISCORD_TICKETS_CATEGORY_ID", "")
PANEL_CHANNEL_ID    = os.environ.get("DISCORD_TICKETS_PANEL_CHANNEL_ID", "")

CREATE_TICKET_ID = "ticket:create"
PANEL_TEXT = "🎫 **Ticket test**"


def ticket_topic(user_id: int | str) -> str:
    return f"ticket:{user_id}"

def ticket_channel_name(username: str, user_id: int | str) -> str:
    base = re.sub(r"[^a-z0-9\-]", "-", f"ticket-{username}".lower())[:20]
    return f"{base}-{str(user_id)[-4:]}"

def find_existing_ticket(guild: discord.Guild, category_id: int, user_id: int) -> Optional[discord.TextChannel]:
    topic = ticket_topic(user_id)
    for ch in guild.text_channels:
        if ch.category_id == category_id and ch.topic == topic:
            return ch
    return None


async def create_ticket_channel(guild: discord.Guild, user: discord.abc.User) -> discord.TextChannel:
    category = guild.get_channel(int(TICKETS_CATEGORY_ID)) if TICKETS_CATEGORY_ID else None
    if not isinstance(category, discord.CategoryChannel):
        raise ConfigError("missing_category",
                          f"Category {TICKETS_CATEGORY_ID or '(unset)'} not found. Check the ID and that the bot is in the server.")

    existing = find_existing_ticket(guild, category.id, user.id)
    if existing:
        return existing

    overwrites = {
        guild.default_role: discord.PermissionOverwrite(view_channel=False),
        user: discord.PermissionOverwrite(
            view_channel=True, send_messages=True, read_message_history=True,
            attach_files=True, embed_links=True,
        ),
        guild.me: discord.PermissionOverwrite(
            view_channel=True, send_messages=True, read_message_history=True,
            manage_channels=True, manage_messages=True,
        ),
    }
    channel = await guild.create_text_channel(
        ticket_channel_name(user.name, user.id),
        category=category,
        topic=ticket_topic(user.id),
        overwrites=overwrites,
        reason=f"Ticket for {user} ({user.id})",
    )
    logger.info("[ticket] created #%s for %s (%s)", channel.name, user, user.id)
    return channel


class TicketPanelView(discord.ui.View):
    def __init__(self):
        super().__init__(timeout=None)  # persistent across restarts

    @discord.ui.button(label="Utwórz ticket", style=discord.ButtonStyle.primary, custom_id=CREATE_TICKET_ID)
    async def create_ticket(self, interaction: discord.Interaction, _button: discord.ui.Button):
        await interaction.response.defer(ephemeral=True, thinking=True)
        if not interaction.guild:
            await interaction.followup.send("❌ To działa tylko na serwerze.", ephemeral=True)
            return

        try:
            channel = await create_ticket_channel(interaction.guild, interaction.user)
            await channel.send(
                f"👋 Witaj {interaction.user.mention}!\nOpisz problem, a wsparcie odpowie tutaj.\n\n"
                "🔒 Ten kanał widzisz tylko Ty i bot."
            )
        except (ConfigError, discord.HTTPException) as e:
            logger.error("[ticket] create failed for %s: %s", interaction.user.id, e)
            await interaction.followup.send(f"❌ Błąd: {e}", ephemeral=True)
            return

        await interaction.followup.send(f"✅ Ticket utworzony: {channel.mention}", ephemeral=True)


class TicketCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._panel_posted = False  # on_ready fires again after a fresh reconnect

    @commands.Cog.listener()
    async def on_ready(self):
        logger.info("[bot] logged in as %s", self.bot.user)
        if not PANEL_CHANNEL_ID or self._panel_posted:
            return
        try:
            ch = await self.bot.fetch_channel(int(PANEL_CHANNEL_ID))
        except discord.HTTPException as e:
            logger.warning("[bot] could not fetch panel channel %s: %s", PANEL_CHANNEL_ID, e)
            return
        if not isinstance(ch, discord.TextChannel):
            logger.warning("[bot] DISCORD_TICKETS_PANEL_CHANNEL_ID is not a text channel")
            return
        await ch.send(PANEL_TEXT, view=TicketPanelView())
        self._panel_posted = True
        logger.info("[bot] ticket panel posted to %s", PANEL_CHANNEL_ID)

    @commands.command(name="ticketpanel")
    @commands.guild_only()
    async def ticket_panel(self, ctx: commands.Context):
        try:
            await ctx.send(PANEL_TEXT, view=TicketPanelView())
            await ctx.reply("✅ Panel ticketów wysłany.")
        except discord.HTTPException as e:
            logger.error("[bot] panel send failed: %s", e)
            await ctx.reply("❌ Nie udało się wysłać panelu.")


class TicketBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True  # for !ticketpanel
        super().__init__(command_prefix="!", intents=intents)

    async def setup_hook(self):
        self.add_view(TicketPanelView())
        await self.add_cog(TicketCog(self))


def main():
    if not DISCORD_BOT_TOKEN:
        raise ConfigError("missing_bot_token", "DISCORD_BOT_TOKEN is not set")
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    TicketBot().run(DISCORD_BOT_TOKEN, log_level=level, root_logger=True)


if __name__ == "__main__":
    main()
