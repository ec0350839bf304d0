from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import discord
from discord import app_commands
from discord.ext import commands

from .config import Config, ConfigError, LoggingConfig, load_config
from .entries import EntryManager
from .errors import GiveawayError, NotificationFailed
from .gateway import DiscordGateway, mention_list
from .lifecycle import LifecycleController
from .notifications import GiveawayNotifier
from .scheduler import SweepScheduler
from .storage import GiveawayStore, KeyValueBackend, MemoryBackend, SQLiteBackend
from .timeutils import parse_duration
from .views import GiveawayView

ENV_PATH = Path(".env")

log = logging.getLogger(__name__)


def _load_env_file(path: Path = ENV_PATH) -> int:
    """Export ``KEY=value`` pairs from ``path`` without overriding the environment.

    Returns how many variables were newly set.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return 0
    except OSError as exc:
        log.warning("Could not read %s: %s", path, exc)
        return 0
    loaded = 0
    for line in lines:
        entry = line.strip()
        if entry.startswith("export "):
            entry = entry[len("export "):].lstrip()
        if not entry or entry.startswith("#"):
            continue
        key, sep, value = entry.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        if key not in os.environ:
            os.environ[key] = value
            loaded += 1
    return loaded


def configure_logging(settings: LoggingConfig) -> None:
    """Send INFO+ (or the configured level) to the console and everything to a file."""
    console_level = getattr(logging, settings.level, logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    settings.directory.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(settings.directory / "log.txt", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


def build_backend(config: Config) -> KeyValueBackend:
    if config.storage.backend == "memory":
        log.warning("Using in-memory giveaway storage; giveaways are lost on restart.")
        return MemoryBackend()
    return SQLiteBackend(config.storage.path)


class GiveawayBot(commands.Bot):
    def __init__(self, config: Config, store: GiveawayStore) -> None:
        intents = discord.Intents.default()

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.application_id,
        )
        settings = config.giveaways
        self.config = config
        self.store = store
        self.gateway = DiscordGateway(self)
        self.notifier = GiveawayNotifier(
            self.gateway,
            timeout=settings.notification_timeout_seconds,
            logger_channel_id=config.logging.logger_channel_id,
        )
        self.entries = EntryManager(store, cooldown_seconds=settings.join_cooldown_seconds)
        self.controller = LifecycleController(
            store,
            self.gateway,
            min_duration_ms=settings.min_duration_ms,
            max_duration_ms=settings.max_duration_ms,
        )
        self.scheduler = SweepScheduler(
            store,
            self.controller,
            self.notifier,
            interval_seconds=settings.sweep_interval_seconds,
            buffer_ms=settings.sweep_buffer_ms,
        )

    async def setup_hook(self) -> None:
        view = GiveawayView(self.entries, self.notifier)
        self.gateway.view = view
        self.add_view(view)
        self.scheduler.start()
        await self.tree.sync()
        dev_guild_id = self.config.permissions.development_guild_id
        if dev_guild_id:
            guild = discord.Object(dev_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)

    async def close(self) -> None:
        await self.scheduler.stop()
        await super().close()

    async def on_ready(self) -> None:
        log.info("Logged in as %s, serving %d guild(s)", self.user, len(self.guilds))


def build_bot(config_path: Path, env_path: Path = ENV_PATH) -> GiveawayBot:
    loaded = _load_env_file(env_path)
    config = load_config(config_path)
    configure_logging(config.logging)
    if loaded:
        log.debug("Loaded %d variable(s) from %s", loaded, env_path)
    store = GiveawayStore(build_backend(config))
    return GiveawayBot(config, store)


def register_commands(bot: GiveawayBot) -> None:
    controller = bot.controller
    notifier = bot.notifier

    @bot.tree.command(name="giveaway-start", description="Start a new giveaway.")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.describe(
        duration="How long the giveaway runs, e.g. 30m, 2h, 1d12h.",
        winners="Number of winners to draw.",
        prize="The prize being given away.",
        channel="Channel to announce the giveaway in (defaults to this one).",
    )
    async def giveaway_start(
        interaction: discord.Interaction,
        duration: str,
        winners: app_commands.Range[int, 1, 10],
        prize: str,
        channel: Optional[discord.TextChannel] = None,
    ) -> None:
        target = channel or interaction.channel
        if interaction.guild is None or target is None:
            await interaction.response.send_message(
                "This command can only be used in a guild.", ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True)
        try:
            giveaway = await controller.create(
                str(interaction.guild.id),
                str(interaction.user.id),
                str(target.id),
                prize,
                winners,
                parse_duration(duration),
            )
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        await notifier.giveaway_created(giveaway)
        await interaction.followup.send(
            f"Giveaway for **{prize}** started in <#{giveaway.channel_id}> (`{giveaway.id}`).",
            ephemeral=True,
        )

    @bot.tree.command(name="giveaway-end", description="End a giveaway now.")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.describe(giveaway_id="Message ID of the giveaway.")
    async def giveaway_end(interaction: discord.Interaction, giveaway_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            outcome = await controller.end(str(interaction.guild_id), giveaway_id.strip())
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        if outcome is None:
            await interaction.followup.send(
                "That giveaway does not exist or has already ended.", ephemeral=True
            )
            return
        try:
            await notifier.giveaway_ended(outcome.giveaway)
        except NotificationFailed as exc:
            log.warning("Giveaway %s ended but announcement failed: %s", giveaway_id, exc)
        await interaction.followup.send(
            f"Giveaway ended with {len(outcome.winners)} winner(s).", ephemeral=True
        )

    @bot.tree.command(name="giveaway-reroll", description="Draw new winners for an ended giveaway.")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.describe(giveaway_id="Message ID of the giveaway.")
    async def giveaway_reroll(interaction: discord.Interaction, giveaway_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            outcome = await controller.reroll(str(interaction.guild_id), giveaway_id.strip())
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        try:
            await notifier.giveaway_rerolled(outcome.giveaway)
        except NotificationFailed as exc:
            log.warning("Giveaway %s rerolled but announcement failed: %s", giveaway_id, exc)
        await interaction.followup.send(
            f"New winner(s): {mention_list(outcome.winners)}", ephemeral=True
        )

    @bot.tree.command(name="giveaway-delete", description="Delete a giveaway without drawing.")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.describe(giveaway_id="Message ID of the giveaway.")
    async def giveaway_delete(interaction: discord.Interaction, giveaway_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            removed = await controller.delete(str(interaction.guild_id), giveaway_id.strip())
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        if removed:
            await notifier.giveaway_deleted(
                str(interaction.guild_id), giveaway_id.strip(), str(interaction.user.id)
            )
        message = "Giveaway deleted." if removed else "No giveaway with that ID was found."
        await interaction.followup.send(message, ephemeral=True)

    @bot.tree.command(name="giveaway-list", description="List active giveaways.")
    @app_commands.guild_only()
    async def giveaway_list(interaction: discord.Interaction) -> None:
        try:
            active = await controller.list_active(str(interaction.guild_id))
        except GiveawayError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        if not active:
            await interaction.response.send_message("No active giveaways.", ephemeral=True)
            return
        lines = [
            f"- `{giveaway.id}` **{giveaway.prize}** in <#{giveaway.channel_id}>, "
            f"ends <t:{giveaway.end_time // 1000}:R> ({len(giveaway.participants)} entries)"
            for giveaway in active
        ]
        await interaction.response.send_message("\n".join(lines), ephemeral=True)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discord giveaway bot")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config") / "config.yaml",
        help="YAML configuration file (default: config/config.yaml).",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=ENV_PATH,
        help="Optional .env file with variables such as DISCORD_TOKEN (default: .env).",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    try:
        bot = build_bot(args.config, args.env_file)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    register_commands(bot)
    async with bot:
        await bot.start(bot.config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
