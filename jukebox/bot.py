import asyncio
import os
import sys

import discord
from discord import app_commands
from loguru import logger

from jukebox.clients.dropbox import DropboxClient
from jukebox.clients.youtube import YouTubeClient
from jukebox.config import JukeboxConfig, load_config
from jukebox.errors import ResolutionFailure, StoreConnectionError
from jukebox.logging_config import setup_logging
from jukebox.music.player import VoiceAudioHost
from jukebox.music.session import Command, Session, SessionManager
from jukebox.resolver import Resolver
from jukebox.storage.session_store import SessionStore
from jukebox.ui.controls import ControlPanel
from jukebox.ui.embeds import error_embed, folder_loaded_embed, status_embed

OPUS_PATHS = [
    "/opt/homebrew/lib/libopus.dylib",  # Apple Silicon
    "/usr/local/lib/libopus.dylib",  # Intel Mac
]


def load_opus() -> bool:
    """Load opus for voice support. Linux builds usually find it on their own."""
    if discord.opus.is_loaded():
        return True
    for path in OPUS_PATHS:
        if os.path.exists(path):
            try:
                discord.opus.load_opus(path)
                logger.info(f"Loaded opus from {path}")
                break
            except OSError as e:
                logger.warning(f"Failed to load opus from {path}: {e}")

    if not discord.opus.is_loaded():
        logger.warning("Opus not loaded - voice will not work!")
        return False
    return True


class JukeboxBot(discord.Client):
    def __init__(self):
        intents = discord.Intents.default()
        intents.voice_states = True
        super().__init__(intents=intents)

        self.tree = app_commands.CommandTree(self)

        self.youtube = YouTubeClient()
        self.dropbox = DropboxClient()
        self.resolver = Resolver(dropbox=self.dropbox, youtube=self.youtube)

        self.config: JukeboxConfig | None = None
        self.sessions: SessionManager | None = None
        self.panels: dict[str, tuple[discord.Message, ControlPanel]] = {}
        self._background: set[asyncio.Task] = set()

    def configure(self, config: JukeboxConfig, store: SessionStore) -> None:
        self.config = config
        self.sessions = SessionManager(
            store,
            playback_mode=config.playback_mode,
            clock_interval_seconds=config.clock_interval_seconds,
            track_end_buffer_seconds=config.track_end_buffer_seconds,
            persist_interval_seconds=config.persist_interval_seconds,
        )

    async def setup_hook(self):
        # Guild-specific sync is instant; global sync can take up to an hour
        if self.config and self.config.test_guild_id:
            guild = discord.Object(id=self.config.test_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
        else:
            await self.tree.sync()

    def spawn(self, coro) -> asyncio.Task:
        """Run a coroutine in the background, keeping a reference until it finishes."""
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def schedule_panel_refresh(self, session: Session) -> None:
        self.spawn(self.refresh_panel(session))

    async def refresh_panel(self, session: Session) -> None:
        panel = self.panels.get(session.session_id)
        if not panel or not session.alive:
            return
        message, view = panel
        status = session.status()
        view.sync(status)
        try:
            await message.edit(embed=status_embed(status), view=view)
        except discord.HTTPException as e:
            logger.warning(f"Could not refresh panel for {session.session_id}: {e}")

    async def end_session(self, guild: discord.Guild) -> None:
        session_id = str(guild.id)
        await self.sessions.remove(session_id)
        panel = self.panels.pop(session_id, None)
        if panel:
            message, view = panel
            view.stop()
            try:
                await message.edit(view=None)
            except discord.HTTPException:
                logger.debug(f"Panel message for {session_id} already gone")
        if guild.voice_client:
            await guild.voice_client.disconnect(force=False)

    async def close(self):
        if self.sessions:
            await self.sessions.close_all()
        await super().close()


bot = JukeboxBot()


async def ensure_voice(interaction: discord.Interaction) -> discord.VoiceClient | None:
    """Ensure the bot is in the user's voice channel. Returns VoiceClient or None."""
    if not interaction.user.voice or not interaction.user.voice.channel:
        await interaction.response.send_message(
            embed=error_embed("You must be in a voice channel."),
            ephemeral=True,
        )
        return None

    user_channel = interaction.user.voice.channel
    voice_client = interaction.guild.voice_client

    if voice_client is None:
        voice_client = await user_channel.connect()
    elif voice_client.channel != user_channel:
        await voice_client.move_to(user_channel)

    return voice_client


async def _resolve_folder_into_session(
    session: Session,
    url: str,
    interaction: discord.Interaction,
):
    """Background task: resolve a folder and install it as the session playlist."""
    try:
        tracks = await bot.resolver.resolve_folder(url)
    except ResolutionFailure as e:
        logger.info(f"Folder resolution failed for {session.session_id}: {e}")
        await interaction.followup.send(embed=error_embed(str(e)), ephemeral=True)
        return

    if await session.apply_folder(tracks):
        await interaction.followup.send(embed=folder_loaded_embed(tracks))


async def handle_folder_url(interaction: discord.Interaction, url: str):
    session = bot.sessions.get(str(interaction.guild_id))
    if not session:
        await interaction.response.send_message(
            embed=error_embed("Start the jukebox first with /jukebox."),
            ephemeral=True,
        )
        return

    logger.info(f"Reading folder for {session.session_id}: {url}")
    await interaction.response.send_message("Reading folder, this can take a while...", ephemeral=True)
    bot.spawn(_resolve_folder_into_session(session, url, interaction))


def _active_session(interaction: discord.Interaction) -> Session | None:
    session = bot.sessions.get(str(interaction.guild_id))
    return session if session and session.alive else None


async def _no_session(interaction: discord.Interaction):
    await interaction.response.send_message(
        embed=error_embed("The jukebox is not running. Start it with /jukebox."),
        ephemeral=True,
    )


@bot.tree.command(name="jukebox", description="Start the jukebox in your voice channel")
async def jukebox(interaction: discord.Interaction):
    voice_client = await ensure_voice(interaction)
    if not voice_client:
        return

    await interaction.response.defer()

    session_id = str(interaction.guild_id)
    host = VoiceAudioHost(voice_client, bot.youtube)
    session = await bot.sessions.create(
        session_id, host, on_state_change=bot.schedule_panel_refresh
    )

    view = ControlPanel(session, on_folder=handle_folder_url)
    status = session.status()
    view.sync(status)
    message = await interaction.followup.send(embed=status_embed(status), view=view, wait=True)
    bot.panels[session_id] = (message, view)


@bot.tree.command(name="folder", description="Load a shared folder as the playlist")
@app_commands.describe(url="Dropbox shared folder or YouTube playlist URL")
async def folder(interaction: discord.Interaction, url: str):
    await handle_folder_url(interaction, url)


@bot.tree.command(name="playpause", description="Toggle play/pause")
async def playpause(interaction: discord.Interaction):
    session = _active_session(interaction)
    if not session:
        await _no_session(interaction)
        return
    playing = await session.dispatch(Command.PLAY_PAUSE)
    await interaction.response.send_message("Playing." if playing else "Paused.")


@bot.tree.command(name="skip", description="Skip to the next track")
async def skip(interaction: discord.Interaction):
    session = _active_session(interaction)
    if not session:
        await _no_session(interaction)
        return
    await interaction.response.defer()
    await session.dispatch(Command.SKIP_FORWARD)
    await interaction.followup.send(embed=status_embed(session.status()))


@bot.tree.command(name="back", description="Go back one track")
async def back(interaction: discord.Interaction):
    session = _active_session(interaction)
    if not session:
        await _no_session(interaction)
        return
    await interaction.response.defer()
    await session.dispatch(Command.SKIP_BACKWARD)
    await interaction.followup.send(embed=status_embed(session.status()))


@bot.tree.command(name="shuffle", description="Toggle shuffle mode")
async def shuffle(interaction: discord.Interaction):
    session = _active_session(interaction)
    if not session:
        await _no_session(interaction)
        return
    await interaction.response.defer()
    enabled = await session.dispatch(Command.SHUFFLE)
    await interaction.followup.send(f"Shuffle {'enabled' if enabled else 'disabled'}.")


@bot.tree.command(name="volume", description="Nudge the volume up or down")
@app_commands.choices(
    direction=[
        app_commands.Choice(name="up", value=1),
        app_commands.Choice(name="down", value=-1),
    ]
)
async def volume(interaction: discord.Interaction, direction: app_commands.Choice[int]):
    session = _active_session(interaction)
    if not session:
        await _no_session(interaction)
        return
    value = await session.dispatch(Command.VOLUME, direction.value)
    await interaction.response.send_message(f"Volume: {value}")


@bot.tree.command(name="status", description="Show what the jukebox is doing")
async def status(interaction: discord.Interaction):
    session = _active_session(interaction)
    if not session:
        await _no_session(interaction)
        return
    await interaction.response.send_message(embed=status_embed(session.status()), ephemeral=True)


@bot.tree.command(name="leave", description="Save, stop the jukebox and leave voice")
async def leave(interaction: discord.Interaction):
    if not bot.sessions.get(str(interaction.guild_id)):
        await _no_session(interaction)
        return
    await interaction.response.defer()
    await bot.end_session(interaction.guild)
    await interaction.followup.send("Jukebox stopped. Playback state saved.")


@bot.event
async def on_voice_state_update(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
):
    voice_client = member.guild.voice_client
    if voice_client is None or before.channel is None:
        return
    if before.channel != voice_client.channel or after.channel == before.channel:
        return

    listeners = [m for m in before.channel.members if not m.bot]
    if not listeners and bot.sessions.get(str(member.guild.id)):
        logger.info(f"Last listener left {before.channel.name}, closing session {member.guild.id}")
        await bot.end_session(member.guild)


@bot.event
async def on_ready():
    logger.info(f"Logged in as {bot.user} (ID: {bot.user.id})")


def main():
    config = load_config()
    setup_logging(config.log_level, config.log_file)

    if not config.discord_token:
        raise ValueError("DISCORD_TOKEN environment variable is not set")

    load_opus()
    store = SessionStore(config.db_path)
    try:
        asyncio.run(store.initialize())
    except StoreConnectionError as e:
        logger.critical(str(e))
        sys.exit(1)

    bot.configure(config, store)
    bot.run(config.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
