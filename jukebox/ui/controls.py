from typing import Awaitable, Callable

import discord

from jukebox.models.state import PlaybackStatus
from jukebox.music.session import Command, Session
from jukebox.ui.embeds import error_embed

FolderCallback = Callable[[discord.Interaction, str], Awaitable[None]]


class FolderModal(discord.ui.Modal, title="Set folder"):
    """Prompts for a shared folder link."""

    url = discord.ui.TextInput(
        label="Shared folder URL",
        placeholder="https://www.dropbox.com/sh/...",
        max_length=500,
    )

    def __init__(self, on_url: FolderCallback):
        super().__init__()
        self._on_url = on_url

    async def on_submit(self, interaction: discord.Interaction):
        await self._on_url(interaction, self.url.value.strip())


class ControlPanel(discord.ui.View):
    """Buttons driving one session. The panel message is re-rendered on state changes."""

    def __init__(self, session: Session, on_folder: FolderCallback):
        super().__init__(timeout=None)
        self.session = session
        self.on_folder = on_folder

    def sync(self, status: PlaybackStatus) -> None:
        """Match button faces to the current state."""
        self.play_pause.label = "Pause" if status.is_playing else "Play"
        self.play_pause.style = (
            discord.ButtonStyle.success if status.is_playing else discord.ButtonStyle.secondary
        )
        self.shuffle.style = (
            discord.ButtonStyle.primary if status.shuffle_enabled else discord.ButtonStyle.secondary
        )

    async def _run(self, interaction: discord.Interaction, command: Command, delta: int = 0):
        if not self.session.alive:
            await interaction.response.send_message(
                embed=error_embed("This jukebox session has ended."),
                ephemeral=True,
            )
            return
        # Track loads can outlast the 3s interaction window
        await interaction.response.defer()
        await self.session.dispatch(command, delta)

    @discord.ui.button(label="⏮", style=discord.ButtonStyle.secondary, row=0)
    async def skip_backward(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.SKIP_BACKWARD)

    @discord.ui.button(label="Play", style=discord.ButtonStyle.secondary, row=0)
    async def play_pause(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.PLAY_PAUSE)

    @discord.ui.button(label="⏭", style=discord.ButtonStyle.secondary, row=0)
    async def skip_forward(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.SKIP_FORWARD)

    @discord.ui.button(label="Shuffle", style=discord.ButtonStyle.secondary, row=0)
    async def shuffle(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.SHUFFLE)

    @discord.ui.button(label="Set folder", style=discord.ButtonStyle.primary, row=0)
    async def set_folder(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.send_modal(FolderModal(self.on_folder))

    @discord.ui.button(label="Vol -", style=discord.ButtonStyle.secondary, row=1)
    async def volume_down(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.VOLUME, -1)

    @discord.ui.button(label="Vol +", style=discord.ButtonStyle.secondary, row=1)
    async def volume_up(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.VOLUME, 1)

    @discord.ui.button(label="Spread -", style=discord.ButtonStyle.secondary, row=1)
    async def spread_down(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.SPREAD, -1)

    @discord.ui.button(label="Spread +", style=discord.ButtonStyle.secondary, row=1)
    async def spread_up(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.SPREAD, 1)

    @discord.ui.button(label="Rolloff -", style=discord.ButtonStyle.secondary, row=2)
    async def rolloff_down(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.ROLLOFF, -1)

    @discord.ui.button(label="Rolloff +", style=discord.ButtonStyle.secondary, row=2)
    async def rolloff_up(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._run(interaction, Command.ROLLOFF, 1)
