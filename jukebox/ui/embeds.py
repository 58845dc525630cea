import discord

from jukebox.models.state import PlaybackStatus
from jukebox.models.track import TrackDescriptor

PROGRESS_BAR_WIDTH = 20


def progress_bar(ratio: float, width: int = PROGRESS_BAR_WIDTH) -> str:
    filled = int(round(max(0.0, min(1.0, ratio)) * width))
    return "▬" * filled + "🔘" + "▬" * (width - filled)


def status_embed(status: PlaybackStatus) -> discord.Embed:
    """Create the control panel embed for a session."""
    if status.track_name:
        description = f"**{status.track_name}**\n{progress_bar(status.elapsed_ratio)} {status.track_duration}"
    elif status.catalog_length == 0:
        description = "No playlist yet. Press **Set folder** to load one."
    else:
        description = "Nothing loaded."

    embed = discord.Embed(
        title="Jukebox",
        description=description,
        color=discord.Color.green() if status.is_playing else discord.Color.dark_grey(),
    )
    embed.add_field(name="Playing", value="Yes" if status.is_playing else "Paused", inline=True)
    embed.add_field(name="Shuffle", value="On" if status.shuffle_enabled else "Off", inline=True)
    embed.add_field(
        name="Track",
        value=f"{status.position + 1}/{status.catalog_length}" if status.catalog_length else "-",
        inline=True,
    )
    embed.add_field(name="Volume", value=status.volume, inline=True)
    embed.add_field(name="Spread", value=status.spread, inline=True)
    embed.add_field(name="Rolloff", value=status.rolloff, inline=True)
    return embed


def error_embed(message: str) -> discord.Embed:
    """Create an error embed."""
    return discord.Embed(
        title="Error",
        description=message,
        color=discord.Color.red(),
    )


def folder_loaded_embed(tracks: list[TrackDescriptor]) -> discord.Embed:
    """Embed for a folder resolved into the session playlist."""
    embed = discord.Embed(
        title="Folder Loaded",
        description=f"**{len(tracks)} tracks** now in the playlist",
        color=discord.Color.blue(),
    )

    total_seconds = sum(t.duration_seconds for t in tracks)
    embed.add_field(name="Duration", value=f"{int(total_seconds // 60)}m", inline=True)

    preview = "\n".join(
        f"`{i + 1}.` {t.name} [{t.duration_str}]" for i, t in enumerate(tracks[:5])
    )
    if len(tracks) > 5:
        preview += f"\n*...and {len(tracks) - 5} more*"
    embed.add_field(name="Tracks", value=preview, inline=False)
    return embed
