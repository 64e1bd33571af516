"""Embed builders for whiteflag posts."""

from __future__ import annotations

import datetime

import discord

from whiteflag.datatypes.request_datatypes import RequestStatus, WhiteflagRequest

STATUS_COLORS: dict[RequestStatus, discord.Color] = {
    RequestStatus.PENDING: discord.Color.gold(),
    RequestStatus.ACTIVE: discord.Color.green(),
    RequestStatus.DENIED: discord.Color.red(),
    RequestStatus.EXPIRED: discord.Color.light_grey(),
    RequestStatus.ENDED_EARLY: discord.Color.dark_red(),
}


def _relative(timestamp: int | None) -> str:
    return f"<t:{timestamp}:R>" if timestamp is not None else "N/A"


def build_request_embed(request: WhiteflagRequest, title: str = "🏳️ Whiteflag Request") -> discord.Embed:
    """Embed describing a request; used on the review post and its later edits."""
    embed = discord.Embed(
        title=title,
        color=STATUS_COLORS.get(request.status, discord.Color.blurple()),
        timestamp=datetime.datetime.fromtimestamp(request.requested_at, tz=datetime.timezone.utc),
    )
    embed.add_field(name="Tribe", value=request.entity_name, inline=True)
    embed.add_field(name="Tier", value=request.tier.value, inline=True)
    embed.add_field(name="Duration", value=f"{request.duration_hours}h", inline=True)
    embed.add_field(name="Requested by", value=f"<@{request.requester_id}>", inline=True)
    embed.add_field(name="Status", value=request.status.value.replace("_", " ").title(), inline=True)

    if request.expires_at is not None:
        embed.add_field(name="Expires", value=_relative(request.expires_at), inline=True)
    if request.metadata.display_name:
        embed.add_field(name="Contact", value=request.metadata.display_name, inline=True)
    if request.metadata.coordinates:
        embed.add_field(name="Base location", value=request.metadata.coordinates, inline=True)
    if request.metadata.notes:
        embed.add_field(name="Notes", value=request.metadata.notes[:1024], inline=False)

    embed.set_footer(text=f"Request ID: {request.id}")
    return embed


def build_decision_embed(request: WhiteflagRequest, decided_by: str) -> discord.Embed:
    """Review embed after staff acted on it."""
    verb = {
        RequestStatus.ACTIVE: "✅ Approved",
        RequestStatus.DENIED: "❌ Denied",
        RequestStatus.ENDED_EARLY: "🛑 Ended early",
        RequestStatus.EXPIRED: "⌛ Expired",
    }.get(request.status, "Updated")
    embed = build_request_embed(request, title=f"🏳️ Whiteflag Request: {verb}")
    embed.add_field(name="Decided by", value=decided_by, inline=False)
    return embed


def build_open_season_embed(request: WhiteflagRequest) -> discord.Embed:
    """Public announcement that a grant was ended early."""
    embed = discord.Embed(
        title="⚔️ Open Season",
        description=f"**{request.entity_name}** is no longer under a white flag.",
        color=discord.Color.dark_red(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="Tier", value=request.tier.value, inline=True)
    embed.add_field(name="Reason", value=request.end_reason or "No reason provided", inline=False)
    return embed


def build_grant_list_embed(title: str, lines: list[str], empty_text: str) -> discord.Embed:
    embed = discord.Embed(title=title, color=discord.Color.blurple())
    embed.description = "\n".join(lines)[:4000] if lines else empty_text
    return embed
