"""
Discord UI components for the whiteflag workflow.

Buttons carry their meaning in their ``custom_id`` and have no callbacks of
their own: clicks are routed by the interaction listener, which decodes the
id into a :class:`ReviewAction`. That keeps the buttons working on messages
posted before a restart. Modals take an async submit handler so this module
does not depend on the service layer.
"""

from __future__ import annotations

from typing import Awaitable, Callable

import discord

from whiteflag.datatypes.interaction_datatypes import (
    TIER_BUTTON_PREFIX,
    ReviewAction,
    ReviewActionKind,
)
from whiteflag.datatypes.request_datatypes import RequestStatus, Tier, WhiteflagRequest
from whiteflag.util.logger import get_logger

logger = get_logger("review_ui")

TIER_BUTTON_STYLES: dict[Tier, discord.ButtonStyle] = {
    Tier.HUNDRED_X: discord.ButtonStyle.danger,
    Tier.TWENTY_FIVE_X: discord.ButtonStyle.primary,
}


def tier_button_custom_id(tier: Tier) -> str:
    return f"{TIER_BUTTON_PREFIX}:{tier.value}"


def parse_tier_button(custom_id: str | None) -> Tier | None:
    if not custom_id or not custom_id.startswith(f"{TIER_BUTTON_PREFIX}:"):
        return None
    try:
        return Tier.parse(custom_id.split(":", 1)[1])
    except ValueError:
        return None


def build_review_view(request: WhiteflagRequest) -> discord.ui.View:
    """
    Staff controls for a request, matching its current status.

    Pending requests get Approve/Deny, active grants get End early, and
    closed records get no controls.
    """
    view = discord.ui.View(timeout=None)
    if request.status is RequestStatus.PENDING:
        view.add_item(discord.ui.Button(
            label="✅ Approve",
            style=discord.ButtonStyle.success,
            custom_id=ReviewAction(ReviewActionKind.APPROVE, request.id).to_custom_id(),
        ))
        view.add_item(discord.ui.Button(
            label="❌ Deny",
            style=discord.ButtonStyle.danger,
            custom_id=ReviewAction(ReviewActionKind.DENY, request.id).to_custom_id(),
        ))
    elif request.status is RequestStatus.ACTIVE:
        view.add_item(discord.ui.Button(
            label="🛑 End early",
            style=discord.ButtonStyle.secondary,
            custom_id=ReviewAction(ReviewActionKind.END_EARLY, request.id).to_custom_id(),
        ))
    return view


def build_tier_buttons_view() -> discord.ui.View:
    """One request button per tier, posted by ``/post_whiteflag_buttons``."""
    view = discord.ui.View(timeout=None)
    for tier in Tier:
        view.add_item(discord.ui.Button(
            label=tier.value,
            style=TIER_BUTTON_STYLES.get(tier, discord.ButtonStyle.secondary),
            custom_id=tier_button_custom_id(tier),
        ))
    return view


RequestSubmitHandler = Callable[[discord.Interaction, Tier, dict[str, str]], Awaitable[None]]
EndEarlySubmitHandler = Callable[[discord.Interaction, str, str], Awaitable[None]]


class WhiteflagRequestModal(discord.ui.Modal):
    """Request form: tribe name, base location, notes and (optionally) duration."""

    def __init__(
        self,
        tier: Tier,
        on_submit: RequestSubmitHandler,
        *,
        custom_duration: bool = False,
        min_hours: int = 1,
        max_hours: int = 168,
    ) -> None:
        super().__init__(title=f"Whiteflag Request ({tier.value})")
        self.tier = tier
        self.on_submit = on_submit

        self.add_item(discord.ui.InputText(label="Tribe name", style=discord.InputTextStyle.short, max_length=64))
        self.add_item(discord.ui.InputText(
            label="Base location / coordinates",
            style=discord.InputTextStyle.short,
            required=False,
            max_length=100,
        ))
        self.add_item(discord.ui.InputText(
            label="Notes / reason (optional)",
            style=discord.InputTextStyle.long,
            required=False,
            max_length=500,
        ))
        self.custom_duration = custom_duration
        if custom_duration:
            self.add_item(discord.ui.InputText(
                label=f"Duration (hours, {min_hours}-{max_hours})",
                style=discord.InputTextStyle.short,
                placeholder="Example: 24",
                max_length=4,
            ))

    def field_values(self) -> dict[str, str]:
        values = [(child.value or "") for child in self.children]
        fields = {"tribe": values[0], "coordinates": values[1], "notes": values[2]}
        if self.custom_duration:
            fields["hours"] = values[3]
        return fields

    async def callback(self, interaction: discord.Interaction) -> None:
        await self.on_submit(interaction, self.tier, self.field_values())


class EndEarlyModal(discord.ui.Modal):
    """Asks staff for the reason shown in the open-season announcement."""

    def __init__(self, request_id: str, entity_name: str, on_submit: EndEarlySubmitHandler) -> None:
        super().__init__(title=f"End whiteflag: {entity_name}"[:45])
        self.request_id = request_id
        self.on_submit = on_submit
        self.add_item(discord.ui.InputText(
            label="Reason",
            style=discord.InputTextStyle.long,
            required=False,
            max_length=300,
            placeholder="No reason provided",
        ))

    async def callback(self, interaction: discord.Interaction) -> None:
        reason = self.children[0].value or ""
        await self.on_submit(interaction, self.request_id, reason)
