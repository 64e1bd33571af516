from conftest import ANNOUNCE_CHANNEL, GUILD, REVIEW_CHANNEL, ROLE_100X, ROLE_25X

from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from whiteflag.datatypes.request_datatypes import Tier
from whiteflag.storage.json_store import SETTINGS_KEY


def test_unknown_guild_has_empty_config(registry):
    config = registry.get_config(GuildID(42))
    assert config.review_channel_id is None
    assert config.staff_role_ids == []
    assert config.missing_for_submission(Tier.HUNDRED_X) == ["review channel", "announce channel", "100x role"]


def test_set_config_persists_camel_case(registry, store):
    registry.set_config(GUILD, review_channel_id=REVIEW_CHANNEL, announce_channel_id=ANNOUNCE_CHANNEL)
    raw = store.load(SETTINGS_KEY, {})
    assert raw[str(GUILD)]["reviewChannelId"] == str(REVIEW_CHANNEL)
    assert raw[str(GUILD)]["announceChannelId"] == str(ANNOUNCE_CHANNEL)
    assert raw[str(GUILD)]["logChannelId"] is None


def test_patch_merges_and_ignores_none(registry):
    registry.set_config(GUILD, review_channel_id=REVIEW_CHANNEL)
    config = registry.set_config(GUILD, review_channel_id=None, log_channel_id=ChannelID(77))
    assert config.review_channel_id == REVIEW_CHANNEL
    assert config.log_channel_id == ChannelID(77)


def test_tier_roles_merge_per_tier(registry):
    registry.set_config(GUILD, tier_role_ids={Tier.HUNDRED_X: ROLE_100X})
    config = registry.set_config(GUILD, tier_role_ids={"25x": 3002})
    assert config.role_for_tier(Tier.HUNDRED_X) == ROLE_100X
    assert config.role_for_tier(Tier.TWENTY_FIVE_X) == ROLE_25X
    assert registry.get_config(GUILD).tier_role_ids == {
        Tier.HUNDRED_X: ROLE_100X,
        Tier.TWENTY_FIVE_X: RoleID(3002),
    }


def test_unknown_field_is_dropped(registry, store):
    registry.set_config(GUILD, favourite_colour="blue")
    assert "favourite_colour" not in store.load(SETTINGS_KEY, {})[str(GUILD)]


def test_manual_edit_is_seen_without_restart(registry, store):
    registry.set_config(GUILD, review_channel_id=REVIEW_CHANNEL)
    raw = store.load(SETTINGS_KEY, {})
    raw[str(GUILD)]["reviewChannelId"] = "999"
    store.save(SETTINGS_KEY, raw)
    assert registry.get_config(GUILD).review_channel_id == ChannelID(999)


def test_guilds_are_isolated(registry):
    registry.set_config(GUILD, review_channel_id=REVIEW_CHANNEL)
    assert registry.get_config(GuildID(5)).review_channel_id is None
    assert registry.list_guild_ids() == [GUILD]


def test_missing_settings_lists_every_tier(configured_registry, registry):
    assert configured_registry.get_config(GUILD).missing_settings() == []
    assert registry.get_config(GuildID(5)).missing_settings() == [
        "review channel", "announce channel", "100x role", "25x role",
    ]
