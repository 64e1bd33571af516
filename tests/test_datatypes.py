import pytest

from whiteflag.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from whiteflag.datatypes.interaction_datatypes import ReviewAction, ReviewActionKind
from whiteflag.datatypes.request_datatypes import (
    RequestMetadata,
    RequestStatus,
    Tier,
    WhiteflagRequest,
    can_transition,
    normalize_entity_name,
)


class TestSnowflake:

    def test_equality_with_raw_forms(self):
        assert UserID(123) == "123"
        assert UserID("123") == 123
        assert UserID(123) != GuildID(123)
        assert hash(UserID(5)) == hash(UserID("5"))

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            ChannelID("general")
        with pytest.raises(ValueError):
            ChannelID(True)

    def test_optional(self):
        assert ChannelID.optional(None) is None
        assert ChannelID.optional("") is None
        assert ChannelID.optional("7").to_int() == 7


class TestReviewAction:

    def test_custom_id_round_trip(self):
        action = ReviewAction(ReviewActionKind.END_EARLY, "abc123")
        assert action.to_custom_id() == "whiteflag:end:abc123"
        assert ReviewAction.from_custom_id("whiteflag:end:abc123") == action

    @pytest.mark.parametrize("custom_id", [None, "", "whiteflag:approve:", "whiteflag:nuke:1", "other:approve:1", "whiteflag_tier:25x"])
    def test_foreign_ids_are_ignored(self, custom_id):
        assert ReviewAction.from_custom_id(custom_id) is None


class TestRequestVocabulary:

    def test_transition_graph(self):
        assert can_transition(RequestStatus.PENDING, RequestStatus.ACTIVE)
        assert can_transition(RequestStatus.ACTIVE, RequestStatus.ENDED_EARLY)
        assert not can_transition(RequestStatus.PENDING, RequestStatus.EXPIRED)
        for terminal in (RequestStatus.DENIED, RequestStatus.EXPIRED, RequestStatus.ENDED_EARLY):
            assert terminal.is_terminal
            assert not any(can_transition(terminal, target) for target in RequestStatus)

    def test_tier_parse(self):
        assert Tier.parse("100X") is Tier.HUNDRED_X
        assert Tier.parse("twenty_five_x") is Tier.TWENTY_FIVE_X
        with pytest.raises(ValueError):
            Tier.parse("5x")

    def test_normalize_entity_name(self):
        assert normalize_entity_name(" Alpha  Wolves ") == normalize_entity_name("alphawolves")


def test_request_persisted_shape():
    request = WhiteflagRequest(
        id="r1",
        guild_id=GuildID(1),
        entity_name="Alpha",
        tier=Tier.TWENTY_FIVE_X,
        requester_id=UserID(2),
        status=RequestStatus.ACTIVE,
        requested_at=100,
        duration_hours=168,
        approved_at=150,
        approved_by=UserID(3),
        expires_at=150 + 168 * 3600,
        metadata=RequestMetadata(display_name="Player#1", coordinates="50/50", notes=""),
    )
    data = request.to_dict()

    assert data["guildId"] == "1"
    assert data["tier"] == "25x"
    assert data["status"] == "active"
    assert data["approvedBy"] == "3"
    assert data["deniedBy"] is None
    assert data["coordinates"] == "50/50"
    assert WhiteflagRequest.from_dict(data) == request


def test_from_dict_requires_core_fields():
    with pytest.raises(KeyError):
        WhiteflagRequest.from_dict({"id": "x"})


def test_review_post_location_persisted():
    request = WhiteflagRequest(
        id="r1",
        guild_id=GuildID(1),
        entity_name="Alpha",
        tier=Tier.HUNDRED_X,
        requester_id=UserID(2),
        status=RequestStatus.PENDING,
        requested_at=100,
        duration_hours=168,
        review_channel_id=ChannelID(55),
        review_message_id=777,
    )
    data = request.to_dict()

    assert (data["reviewChannelId"], data["reviewMessageId"]) == ("55", "777")
    assert WhiteflagRequest.from_dict(data) == request
    del data["reviewChannelId"], data["reviewMessageId"]
    assert WhiteflagRequest.from_dict(data).review_message_id is None
