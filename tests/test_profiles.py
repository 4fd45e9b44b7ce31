"""Tests for identifier parsing, profile normalisation and the profile resolver."""

from unittest.mock import MagicMock

import pytest

from algoland_backend import codec
from algoland_backend.cache import AgedStore, TTLStore
from algoland_backend.errors import ApiError, IndexerError
from algoland_backend.profile_fields import MAX_DEPTH, walk
from algoland_backend.profiles import (
    NO_DATA_MESSAGE,
    ProfileResolver,
    build_profile,
    create_empty_profile,
    parse_identifier,
)
from conftest import make_address

WALLET = make_address(7)

INSPECTOR_PAYLOAD = {
    "points": None,
    "statusMessage": "Active participant",
    "profile": {"relative_id": "12", "referrer_id": "34"},
    "stats": {
        "overview": {
            "pointsBalance": {"value": "78000", "decimals": 1},
            "redeemedPoints": {"value": "1200"},
            "weeklyDraws": {
                "eligible": True,
                "entries": 5,
                "weeks": ["Week 1", "Week 2"],
                "availablePrizeAssetIds": ["3215542831"],
                "claimedPrizeAssetIds": [],
            },
        },
    },
    "completions": {
        "completedQuests": ["Quest A"],
        "completedChallenges": ["Challenge A", "Challenge B"],
        "completableChallenges": ["Challenge C"],
    },
    "referrals": {"list": ["ADDR1", "ADDR2"], "referralCount": "2"},
}


def user_record(**values):
    record = codec.empty_record("User")
    record.update(values)
    record["address"] = WALLET
    return record


class TestParseIdentifier:
    def test_numeric_id(self):
        identifier = parse_identifier(" 42 ")

        assert identifier.type == "id"
        assert identifier.value == 42

    def test_address_is_upper_cased(self):
        identifier = parse_identifier(WALLET.lower())

        assert identifier.type == "address"
        assert identifier.value == WALLET

    def test_largest_uint32_id(self):
        assert parse_identifier("4294967295").value == 4294967295

    @pytest.mark.parametrize("raw", [None, "", "   ", "not-an-address", WALLET[:-1] + "A" * 2, "4294967296"])
    def test_invalid_identifier(self, raw):
        with pytest.raises(ApiError) as excinfo:
            parse_identifier(raw)

        assert excinfo.value.code == "invalid_identifier"
        assert excinfo.value.status == 400


class TestBuildProfile:
    def test_nested_inspector_payload(self):
        profile = build_profile(WALLET, INSPECTOR_PAYLOAD)

        assert profile["points"] == 7800
        assert profile["pointsRaw"] == 78000
        assert profile["redeemedPoints"] == 1200
        assert profile["relativeId"] == 12
        assert profile["referrerId"] == 34
        assert profile["status"] == "ok"
        assert profile["statusMessage"] == "Active participant"
        assert profile["hasParticipation"] is True
        assert profile["weeklyDraws"]["entries"] == 5
        assert profile["weeklyDraws"]["eligible"] is True
        assert profile["weeklyDraws"]["weeks"] == ["Week 1", "Week 2"]
        assert profile["availableDrawPrizeAssetIds"] == ["3215542831"]
        assert profile["claimedDrawPrizeAssetIds"] == []
        assert profile["completedQuests"] == ["Quest A"]
        assert profile["completedChallenges"] == ["Challenge A", "Challenge B"]
        assert profile["completableChallenges"] == ["Challenge C"]
        assert profile["referrals"] == ["ADDR1", "ADDR2"]
        assert profile["referralsCount"] == 2

    def test_registry_record_points_are_scaled(self):
        record = user_record(relativeId=9, points=78, completedQuests=[1, 3], weeklyDrawEligibility=[1, 2])

        profile = build_profile(WALLET, record, points_scale=100)

        assert profile["points"] == 7800
        assert profile["pointsRaw"] == 78
        assert profile["completedQuests"] == ["Quest 1", "Quest 3"]
        assert profile["weeklyDraws"]["weeks"] == ["Challenge 1", "Challenge 2"]
        assert profile["weeklyDraws"]["entries"] == 2
        assert profile["weeklyDraws"]["eligible"] is True

    def test_registry_referral_fields(self):
        record = user_record(relativeId=9, referralPoints=3, referrals=[30, 31], weeklyDrawEligibility=[1, 2])

        profile = build_profile(WALLET, record, points_scale=100)

        assert profile["referralPoints"] == 300
        assert profile["referralPointsRaw"] == 3
        assert profile["referralsRelativeIds"] == [30, 31]
        assert profile["referrals"] == ["Relative ID 30", "Relative ID 31"]
        assert profile["weeklyDrawEligibility"] == [1, 2]

    def test_labelled_prize_asset_ids(self):
        record = user_record(availableDrawPrizeAssetIds=[555], claimedDrawPrizeAssetIds=[556])

        profile = build_profile(WALLET, record, points_scale=100, asset_label="Asset")

        assert profile["availableDrawPrizeAssetIds"] == ["Asset 555"]
        assert profile["weeklyDraws"]["claimedPrizeAssetIds"] == ["Asset 556"]

    def test_inspector_payload_without_referral_points(self):
        profile = build_profile(WALLET, INSPECTOR_PAYLOAD)

        assert profile["referralPoints"] is None
        assert profile["referralPointsRaw"] is None
        assert profile["referralsRelativeIds"] == []

    def test_resolved_referral_addresses_replace_ids(self):
        referred = make_address(30)
        record = user_record(relativeId=9, referrals=[30, 31], numReferrals=2)

        profile = build_profile(WALLET, record, [referred], points_scale=100)

        assert profile["referrals"] == [referred]
        assert profile["referralsCount"] == 1

    def test_blank_record_has_no_participation(self):
        profile = build_profile(WALLET, user_record(relativeId=5), points_scale=100)

        assert profile["hasParticipation"] is False
        assert profile["status"] == "no_data"
        assert profile["statusMessage"] == NO_DATA_MESSAGE

    def test_completable_challenges_alone_do_not_count(self):
        profile = build_profile(WALLET, {"completableChallenges": [1, 2]})

        assert profile["completableChallenges"] == ["Challenge 1", "Challenge 2"]
        assert profile["hasParticipation"] is False

    def test_status_message_from_payload_ignored_without_participation(self):
        profile = build_profile(WALLET, {"statusMessage": "Active participant"})

        assert profile["statusMessage"] == NO_DATA_MESSAGE

    def test_json_string_values_are_walked(self):
        payload = {"data": '{"stats": {"points": 15, "completedQuests": "[2, 5]"}}'}

        profile = build_profile(WALLET, payload)

        assert profile["points"] == 15
        assert profile["completedQuests"] == ["Quest 2", "Quest 5"]

    def test_cyclic_payload_terminates(self):
        payload = {"profile": {}}
        payload["profile"]["self"] = payload
        payload["profile"]["points"] = 3

        profile = build_profile(WALLET, payload)

        assert profile["points"] == 3

    def test_walk_is_depth_bounded(self):
        deep = {"points": 1}
        for _ in range(MAX_DEPTH + 2):
            deep = {"nested": deep}

        assert "points" not in [key for key, _ in walk(deep)]


class TestEmptyProfile:
    def test_empty_profile_is_no_data(self):
        profile = create_empty_profile(WALLET)

        assert profile["hasParticipation"] is False
        assert profile["status"] == "no_data"
        assert profile["points"] == 0
        assert profile["weeklyDraws"]["entries"] == 0
        assert profile["referralPoints"] == 0
        assert profile["referralsRelativeIds"] == []
        assert profile["weeklyDrawEligibility"] == []


@pytest.fixture
def registry():
    registry = MagicMock()
    registry.user_referrals.return_value = []
    return registry


@pytest.fixture
def resolver(registry, clock):
    return ProfileResolver(registry, AgedStore(300, clock=clock), TTLStore(300, timer=clock))


class TestProfileResolver:
    def test_unknown_wallet_yields_empty_profile(self, resolver, registry):
        registry.get_user.return_value = None

        profile = resolver.resolve(parse_identifier(WALLET))

        assert profile["status"] == "no_data"
        assert profile["hasParticipation"] is False
        assert profile["resolvedAddress"] == WALLET

    def test_id_lookup_resolves_address(self, resolver, registry):
        registry.relative_address.return_value = WALLET
        registry.get_user.return_value = user_record(relativeId=42, points=5)

        profile = resolver.resolve(parse_identifier("42"))

        assert profile["resolvedAddress"] == WALLET
        assert profile["points"] == 500
        registry.relative_address.assert_called_once_with(42)

    def test_unmapped_id_is_not_found_and_cached_briefly(self, resolver, registry, clock):
        registry.relative_address.return_value = None

        for _ in range(2):
            with pytest.raises(ApiError) as excinfo:
                resolver.resolve(parse_identifier("99"))
            assert excinfo.value.code == "profile_not_found"
            assert excinfo.value.status == 404
        assert registry.relative_address.call_count == 1

        clock.advance(61)
        with pytest.raises(ApiError):
            resolver.resolve(parse_identifier("99"))
        assert registry.relative_address.call_count == 2

    def test_resolved_relative_id_is_written_back(self, resolver, registry):
        registry.get_user.return_value = user_record(relativeId=42, points=5)

        resolver.resolve(parse_identifier(WALLET))
        resolver.resolve_relative_id(42)

        registry.relative_address.assert_not_called()

    def test_profiles_are_cached(self, resolver, registry):
        registry.get_user.return_value = user_record(relativeId=42, points=5)

        resolver.resolve(parse_identifier(WALLET))
        resolver.resolve(parse_identifier(WALLET))

        assert registry.get_user.call_count == 1

    def test_upstream_failure_serves_stale_profile(self, resolver, registry, clock):
        registry.get_user.return_value = user_record(relativeId=42, points=5)
        resolver.resolve(parse_identifier(WALLET))
        registry.get_user.side_effect = IndexerError("indexer down")
        clock.advance(301)

        profile = resolver.resolve(parse_identifier(WALLET))

        assert profile["points"] == 500
        assert profile["stale"] is True

    def test_upstream_failure_without_cache(self, resolver, registry):
        registry.get_user.side_effect = IndexerError("indexer down")

        with pytest.raises(ApiError) as excinfo:
            resolver.resolve(parse_identifier(WALLET))

        assert excinfo.value.code == "profile_unavailable"
        assert excinfo.value.status == 502

    def test_referral_failure_is_tolerated(self, resolver, registry):
        registry.get_user.return_value = user_record(relativeId=42, referrals=[3])
        registry.user_referrals.side_effect = IndexerError("box read failed")

        profile = resolver.resolve(parse_identifier(WALLET))

        assert profile["referrals"] == ["Relative ID 3"]

    def test_registry_prize_ids_are_labelled(self, resolver, registry):
        registry.get_user.return_value = user_record(relativeId=42, availableDrawPrizeAssetIds=[555])

        profile = resolver.resolve(parse_identifier(WALLET))

        assert profile["availableDrawPrizeAssetIds"] == ["Asset 555"]
