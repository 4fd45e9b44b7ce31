"""Tests for box keys, struct decoding and global-state values."""

import base64

import pytest

from algoland_backend import codec
from conftest import global_state_payload, make_address


class TestBoxKeys:
    @pytest.mark.parametrize("prefix,kind,value", [
        (codec.CHALLENGE_PREFIX, "uint8", 4),
        (codec.WEEKLY_DRAW_PREFIX, "uint8", 13),
        (codec.RELATIVE_ID_PREFIX, "uint32", 123456),
    ])
    def test_key_round_trip(self, prefix, kind, value):
        key = codec.encode_key(prefix, kind, value)

        assert codec.decode_key(key, prefix, kind) == value

    def test_key_layout(self):
        assert codec.challenge_key(3) == b"c\x03"
        assert codec.relative_id_key(258) == b"r\x00\x00\x01\x02"

    def test_user_key_is_raw_public_key(self):
        address = make_address(9)

        key = codec.user_key(address)

        assert key == bytes([9]) * 32
        assert codec.address_from_bytes(key) == address

    def test_decode_key_rejects_wrong_prefix(self):
        with pytest.raises(ValueError):
            codec.decode_key(b"w\x01", codec.CHALLENGE_PREFIX, "uint8")

    def test_box_name_param(self):
        assert codec.box_name_param(b"a") == "base64:YQ=="


class TestRecords:
    def test_user_record_round_trip(self):
        record = codec.empty_record("User")
        record.update({
            "relativeId": 12,
            "referrerId": 3,
            "points": 78,
            "referrals": [20, 21],
            "completedQuests": [1, 4],
            "weeklyDrawEligibility": [1, 2],
            "availableDrawPrizeAssetIds": [3215542831],
        })

        decoded = codec.decode_record(codec.encode_record(record, "User"), "User")

        assert decoded == record

    def test_weekly_draw_state_round_trip(self):
        state = {
            "status": "complete",
            "accountsIngested": 5000,
            "lastRelativeId": 4999,
            "commitBlocks": [100, 101],
            "winners": [7, 8],
            "txIds": ["TX1"],
        }

        assert codec.decode_record(codec.encode_record(state, "WeeklyDrawState"), "WeeklyDrawState") == state

    def test_empty_box_returns_defaults(self):
        assert codec.decode_record(b"", "Challenge") == {
            "timeStart": 0,
            "timeEnd": 0,
            "completionBadgeAssetId": 0,
            "questIds": [],
            "drawPrizeAssetIds": [],
            "numDrawEligibleAccounts": 0,
            "numDrawWinners": 0,
        }

    def test_malformed_box_returns_defaults(self):
        assert codec.decode_record(b"\x00\x01", "User") == codec.empty_record("User")


class TestGlobalState:
    def test_state_uint_from_uint_value(self):
        assert codec.state_uint({"type": 2, "uint": 500}) == 500

    def test_state_uint_from_bytes_value(self):
        raw = base64.b64encode((1234).to_bytes(8, "big")).decode()

        assert codec.state_uint({"type": 1, "bytes": raw}) == 1234

    def test_state_uint_rejects_garbage(self):
        assert codec.state_uint(None) is None
        assert codec.state_uint({"type": 2, "uint": -1}) is None

    def test_decode_global_state(self):
        state = codec.decode_global_state(global_state_payload(1, userCounter=500, drawAppId=77))

        assert codec.state_uint(state["userCounter"]) == 500
        assert codec.state_uint(state["drawAppId"]) == 77

    def test_missing_global_state(self):
        assert codec.decode_global_state({"application": {"params": {}}}) is None
