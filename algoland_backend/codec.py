"""
Binary State Codec
==================
Box keys and box values of the Algoland registry and draw contracts.

Keys are a one-byte record prefix followed by the ABI encoding of the lookup
value. Values are ABI tuples described by the struct schemas below, which
mirror the contracts' published ARC-56 interface.
"""

import base64
import binascii
from functools import lru_cache

from algosdk import abi, encoding
from algosdk.error import ABIEncodingError
from loguru import logger

# ── Box key prefixes ───────────────────────────────────────────────
CHALLENGE_PREFIX = b"c"
WEEKLY_DRAW_PREFIX = b"w"
RELATIVE_ID_PREFIX = b"r"
USER_PREFIX = b""  # user boxes are keyed by the raw 32-byte public key

# ── Struct schemas ─────────────────────────────────────────────────
STRUCTS = {
    "User": [
        ("relativeId", "uint32"),
        ("referrerId", "uint32"),
        ("points", "uint64"),
        ("redeemedPoints", "uint64"),
        ("referralPoints", "uint64"),
        ("numReferrals", "uint32"),
        ("referrals", "uint32[]"),
        ("completedQuests", "uint16[]"),
        ("completedChallenges", "uint8[]"),
        ("completableChallenges", "uint8[]"),
        ("weeklyDrawEligibility", "uint8[]"),
        ("availableDrawPrizeAssetIds", "uint64[]"),
        ("claimedDrawPrizeAssetIds", "uint64[]"),
    ],
    "Challenge": [
        ("timeStart", "uint64"),
        ("timeEnd", "uint64"),
        ("completionBadgeAssetId", "uint64"),
        ("questIds", "uint16[]"),
        ("drawPrizeAssetIds", "uint64[]"),
        ("numDrawEligibleAccounts", "uint64"),
        ("numDrawWinners", "uint64"),
    ],
    "WeeklyDrawState": [
        ("status", "string"),
        ("accountsIngested", "uint64"),
        ("lastRelativeId", "uint32"),
        ("commitBlocks", "uint64[]"),
        ("winners", "uint32[]"),
        ("txIds", "string[]"),
    ],
}


@lru_cache(maxsize=None)
def abi_type(type_string):
    return abi.ABIType.from_string(type_string)


@lru_cache(maxsize=None)
def struct_type(schema):
    fields = STRUCTS[schema]
    return abi_type("(" + ",".join(kind for _, kind in fields) + ")")


def _default_for(kind):
    parsed = abi_type(kind)
    if isinstance(parsed, abi.ArrayDynamicType):
        return []
    if isinstance(parsed, abi.ArrayStaticType):
        return [_default_for(str(parsed.child_type))] * parsed.static_length
    if isinstance(parsed, abi.StringType):
        return ""
    if isinstance(parsed, abi.BoolType):
        return False
    if isinstance(parsed, abi.AddressType):
        return None
    return 0


def empty_record(schema):
    """Schema defaults used for empty or undecodable boxes."""
    return {name: _default_for(kind) for name, kind in STRUCTS[schema]}


def decode_record(raw, schema):
    """Decode box bytes into a {field: value} dict following the named schema."""
    if not raw:
        return empty_record(schema)
    try:
        values = struct_type(schema).decode(bytes(raw))
    except (ABIEncodingError, ValueError, IndexError, TypeError) as exc:
        logger.warning(f"[Codec] Malformed {schema} box ({len(raw)} bytes): {exc}")
        return empty_record(schema)
    return {name: value for (name, _), value in zip(STRUCTS[schema], values)}


def encode_record(record, schema):
    """Inverse of decode_record; used by tooling and tests."""
    values = [record.get(name, _default_for(kind)) for name, kind in STRUCTS[schema]]
    return struct_type(schema).encode(values)


def _prefix_bytes(prefix):
    if isinstance(prefix, str):
        return prefix.encode("utf-8")
    return bytes(prefix or b"")


def encode_key(prefix, kind, value):
    """Box key: record prefix followed by the ABI-encoded lookup value."""
    return _prefix_bytes(prefix) + abi_type(kind).encode(value)


def decode_key(key, prefix, kind):
    """Recover the lookup value from a box key built by encode_key."""
    prefix = _prefix_bytes(prefix)
    if not key.startswith(prefix):
        raise ValueError(f"box key does not start with prefix {prefix!r}")
    return abi_type(kind).decode(key[len(prefix):])


def challenge_key(week):
    return encode_key(CHALLENGE_PREFIX, "uint8", week)


def weekly_draw_key(week):
    return encode_key(WEEKLY_DRAW_PREFIX, "uint8", week)


def relative_id_key(relative_id):
    return encode_key(RELATIVE_ID_PREFIX, "uint32", relative_id)


def user_key(address):
    return encode_key(USER_PREFIX, "address", address)


def box_name_param(key):
    return "base64:" + base64.b64encode(key).decode("ascii")


def address_from_bytes(raw):
    """Address stored in a relative-id box (32-byte public key)."""
    if len(raw) < 32:
        raise ValueError(f"expected a 32-byte public key, got {len(raw)} bytes")
    return encoding.encode_address(bytes(raw[:32]))


# ── Global state ───────────────────────────────────────────────────
def decode_state_key(key):
    if not isinstance(key, str) or not key:
        return None
    try:
        return base64.b64decode(key).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def state_uint(value):
    """Unsigned integer held by a global-state value (uint or big-endian bytes)."""
    if not isinstance(value, dict):
        return None
    uint = value.get("uint")
    is_uint = value.get("type") == 2 or (value.get("type") is None and not value.get("bytes"))
    if is_uint:
        if isinstance(uint, int) and not isinstance(uint, bool) and uint >= 0:
            return uint
        return None
    raw = value.get("bytes")
    if isinstance(raw, str) and raw:
        try:
            decoded = base64.b64decode(raw)
        except binascii.Error:
            return None
        return int.from_bytes(decoded, "big") if decoded else 0
    return None


def decode_global_state(application):
    """{name: value} map from an /v2/applications/{id} payload."""
    params = (application or {}).get("application", {}).get("params", {})
    entries = params.get("global-state")
    if not isinstance(entries, list):
        return None
    state = {}
    for entry in entries:
        name = decode_state_key((entry or {}).get("key"))
        if name:
            state[name] = entry.get("value") or {}
    return state
