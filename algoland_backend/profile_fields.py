"""
Profile field extraction
========================
Participant payloads have drifted in shape across campaign iterations
(flat registry records, nested inspector payloads, JSON-in-string values).
Each logical profile field has one FieldExtractor: an ordered tuple of key
synonyms (earlier wins) and a typed coercer that returns None when a
candidate cannot be read as that type.
"""

import json
import math
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

from algoland_backend.helpers import DIGITS, to_safe_int

MAX_DEPTH = 6
MAX_COERCE_DEPTH = 3

NUMERIC_KEYS = ("value", "count", "total", "balance", "current", "available",
                "entries", "amount", "totalPoints", "points")
SCALING_KEYS = {"decimals", "scale", "precision", "multiplier"}
LIST_KEYS = ("list", "items", "entries", "weeks", "values", "ids", "history")
SEPARATORS = ("\n", ",", "|")


def normalise_key(key):
    return str(key).lower().replace("_", "").replace("-", "").replace(" ", "")


def parse_json_text(text):
    """Object or array parsed from a JSON-looking string, else None."""
    if not isinstance(text, str):
        return None
    text = text.strip()
    if not text or text[0] not in "{[":
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def walk(payload, max_depth=MAX_DEPTH):
    """Breadth-first (normalised key, value) pairs of every nested object.

    Nodes are objects, arrays, JSON strings (parsed, then walked) or
    scalars (leaves). Depth is bounded and containers are visited once.
    """
    queue = deque([(payload, 0)])
    seen = set()
    while queue:
        node, depth = queue.popleft()
        if depth > max_depth:
            continue
        if isinstance(node, str):
            parsed = parse_json_text(node)
            if parsed is not None:
                queue.append((parsed, depth + 1))
            continue
        if not isinstance(node, (dict, list, tuple)):
            continue
        if id(node) in seen:
            continue
        seen.add(id(node))
        if isinstance(node, dict):
            for key, value in node.items():
                yield normalise_key(key), value
                queue.append((value, depth + 1))
        else:
            for item in node:
                queue.append((item, depth + 1))


def find_values(payload, key):
    target = normalise_key(key)
    for candidate_key, value in walk(payload):
        if candidate_key == target:
            yield value


# ── Coercers (value or None) ───────────────────────────────────────
def coerce_int(value, depth=0) -> Optional[int]:
    direct = to_safe_int(value)
    if direct is not None:
        return direct
    if isinstance(value, str):
        parsed = parse_json_text(value)
        return coerce_int(parsed, depth + 1) if parsed is not None and depth < MAX_COERCE_DEPTH else None
    if isinstance(value, dict) and depth < MAX_COERCE_DEPTH:
        for key in NUMERIC_KEYS:
            if key in value:
                nested = coerce_int(value[key], depth + 1)
                if nested is not None:
                    return nested
        for key, nested_value in value.items():
            if key in NUMERIC_KEYS or key in SCALING_KEYS:
                continue
            nested = coerce_int(nested_value, depth + 1)
            if nested is not None:
                return nested
    return None


@dataclass(frozen=True)
class PointsValue:
    raw: int
    decimals: Optional[int] = None

    def display(self, scale=1):
        if self.decimals is not None:
            shown = self.raw / (10 ** self.decimals)
            return int(shown) if float(shown).is_integer() else shown
        return self.raw * scale


def coerce_points(value) -> Optional[PointsValue]:
    raw = coerce_int(value)
    if raw is None:
        return None
    decimals = None
    if isinstance(value, dict):
        decimals = to_safe_int(value.get("decimals"))
        if decimals is not None and decimals < 0:
            decimals = None
    return PointsValue(raw=raw, decimals=decimals)


def coerce_number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return None


def coerce_bool(value) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def coerce_text(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _split_text(text):
    parts = [text]
    for separator in SEPARATORS:
        parts = [piece for part in parts for piece in part.split(separator)]
    return [part.strip() for part in parts if part.strip()]


def coerce_list(value, depth=0) -> Optional[list]:
    """List view of a value; an empty list is a valid (found) answer."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return [] if value == 0 else [value]
    if isinstance(value, str):
        parsed = parse_json_text(value)
        if parsed is not None and depth < MAX_COERCE_DEPTH:
            return coerce_list(parsed, depth + 1)
        text = value.strip()
        return _split_text(text) if text else []
    if isinstance(value, dict) and depth < MAX_COERCE_DEPTH:
        for key in LIST_KEYS:
            if isinstance(value.get(key), list):
                return list(value[key])
        text = coerce_text(value.get("text"))
        if text:
            return [text]
        flat = [(k, v) for k, v in value.items() if v is not None and not isinstance(v, (dict, list))]
        if flat:
            return [f"{k}: {v}" for k, v in flat]
    return None


def coerce_weekly_draws(value) -> Optional[dict]:
    """Weekly draw state as {eligible?, entries?, weeks?, ...} or None."""
    if isinstance(value, (list, tuple)):
        return {"weeks": format_labelled(value, "Challenge")}
    if not isinstance(value, dict):
        return None
    state = {}
    for key in ("eligible", "isEligible"):
        eligible = coerce_bool(value.get(key))
        if eligible is not None:
            state["eligible"] = eligible
            break
    for key in ("entries", "count", "totalEntries", "total"):
        entries = coerce_int(value.get(key)) if not isinstance(value.get(key), list) else None
        if entries is not None:
            state["entries"] = entries
            break
    for key in ("weeks", "list", "weekNumbers", "values", "history", "entries"):
        weeks = coerce_list(value.get(key))
        if weeks:
            state["weeks"] = format_labelled(weeks, "Challenge")
            break
    return state or None


# ── Formatting ─────────────────────────────────────────────────────
def format_labelled(items, label):
    """Numbers become '<label> N'; other non-empty strings pass through."""
    formatted = []
    for item in items or []:
        number = to_safe_int(item)
        if number is not None:
            formatted.append(f"{label} {number}")
        elif isinstance(item, str) and item.strip():
            formatted.append(item.strip())
    return formatted


def format_asset_ids(items, label=None):
    """Asset ids as decimal strings, optionally '<label> N'; anything else is dropped."""
    formatted = []
    for item in items or []:
        if isinstance(item, str) and DIGITS.match(item.strip()):
            number = item.strip()
        elif isinstance(item, int) and not isinstance(item, bool):
            number = str(item)
        else:
            continue
        formatted.append(f"{label} {number}" if label else number)
    return formatted


def numeric_ids(items):
    """Non-negative integers from a list; labels and junk are dropped."""
    ids = []
    for item in items or []:
        number = to_safe_int(item)
        if number is not None and number >= 0:
            ids.append(number)
    return ids


# ── Extractors ─────────────────────────────────────────────────────
@dataclass(frozen=True)
class FieldExtractor:
    field: str
    synonyms: tuple
    coerce: Callable[[Any], Any]

    def extract(self, payload):
        """First successfully coerced value, trying synonyms in priority order."""
        for synonym in self.synonyms:
            for candidate in find_values(payload, synonym):
                result = self.coerce(candidate)
                if result is not None:
                    return result
        return None


RELATIVE_ID = FieldExtractor(
    "relativeId", ("relativeId", "relative", "relId", "userIndex", "userId"), coerce_int)
REFERRER_ID = FieldExtractor(
    "referrerId", ("referrerId", "referrer", "parentId"), coerce_int)
POINTS = FieldExtractor(
    "points", ("points", "totalPoints", "pointsTotal", "pointsBalance", "pointBalance",
               "currentPoints", "availablePoints"), coerce_points)
DISPLAY_POINTS = FieldExtractor("displayPoints", ("displayPoints",), coerce_number)
REDEEMED_POINTS = FieldExtractor(
    "redeemedPoints", ("redeemedPoints", "pointsRedeemed", "redeemed", "pointsClaimed",
                       "claimedPoints"), coerce_points)
DISPLAY_REDEEMED_POINTS = FieldExtractor(
    "displayRedeemedPoints", ("displayRedeemedPoints",), coerce_number)
COMPLETED_QUESTS = FieldExtractor(
    "completedQuests", ("completedQuests", "questsCompleted", "questsComplete", "quests",
                        "questHistory", "questsCompletedList", "questCompleted"), coerce_list)
COMPLETED_CHALLENGES = FieldExtractor(
    "completedChallenges", ("completedChallenges", "challengesCompleted", "challenges",
                            "challengeHistory", "challengesComplete"), coerce_list)
COMPLETABLE_CHALLENGES = FieldExtractor(
    "completableChallenges", ("completableChallenges", "availableChallenges",
                              "challengeOptions", "challengePool", "eligibleChallenges"), coerce_list)
REFERRALS = FieldExtractor(
    "referrals", ("referrals", "referralList", "referralsList", "referralHistory", "refs"), coerce_list)
REFERRAL_COUNT = FieldExtractor(
    "referralsCount", ("referralCount", "referralsCount", "referralsTotal", "referralsNumber",
                       "numReferrals", "refCount"), coerce_int)
REFERRAL_POINTS = FieldExtractor(
    "referralPoints", ("referralPoints", "pointsFromReferrals", "referralPointsTotal"), coerce_points)
DISPLAY_REFERRAL_POINTS = FieldExtractor(
    "displayReferralPoints", ("displayReferralPoints",), coerce_number)
WEEKLY_DRAW_ELIGIBILITY = FieldExtractor(
    "weeklyDrawEligibility", ("weeklyDrawEligibility",), coerce_list)
WEEKLY_DRAWS = FieldExtractor(
    "weeklyDraws", ("weeklyDraws", "weeklyDrawEligibility", "weeklyEntries", "drawEntries",
                    "draws", "drawHistory"), coerce_weekly_draws)
WEEKLY_DRAW_ENTRIES = FieldExtractor(
    "weeklyDrawEntries", ("weeklyDrawEntries", "entriesCount", "entryCount", "totalEntries",
                          "entryTotal"), coerce_int)
AVAILABLE_PRIZES = FieldExtractor(
    "availablePrizeAssetIds", ("availableDrawPrizeAssetIds", "availablePrizeAssetIds",
                               "availablePrizes", "availableDrawPrizes", "availablePrizeIds"), coerce_list)
CLAIMED_PRIZES = FieldExtractor(
    "claimedPrizeAssetIds", ("claimedDrawPrizeAssetIds", "claimedPrizeAssetIds", "claimedPrizes",
                             "claimedDrawPrizes", "claimedPrizeIds"), coerce_list)
STATUS_MESSAGE = FieldExtractor("statusMessage", ("statusMessage",), coerce_text)
