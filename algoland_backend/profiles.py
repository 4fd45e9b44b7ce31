"""
Profile Resolver
================
Resolves an address or numeric Algoland ID to a canonical participant
profile. Registry user records and looser inspector-style payloads go
through the same field extractors; participation and status are always
derived, never copied from input.
"""

from dataclasses import dataclass

from loguru import logger

from algoland_backend import profile_fields as fields
from algoland_backend.cache import MISSING, SingleFlight
from algoland_backend.errors import ApiError, IndexerError
from algoland_backend.helpers import (
    DIGITS,
    is_algorand_address,
    normalise_address,
    utc_now_iso,
)

REGISTRY_SOURCE = "algoland-registry"
POINTS_SCALE = 100  # registry records store points in hundredths of a display point
NO_DATA_MESSAGE = "We couldn't find any Algoland activity for that wallet yet."
ID_LOOKUP_TTL = 12 * 60 * 60
NEGATIVE_LOOKUP_TTL = 60
MAX_RELATIVE_ID = 2 ** 32 - 1  # relative ids are uint32 box keys
REGISTRY_ASSET_LABEL = "Asset"


@dataclass(frozen=True)
class Identifier:
    type: str  # "address" | "id"
    value: object
    raw: str


def parse_identifier(raw):
    """Classify the ?address= parameter as a numeric ID or an Algorand address."""
    if not isinstance(raw, str) or not raw.strip():
        raise ApiError("invalid_identifier", "address query parameter is required.", 400)
    text = raw.strip()
    if DIGITS.match(text):
        value = int(text)
        if value > MAX_RELATIVE_ID:
            raise ApiError("invalid_identifier", f"Numeric IDs must not exceed {MAX_RELATIVE_ID}.", 400)
        return Identifier(type="id", value=value, raw=text)
    upper = text.upper()
    if is_algorand_address(upper):
        return Identifier(type="address", value=upper, raw=upper)
    raise ApiError(
        "invalid_identifier",
        "address must be a numeric ID or 58-character Algorand address.",
        400,
    )


def has_participation(profile):
    draws = profile["weeklyDraws"]
    return bool(
        (profile.get("pointsRaw") or 0) > 0
        or (profile.get("redeemedPointsRaw") or 0) > 0
        or profile["completedQuests"]
        or profile["completedChallenges"]
        or profile["referrals"]
        or draws["weeks"]
        or draws["availablePrizeAssetIds"]
        or draws["claimedPrizeAssetIds"]
    )


def _finalise(profile, status_message=None):
    participating = has_participation(profile)
    profile["hasParticipation"] = participating
    profile["status"] = "ok" if participating else "no_data"
    profile["statusMessage"] = status_message if participating else NO_DATA_MESSAGE
    return profile


def create_empty_profile(address, source=REGISTRY_SOURCE):
    """Profile for a wallet with no registry record yet."""
    now = utc_now_iso()
    profile = {
        "resolvedAddress": address,
        "address": address,
        "relativeId": None,
        "referrerId": None,
        "points": 0,
        "pointsRaw": 0,
        "redeemedPoints": 0,
        "redeemedPointsRaw": 0,
        "referralPoints": 0,
        "referralPointsRaw": 0,
        "completedQuests": [],
        "completedChallenges": [],
        "completableChallenges": [],
        "weeklyDraws": {
            "eligible": False,
            "entries": 0,
            "weeks": [],
            "availablePrizeAssetIds": [],
            "claimedPrizeAssetIds": [],
        },
        "weeklyDrawEligibility": [],
        "availableDrawPrizeAssetIds": [],
        "claimedDrawPrizeAssetIds": [],
        "referrals": [],
        "referralsRelativeIds": [],
        "referralsCount": 0,
        "source": source,
        "updatedAt": now,
    }
    return _finalise(profile)


def _points(payload, value_extractor, display_extractor, scale):
    value = value_extractor.extract(payload)
    display = display_extractor.extract(payload)
    raw = value.raw if value is not None else None
    if display is None and value is not None:
        display = value.display(scale)
    return display, raw


def build_profile(address, payload, referral_addresses=None, source=REGISTRY_SOURCE, points_scale=1,
                  asset_label=None):
    """Canonical profile from a registry record or inspector-style payload.

    Registry records pass `points_scale=POINTS_SCALE` and an `asset_label`
    so prize ids read as "Asset N"; inspector payloads keep bare ids.
    """
    points, points_raw = _points(payload, fields.POINTS, fields.DISPLAY_POINTS, points_scale)
    redeemed, redeemed_raw = _points(
        payload, fields.REDEEMED_POINTS, fields.DISPLAY_REDEEMED_POINTS, points_scale
    )
    referral_points, referral_points_raw = _points(
        payload, fields.REFERRAL_POINTS, fields.DISPLAY_REFERRAL_POINTS, points_scale
    )

    draws = fields.WEEKLY_DRAWS.extract(payload) or {}
    weeks = draws.get("weeks", [])
    entries = draws.get("entries")
    if entries is None:
        entries = fields.WEEKLY_DRAW_ENTRIES.extract(payload)
    if entries is None:
        entries = len(weeks)
    eligible = draws.get("eligible")
    if eligible is None:
        eligible = entries > 0 or bool(weeks)
    available = fields.format_asset_ids(fields.AVAILABLE_PRIZES.extract(payload), asset_label)
    claimed = fields.format_asset_ids(fields.CLAIMED_PRIZES.extract(payload), asset_label)

    referral_ids = fields.numeric_ids(fields.REFERRALS.extract(payload))
    referral_addresses = [a for a in referral_addresses or [] if is_algorand_address(a)]
    if referral_addresses:
        referrals = referral_addresses
        referrals_count = len(referral_addresses)
    else:
        referrals = fields.format_labelled(fields.REFERRALS.extract(payload), "Relative ID")
        referrals_count = fields.REFERRAL_COUNT.extract(payload)
        if referrals_count is None:
            referrals_count = len(referrals)

    profile = {
        "resolvedAddress": address,
        "address": address,
        "relativeId": fields.RELATIVE_ID.extract(payload),
        "referrerId": fields.REFERRER_ID.extract(payload),
        "points": points,
        "pointsRaw": points_raw,
        "redeemedPoints": redeemed,
        "redeemedPointsRaw": redeemed_raw,
        "referralPoints": referral_points,
        "referralPointsRaw": referral_points_raw,
        "completedQuests": fields.format_labelled(fields.COMPLETED_QUESTS.extract(payload), "Quest"),
        "completedChallenges": fields.format_labelled(
            fields.COMPLETED_CHALLENGES.extract(payload), "Challenge"),
        "completableChallenges": fields.format_labelled(
            fields.COMPLETABLE_CHALLENGES.extract(payload), "Challenge"),
        "weeklyDraws": {
            "eligible": bool(eligible),
            "entries": entries,
            "weeks": weeks,
            "availablePrizeAssetIds": available,
            "claimedPrizeAssetIds": claimed,
        },
        "weeklyDrawEligibility": fields.numeric_ids(fields.WEEKLY_DRAW_ELIGIBILITY.extract(payload)),
        "availableDrawPrizeAssetIds": available,
        "claimedDrawPrizeAssetIds": claimed,
        "referrals": referrals,
        "referralsRelativeIds": referral_ids,
        "referralsCount": referrals_count,
        "source": source,
        "updatedAt": utc_now_iso(),
    }
    return _finalise(profile, fields.STATUS_MESSAGE.extract(payload))


class ProfileResolver:
    def __init__(self, registry, profile_store, id_store, flight=None):
        self.registry = registry
        self.profile_store = profile_store
        self.id_store = id_store
        self.flight = flight or SingleFlight()

    def resolve(self, identifier):
        if identifier.type == "address":
            return self.profile_for_address(identifier.value)
        if identifier.type == "id":
            address = self.resolve_relative_id(identifier.value)
            if not address:
                raise ApiError("profile_not_found", "No Algoland profile was found for that ID.", 404)
            return self.profile_for_address(address)
        raise ApiError("invalid_identifier", "Unsupported identifier type.", 400)

    def resolve_relative_id(self, relative_id):
        """Address for a relative id; misses are remembered briefly."""
        key = f"relative:{relative_id}"
        cached = self.id_store.get(key)
        if cached is not MISSING:
            return cached
        try:
            address = self.flight.do(key, lambda: self.registry.relative_address(relative_id))
        except IndexerError as exc:
            logger.warning(f"[Profiles] Failed to resolve relative ID {relative_id}: {exc}")
            raise ApiError(
                "profile_unavailable", "Unable to load Algoland profile at this time.", 502
            ) from exc
        address = normalise_address(address)
        if address:
            self.id_store.set(key, address)
        else:
            self.id_store.set(key, None, NEGATIVE_LOOKUP_TTL)
        return address

    def profile_for_address(self, address):
        normalised = normalise_address(address)
        if not normalised or not is_algorand_address(normalised):
            raise ApiError("invalid_identifier", "Algorand address is invalid.", 400)
        key = f"profile:{normalised}"
        fresh = self.profile_store.fresh(key)
        if fresh is not None:
            return _copy(fresh)
        return _copy(self.flight.do(key, lambda: self._refresh(key, normalised)))

    def _refresh(self, key, address):
        cached = self.profile_store.entry(key)
        try:
            profile = self.fetch_profile(address)
        except IndexerError as exc:
            if cached is not None:
                logger.warning(f"[Profiles] Lookup for {address} failed, serving cache: {exc}")
                return {**cached.payload, "stale": True}
            logger.error(f"[Profiles] Lookup for {address} failed: {exc}")
            raise ApiError(
                "profile_unavailable", "Unable to load Algoland profile at this time.", 502
            ) from exc
        self.profile_store.set(key, profile)
        if isinstance(profile.get("relativeId"), int):
            self.id_store.set(f"relative:{profile['relativeId']}", address, ID_LOOKUP_TTL)
        return profile

    def fetch_profile(self, address):
        """Uncached registry lookup; an unknown wallet yields an empty profile."""
        record = self.registry.get_user(address=address)
        if record is None:
            return create_empty_profile(address)
        try:
            referrals = self.registry.user_referrals(address, record)
        except IndexerError as exc:
            logger.warning(f"[Profiles] Failed to resolve referral addresses for {address}: {exc}")
            referrals = []
        return build_profile(
            address, record, referrals, points_scale=POINTS_SCALE, asset_label=REGISTRY_ASSET_LABEL
        )


def _copy(profile):
    copied = dict(profile)
    copied["weeklyDraws"] = dict(profile["weeklyDraws"])
    return copied
