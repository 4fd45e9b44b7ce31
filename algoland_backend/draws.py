"""
Weekly Draw Service
===================
Per-week challenge configuration, VRF draw state, winner records and prize
claim status, read from the draw and registry contracts.
"""

from loguru import logger

from algoland_backend.cache import SingleFlight
from algoland_backend.errors import IndexerError, IndexerNotFoundError, WeekNotPublishedError
from algoland_backend.helpers import to_positive_id, utc_now_iso
from algoland_backend.profiles import POINTS_SCALE


def normalise_error(error):
    """User-facing description of a draw lookup failure."""
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, (WeekNotPublishedError, IndexerNotFoundError)) or "404" in str(error):
        return "Indexer returned 404 (state not found or not yet published)"
    return str(error) or "Unknown error"


def unique_prize_asset_ids(challenge):
    """Positive prize asset ids in first-seen order."""
    ordered = []
    for raw in (challenge or {}).get("drawPrizeAssetIds") or []:
        asset_id = to_positive_id(raw)
        if asset_id and asset_id not in ordered:
            ordered.append(asset_id)
    return ordered


def _scaled(value):
    return value * POINTS_SCALE if isinstance(value, int) else None


def build_winner(relative_id, address, user):
    referrals = list(user.get("referrals") or [])
    eligibility = user.get("weeklyDrawEligibility") or []
    return {
        "relativeId": relative_id,
        "address": address,
        "referrerId": user.get("referrerId") or None,
        "points": _scaled(user.get("points")),
        "redeemedPoints": _scaled(user.get("redeemedPoints")),
        "weeklyDrawEntries": len(eligibility),
        "completedQuests": [f"Quest {q}" for q in user.get("completedQuests") or []],
        "completedChallenges": [f"Challenge {c}" for c in user.get("completedChallenges") or []],
        "numReferrals": user.get("numReferrals") if isinstance(user.get("numReferrals"), int) else len(referrals),
        "referralIds": referrals,
        "availablePrizeAssetIds": [a for a in user.get("availableDrawPrizeAssetIds") or [] if a > 0],
        "claimedPrizeAssetIds": [a for a in user.get("claimedDrawPrizeAssetIds") or [] if a > 0],
    }


def sanitise_challenge(challenge):
    sanitised = {
        "questIds": list(challenge.get("questIds") or []),
        "drawPrizeAssetIds": list(challenge.get("drawPrizeAssetIds") or []),
        "numDrawEligibleAccounts": challenge.get("numDrawEligibleAccounts"),
        "numDrawWinners": challenge.get("numDrawWinners"),
        "timeStart": challenge.get("timeStart"),
        "timeEnd": challenge.get("timeEnd"),
    }
    if challenge.get("completionBadgeAssetId"):
        sanitised["completionBadgeAssetId"] = str(challenge["completionBadgeAssetId"])
    return sanitised


def sanitise_weekly_state(state):
    return {
        "status": state.get("status") or None,
        "accountsIngested": state.get("accountsIngested"),
        "lastRelativeId": state.get("lastRelativeId"),
        "commitBlocks": list(state.get("commitBlocks") or []),
        "winners": list(state.get("winners") or []),
        "txIds": [tx for tx in state.get("txIds") or [] if tx],
    }


class WeeklyDrawService:
    def __init__(self, registry, holders, store, flight=None):
        self.registry = registry
        self.holders = holders
        self.store = store
        self.flight = flight or SingleFlight()

    def fetch_week(self, week):
        """Uncached WeeklyDrawResult for one week."""
        week = int(week)
        if week < 1:
            raise ValueError("Week must be a positive integer")
        draw_app_id = self.registry.draw_app_id()
        try:
            challenge = self.registry.challenge(week, draw_app_id)
            weekly_state = self.registry.weekly_draw_state(week, draw_app_id)
        except IndexerNotFoundError as exc:
            raise WeekNotPublishedError(week, exc) from exc

        winners = [self.winner(relative_id) for relative_id in weekly_state.get("winners") or []]

        prize_assets = []
        for asset_id in unique_prize_asset_ids(challenge):
            try:
                prize_assets.append(self.holders.holders(asset_id))
            except IndexerError as exc:
                logger.warning(f"[Draws] Prize asset {asset_id} for week {week} unavailable: {exc}")
                prize_assets.append({"assetId": asset_id, "error": normalise_error(exc)})

        logger.info(
            f"[Draws] Week {week}: {len(winners)} winners, {len(prize_assets)} prize assets"
        )
        return {
            "week": week,
            "challenge": sanitise_challenge(challenge),
            "weeklyState": sanitise_weekly_state(weekly_state),
            "winners": winners,
            "prizeAssets": prize_assets,
        }

    def winner(self, relative_id):
        address = self.registry.relative_address(relative_id)
        if address is None:
            raise IndexerNotFoundError(f"Relative mapping {relative_id} missing")
        user = self.registry.user_record(address)
        if user is None:
            raise IndexerNotFoundError(f"User record for {address} unavailable")
        return build_winner(relative_id, address, user)

    def week(self, week):
        """WeeklyDrawResult through the aged cache; stale copy on failure."""
        key = f"weekly-draw:{week}"
        fresh = self.store.fresh(key)
        if fresh is not None:
            return dict(fresh)
        return dict(self.flight.do(key, lambda: self._refresh(key, week)))

    def _refresh(self, key, week):
        cached = self.store.entry(key)
        try:
            payload = self.fetch_week(week)
        except (IndexerError, WeekNotPublishedError) as exc:
            if cached is not None:
                logger.warning(f"[Draws] Week {week} fetch failed, serving cache: {exc}")
                return {**cached.payload, "stale": True}
            raise
        payload = {**payload, "fetchedAt": utc_now_iso(), "stale": False}
        self.store.set(key, payload)
        return payload
