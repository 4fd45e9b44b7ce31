"""
Challenge Prize Service
=======================
Keeps the week -> badge/prize asset mapping warm. A background task
re-reads the draw contract's challenge boxes every refresh interval; readers
get the cached snapshot, the last good one (stale) when a refresh fails, or
a legacy snapshot built from static configuration when nothing was ever
fetched.
"""

import threading

from loguru import logger

from algoland_backend.cache import MISSING
from algoland_backend.config import TOTAL_WEEKS, badge_asset_for_week
from algoland_backend.errors import IndexerError
from algoland_backend.helpers import to_positive_id, utc_now_iso
from algoland_backend.scheduler import PeriodicTask

SNAPSHOT_KEY = "snapshot"
LIVE_SOURCE = "algoland-registry"
LEGACY_SOURCE = "legacy-prizes"


def _string_id(value):
    asset_id = to_positive_id(value)
    return str(asset_id) if asset_id else None


def normalise_challenge(week, raw):
    """ChallengeWeek for a decoded challenge box."""
    prize_ids = raw.get("drawPrizeAssetIds") or []
    entry = {
        "week": week,
        "badgeAsa": _string_id(raw.get("completionBadgeAssetId")),
        "prizeAsa": _string_id(prize_ids[0]) if prize_ids else None,
    }
    for field in ("timeStart", "timeEnd"):
        value = to_positive_id(raw.get(field))
        if value:
            entry[field] = value
    entry["status"] = "configured" if entry["badgeAsa"] or entry["prizeAsa"] else "pending"
    return entry


class ChallengePrizeService:
    def __init__(self, registry, prize_store, catalog, store, refresh_interval=600,
                 total_weeks=TOTAL_WEEKS):
        self.registry = registry
        self.prize_store = prize_store
        self.catalog = catalog
        self.store = store
        self.refresh_interval = refresh_interval
        self.total_weeks = total_weeks
        self._lock = threading.Lock()
        self._last_good = None
        self._task = PeriodicTask("Challenges", refresh_interval, self.refresh)

    def _pending_week(self, week):
        return {
            "week": week,
            "badgeAsa": _string_id(badge_asset_for_week(week)),
            "prizeAsa": None,
            "status": "pending",
        }

    def fetch(self):
        """Read every week's challenge box and replace the cached snapshot."""
        published = self.registry.challenges()
        weeks = []
        for week in range(1, self.total_weeks + 1):
            raw = published.get(week)
            entry = normalise_challenge(week, raw) if raw is not None else self._pending_week(week)
            weeks.append(self.catalog.merge(entry))
        snapshot = {"weeks": weeks, "fetchedAt": utc_now_iso(), "source": LIVE_SOURCE, "stale": False}
        with self._lock:
            self._last_good = snapshot
        self.store.set(SNAPSHOT_KEY, snapshot)
        logger.info(f"[Challenges] Snapshot refreshed: {len(published)} published weeks")
        return snapshot

    def legacy_snapshot(self, error=None):
        """Static configuration plus the legacy prize file, marked stale."""
        legacy = {entry["week"]: entry for entry in self.prize_store.all()}
        weeks = []
        for week in range(1, self.total_weeks + 1):
            badge = _string_id(badge_asset_for_week(week))
            prize_entry = legacy.get(week) or {}
            prize = _string_id(prize_entry.get("assetId"))
            weeks.append(self.catalog.merge({
                "week": week,
                "badgeAsa": badge,
                "prizeAsa": prize,
                "status": "legacy" if badge or prize else "pending",
            }))
        snapshot = {"weeks": weeks, "fetchedAt": utc_now_iso(), "source": LEGACY_SOURCE, "stale": True}
        if error is not None:
            snapshot["error"] = str(error) or "Unable to refresh challenges"
        with self._lock:
            self._last_good = snapshot
        self.store.set(SNAPSHOT_KEY, snapshot, self.refresh_interval * 2)
        return snapshot

    def snapshot(self):
        cached = self.store.get(SNAPSHOT_KEY)
        if cached is not MISSING:
            return cached
        try:
            return self.fetch()
        except IndexerError as exc:
            with self._lock:
                last_good = self._last_good
            if last_good is not None:
                logger.warning(f"[Challenges] Refresh failed, serving last snapshot: {exc}")
                return {**last_good, "stale": True, "error": str(exc) or "Unable to refresh challenges"}
            logger.warning(f"[Challenges] Refresh failed, using legacy configuration: {exc}")
            return self.legacy_snapshot(exc)

    def refresh(self):
        self.fetch()

    def start(self):
        self._task.start()

    def stop(self, timeout=5):
        self._task.stop(timeout)
