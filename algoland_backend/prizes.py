"""
Prize store
===========
Legacy per-week prize configuration (JSON file, reloaded when its mtime
changes) and the asset -> image/title catalog merged into challenge weeks.
"""

import json
import os
import threading

from loguru import logger

from algoland_backend.config import TOTAL_WEEKS
from algoland_backend.errors import PrizeConfigError
from algoland_backend.helpers import DIGITS, to_positive_id

COMING_SOON = "Coming soon"


def default_prize(week):
    return {
        "week": week,
        "asa": COMING_SOON,
        "assetId": None,
        "image": None,
        "status": "coming-soon",
        "mainPrizes": [],
        "specialPrizes": [],
        "mainAssetIds": [],
    }


def _text(value):
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return ""


def _first(raw, *keys):
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def normalise_visual(raw):
    """A main/special prize tile: {assetId, asa, image, title} or None."""
    if isinstance(raw, (str, int)) and not isinstance(raw, bool):
        raw = {"assetId": raw}
    if not isinstance(raw, dict):
        return None
    asset_id = to_positive_id(_first(raw, "assetId", "asa", "id", "asset"))
    asa = _text(_first(raw, "asa", "ASA", "assetId", "id", "asset"))
    image = _text(_first(raw, "image", "imageName", "icon", "filename"))
    title = _text(_first(raw, "title", "name", "label", "description"))
    item = {
        "assetId": asset_id,
        "asa": asa or (str(asset_id) if asset_id else None),
        "image": image or None,
        "title": title or None,
    }
    if item["assetId"] is None and not item["image"] and not item["title"]:
        return None
    return item


def normalise_prize_entry(raw):
    """One week of the legacy prize file, or None if it has no usable week."""
    if not isinstance(raw, dict):
        return None
    week = to_positive_id(raw.get("week"))
    if week is None:
        return None
    entry = default_prize(week)

    asa_raw = _first(raw, "asa", "ASA", "assetId", "asset", "id")
    if isinstance(asa_raw, list):
        labels = [_text(value) for value in asa_raw if _text(value)]
        if labels:
            entry["asa"] = " · ".join(labels)
        ids = [to_positive_id(value) for value in asa_raw]
        entry["assetId"] = next((value for value in ids if value), None)
    else:
        label = _text(asa_raw)
        if label:
            entry["asa"] = label
            if DIGITS.match(label) and int(label) > 0:
                entry["assetId"] = int(label)
                entry["asa"] = str(int(label))

    image = _text(_first(raw, "image", "imageName", "assetImage", "filename"))
    if image:
        entry["image"] = image

    main = [item for item in map(normalise_visual, _first(raw, "mainPrizes", "gallery", "mainPrizeImages") or []) if item]
    if main:
        entry["mainPrizes"] = main
        entry["mainAssetIds"] = [item["assetId"] for item in main if item["assetId"]]
        if not entry["image"]:
            entry["image"] = next((item["image"] for item in main if item["image"]), None)
        if entry["asa"] == COMING_SOON:
            labels = [item["asa"] for item in main if item["asa"]]
            if labels:
                entry["asa"] = " · ".join(labels)
        if entry["assetId"] is None and entry["mainAssetIds"]:
            entry["assetId"] = entry["mainAssetIds"][0]

    special = [item for item in map(normalise_visual, raw.get("specialPrizes") or []) if item]
    if special:
        entry["specialPrizes"] = special

    if entry["assetId"] and (entry["image"] or entry["mainPrizes"]):
        entry["status"] = "available"
    return entry


def _copy_prize(entry):
    copied = dict(entry)
    for key in ("mainPrizes", "specialPrizes", "mainAssetIds"):
        copied[key] = list(entry[key])
    return copied


class PrizeStore:
    """Legacy prize file, normalised to one entry per campaign week."""

    def __init__(self, path, total_weeks=TOTAL_WEEKS):
        self.path = path
        self.total_weeks = total_weeks
        self._lock = threading.Lock()
        self._weeks = None
        self._mtime = None

    def _load(self):
        with self._lock:
            try:
                mtime = os.stat(self.path).st_mtime
            except FileNotFoundError:
                self._weeks = [default_prize(week) for week in range(1, self.total_weeks + 1)]
                self._mtime = None
                return self._weeks
            except OSError as exc:
                raise PrizeConfigError(f"Prize configuration unreadable: {exc}") from exc

            if self._weeks is not None and self._mtime == mtime:
                return self._weeks

            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    parsed = json.load(f)
            except ValueError as exc:
                raise PrizeConfigError("Prize configuration file is not valid JSON.") from exc
            except OSError as exc:
                raise PrizeConfigError(f"Prize configuration unreadable: {exc}") from exc

            by_week = {}
            for item in parsed if isinstance(parsed, list) else []:
                entry = normalise_prize_entry(item)
                if entry:
                    by_week[entry["week"]] = entry
            self._weeks = [by_week.get(week) or default_prize(week)
                           for week in range(1, self.total_weeks + 1)]
            self._mtime = mtime
            logger.info(f"[Prizes] Loaded prize configuration for {len(by_week)} weeks from {self.path}")
            return self._weeks

    def all(self):
        return [_copy_prize(entry) for entry in self._load()]

    def for_week(self, week):
        """Entry for a week in 1..TOTAL_WEEKS, None for anything else."""
        week = to_positive_id(week) if isinstance(week, (int, str)) else None
        if week is None or week > self.total_weeks:
            return None
        return _copy_prize(self._load()[week - 1])


class PrizeCatalog:
    """Asset id -> {image, title} display metadata."""

    def __init__(self, entries=None):
        self.entries = {}
        for asset_id, meta in (entries or {}).items():
            if to_positive_id(asset_id) and isinstance(meta, dict):
                self.entries[str(to_positive_id(asset_id))] = meta

    @classmethod
    def from_file(cls, path):
        if not os.path.exists(path):
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                return cls(json.load(f))
        except (OSError, ValueError) as exc:
            logger.warning(f"[Prizes] Ignoring unreadable prize metadata file {path}: {exc}")
            return cls()

    def lookup(self, asset_id):
        asset_id = to_positive_id(asset_id)
        if asset_id is None:
            return None
        meta = self.entries.get(str(asset_id))
        if meta is None:
            return None
        return {"assetId": str(asset_id), "title": meta.get("title"), "image": meta.get("image")}

    def merge(self, week_entry):
        entry = dict(week_entry)
        badge = self.lookup(entry.get("badgeAsa"))
        if badge:
            entry["badgeMetadata"] = badge
        prize = self.lookup(entry.get("prizeAsa"))
        if prize:
            entry["prizeMetadata"] = prize
        return entry
