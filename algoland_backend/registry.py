"""
Registry reader
===============
SDK-style access to the Algoland registry and draw contracts: global
state, relative-id mapping, user records, challenges and weekly draw state.
"""

import threading

from loguru import logger

from algoland_backend import codec
from algoland_backend.cache import SingleFlight
from algoland_backend.config import TOTAL_WEEKS
from algoland_backend.errors import IndexerError, IndexerNotFoundError
from algoland_backend.helpers import is_algorand_address, normalise_address

DRAW_APP_ID_KEY = "drawAppId"
USER_COUNTER_KEY = "userCounter"


class RegistryClient:
    """Reads contract state through the indexer (and algod for user boxes)."""

    def __init__(self, indexer, app_id, box_reader=None, draw_app_id=None,
                 total_weeks=TOTAL_WEEKS, flight=None):
        self.indexer = indexer
        self.app_id = app_id
        self.box_reader = box_reader or indexer
        self.total_weeks = total_weeks
        self._draw_app_id = draw_app_id if draw_app_id and draw_app_id > 0 else None
        self._lock = threading.Lock()
        self._flight = flight or SingleFlight()

    # ── Global state ───────────────────────────────────────────────
    def global_state(self, app_id=None):
        application = self.indexer.application(app_id or self.app_id)
        state = codec.decode_global_state(application)
        if state is None:
            raise IndexerError(f"Application {app_id or self.app_id} global state unavailable")
        return state

    def user_counter(self):
        """Raw userCounter value, or None when missing or unreadable."""
        state = self.global_state()
        if USER_COUNTER_KEY not in state:
            return None
        return codec.state_uint(state[USER_COUNTER_KEY])

    def draw_app_id(self):
        """Draw application id; resolved once from registry state, then kept."""
        with self._lock:
            if self._draw_app_id:
                return self._draw_app_id
        return self._flight.do("draw-app-id", self._resolve_draw_app_id)

    def _resolve_draw_app_id(self):
        state = self.global_state()
        draw_id = codec.state_uint(state.get(DRAW_APP_ID_KEY))
        if not draw_id:
            raise IndexerError("drawAppId not present in registry global state")
        with self._lock:
            self._draw_app_id = draw_id
        logger.info(f"[Registry] Draw app id resolved: {draw_id}")
        return draw_id

    # ── Users ──────────────────────────────────────────────────────
    def relative_address(self, relative_id):
        """Address mapped to a relative id, or None if no mapping exists."""
        try:
            raw = self.indexer.read_box(self.app_id, codec.relative_id_key(relative_id))
        except IndexerNotFoundError:
            return None
        if not raw:
            return None
        try:
            return codec.address_from_bytes(raw)
        except ValueError as exc:
            logger.warning(f"[Registry] Malformed mapping box for relative ID {relative_id}: {exc}")
            return None

    def user_record(self, address):
        """Decoded User struct for an address, or None if it has no box."""
        try:
            raw = self.box_reader.read_box(self.app_id, codec.user_key(address))
        except IndexerNotFoundError:
            return None
        record = codec.decode_record(raw, "User")
        record["address"] = normalise_address(address)
        return record

    def get_user(self, address=None, user_id=None):
        """User record by address or relative id; None when unknown."""
        if address is None and user_id is not None:
            address = self.relative_address(user_id)
            if address is None:
                return None
        if address is None:
            raise ValueError("address or user_id is required")
        return self.user_record(address)

    def user_referrals(self, address, record=None):
        """Addresses referred by a user; ids without a mapping are skipped."""
        if record is None:
            record = self.user_record(address)
        if not record:
            return []
        addresses = []
        for relative_id in record.get("referrals") or []:
            referred = self.relative_address(relative_id)
            if referred and is_algorand_address(referred):
                addresses.append(referred)
        return addresses

    # ── Challenges / draws ─────────────────────────────────────────
    def challenge(self, week, draw_app_id=None):
        raw = self.indexer.read_box(draw_app_id or self.draw_app_id(), codec.challenge_key(week))
        return codec.decode_record(raw, "Challenge")

    def weekly_draw_state(self, week, draw_app_id=None):
        raw = self.indexer.read_box(draw_app_id or self.draw_app_id(), codec.weekly_draw_key(week))
        return codec.decode_record(raw, "WeeklyDrawState")

    def challenges(self):
        """{week: challenge} for every published week."""
        draw_app_id = self.draw_app_id()
        published = {}
        for week in range(1, self.total_weeks + 1):
            try:
                published[week] = self.challenge(week, draw_app_id)
            except IndexerNotFoundError:
                continue
        return published
