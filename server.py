"""
Algoland Stats: Backend Server
==============================
Flask server exposing read-only campaign stats (entrants, weekly
completions, participant profiles, prizes and draws) backed by the
Algorand indexer, with a background challenge-prize refresher.

Run locally with `python server.py`, or under gunicorn with
`gunicorn "server:create_app(start_background=True)"`.
"""

import threading
import time
from functools import wraps

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from loguru import logger
from werkzeug.exceptions import HTTPException

from algoland_backend.config import TOTAL_WEEKS, WEEK_CONFIG, Settings
from algoland_backend.draws import normalise_error
from algoland_backend.errors import ApiError, IndexerError, PrizeConfigError, WeekNotPublishedError
from algoland_backend.helpers import DIGITS, utc_now_iso
from algoland_backend.profiles import parse_identifier
from algoland_backend.services import Services

SERVICE_NAME = "algoland-backend"
UPSTREAM_MESSAGE = "Indexer is temporarily unavailable. Please retry shortly."
PRIZE_CONFIG_MESSAGE = "Prize configuration is currently unavailable. Please retry shortly."
COMING_SOON_MESSAGE = "Prize details coming soon. Check back soon."


# ── Helpers ────────────────────────────────────────────────────────
def _services():
    return current_app.extensions["algoland"]


def error_response(code, message, status):
    return jsonify({"error": code, "message": message}), status


def rate_limit(f):
    """Sliding-window rate limit per client IP."""
    @wraps(f)
    def decorated(*args, **kwargs):
        settings = _services().settings
        limits = current_app.extensions["rate_limits"]
        ip = request.remote_addr
        now = time.time()
        with limits["lock"]:
            _prune_idle(limits["hits"], now, settings.rate_limit_window)
            hits = [t for t in limits["hits"].get(ip, []) if now - t < settings.rate_limit_window]
            if len(hits) >= settings.rate_limit_max:
                limits["hits"][ip] = hits
                return error_response("rate_limited", "Rate limit exceeded. Try again later.", 429)
            hits.append(now)
            limits["hits"][ip] = hits
        return f(*args, **kwargs)
    return decorated


def _prune_idle(hits, now, window):
    """Drop clients whose newest hit has left the window."""
    idle = [ip for ip, times in hits.items() if not times or now - times[-1] >= window]
    for ip in idle:
        del hits[ip]


def format_challenge_week(raw):
    week = {
        "week": raw["week"],
        "badgeAsa": raw.get("badgeAsa"),
        "prizeAsa": raw.get("prizeAsa"),
        "status": raw.get("status"),
    }
    for key in ("timeStart", "timeEnd", "badgeMetadata", "prizeMetadata"):
        if raw.get(key) is not None:
            week[key] = raw[key]
    return week


def prize_summary(prize):
    return {
        "week": prize["week"],
        "status": prize["status"],
        "asa": prize["asa"],
        "assetId": prize.get("assetId"),
        "image": prize.get("image"),
        "mainAssetIds": list(prize.get("mainAssetIds") or []),
        "mainPrizes": list(prize.get("mainPrizes") or []),
        "specialPrizes": list(prize.get("specialPrizes") or []),
    }


def attach_draw(body, prize, draw):
    """Merge a WeeklyDrawResult into a /api/prizes/<week> response body."""
    prize_assets = [dict(asset) for asset in draw.get("prizeAssets") or []]
    body["draw"] = {
        "week": draw.get("week"),
        "fetchedAt": draw.get("fetchedAt"),
        "stale": bool(draw.get("stale")),
        "challenge": draw.get("challenge"),
        "weeklyState": draw.get("weeklyState"),
        "winners": list(draw.get("winners") or []),
        "prizeAssets": prize_assets,
    }
    body["prizeAssets"] = prize_assets
    body["selectedWinners"] = list(draw.get("winners") or [])
    if draw.get("stale"):
        body["stale"] = True
        if body["status"] == "available":
            body["status"] = "stale"

    if not prize.get("assetId"):
        return
    main = next((a for a in prize_assets if a.get("assetId") == prize["assetId"]), None)
    if main is None:
        return
    body["winners"] = list(main.get("holders") or [])
    body["winnersCount"] = len(body["winners"])
    updated_at = main.get("updatedAt") or draw.get("fetchedAt")
    if updated_at:
        body["updatedAt"] = updated_at
    for key in ("source", "meta"):
        if main.get(key):
            body[key] = main[key]
    if main.get("error"):
        body["winnerError"] = main["error"]
    if main.get("stale"):
        body["stale"] = True
        body["status"] = "stale"


def completion_body(record):
    body = {
        "assetId": record["assetId"],
        "completions": record["completions"],
        "updatedAt": record["updatedAt"],
        "source": record["source"],
    }
    if record.get("stale"):
        body["stale"] = True
    return body


# ── App Factory ────────────────────────────────────────────────────
def create_app(services=None, settings=None, start_background=False):
    services = services or Services(settings)
    settings = services.settings

    app = Flask(__name__)
    app.extensions["algoland"] = services
    app.extensions["rate_limits"] = {"lock": threading.Lock(), "hits": {}}
    CORS(app, origins=settings.origins or "*", methods=["GET", "OPTIONS"])

    @app.after_request
    def no_store(response):
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.errorhandler(ApiError)
    def handle_api_error(exc):
        return error_response(exc.code, exc.message, exc.status)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        if exc.code == 404:
            return jsonify({"error": "not_found"}), 404
        return error_response(exc.name.lower().replace(" ", "_"), exc.description, exc.code)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        logger.exception(f"[API] Unhandled error on {request.path}: {exc}")
        return error_response("internal_error", "Unexpected server error.", 500)

    register_routes(app)

    if start_background:
        services.start()
    return app


# ── API Routes ─────────────────────────────────────────────────────
def register_routes(app):

    @app.route("/api/ping")
    @rate_limit
    def api_ping():
        """Service identity and static configuration."""
        settings = _services().settings
        return jsonify({
            "ok": True,
            "service": SERVICE_NAME,
            "provider": settings.indexer_base,
            "cacheTtlSeconds": settings.cache_ttl_seconds,
            "now": utc_now_iso(),
            "configuredOrigins": settings.origins,
            "weeks": WEEK_CONFIG,
            "allowlist": _services().allowlist,
        })

    @app.route("/api/entrants")
    @rate_limit
    def api_entrants():
        """Total registered participants."""
        try:
            snapshot = _services().entrants.resolve()
        except IndexerError as exc:
            logger.error(f"[API] Entrants lookup failed: {exc}")
            return error_response("upstream_unavailable", UPSTREAM_MESSAGE, 502)
        body = {
            "entrants": snapshot["count"],
            "updatedAt": snapshot["updatedAt"],
            "source": snapshot["source"],
        }
        if snapshot.get("stale"):
            body["stale"] = True
        return jsonify(body)

    @app.route("/api/completions")
    @rate_limit
    def api_completions():
        """Holders of one weekly badge asset."""
        asset = request.args.get("asset", "").strip()
        if not asset:
            return error_response("missing_asset", "asset query parameter is required", 400)
        if not DIGITS.match(asset):
            return error_response("invalid_asset", "asset must be a numeric ID", 400)
        try:
            record = _services().holders.completions(int(asset))
        except IndexerError as exc:
            logger.error(f"[API] Completions for {asset} failed: {exc}")
            return error_response("upstream_unavailable", UPSTREAM_MESSAGE, 502)
        return jsonify(completion_body(record))

    @app.route("/api/completions/bulk")
    @rate_limit
    def api_completions_bulk():
        """Completions for a comma-separated list of assets; failures are per item."""
        raw = request.args.get("assets", "")
        if not raw.strip():
            return error_response("missing_assets", "assets query parameter is required", 400)

        requested = []
        for value in raw.split(","):
            value = value.strip()
            if value and value not in requested:
                requested.append(value)
        if not requested:
            return error_response("invalid_assets", "assets query parameter must contain numeric IDs", 400)

        results = []
        invalid = []
        for value in requested:
            if not DIGITS.match(value):
                invalid.append(value)
                continue
            asset_id = int(value)
            try:
                record = _services().holders.completions(asset_id)
            except IndexerError as exc:
                results.append({
                    "assetId": asset_id,
                    "error": "unavailable",
                    "message": str(exc) or "Unable to fetch completions for that asset.",
                })
                continue
            results.append({**completion_body(record), "stale": bool(record.get("stale"))})

        body = {"results": results}
        if invalid:
            body["invalidAssets"] = invalid
        return jsonify(body)

    @app.route("/api/algoland-stats")
    @rate_limit
    def api_algoland_stats():
        """Participant profile for an address or numeric Algoland ID."""
        identifier = parse_identifier(request.args.get("address"))
        profile = _services().profiles.resolve(identifier)
        profile["lookupType"] = identifier.type
        profile["lookupValue"] = identifier.raw
        return jsonify(profile)

    @app.route("/api/algoland/prizes")
    @rate_limit
    def api_challenge_prizes():
        """Week -> badge/prize asset snapshot from the draw contract."""
        try:
            snapshot = _services().challenges.snapshot()
        except (IndexerError, PrizeConfigError) as exc:
            logger.error(f"[API] Failed to load challenge prizes: {exc}")
            return error_response(
                "prize_config_unavailable",
                "Unable to load Algoland challenge configuration right now. Please try again shortly.",
                502,
            )
        body = {
            "fetchedAt": snapshot.get("fetchedAt"),
            "source": snapshot.get("source"),
            "stale": bool(snapshot.get("stale")),
            "weeks": [format_challenge_week(week) for week in snapshot.get("weeks") or []],
        }
        if snapshot.get("error"):
            body["error"] = snapshot["error"]
        return jsonify(body)

    @app.route("/api/prizes")
    @rate_limit
    def api_prizes():
        """Prize summaries for every campaign week."""
        try:
            prizes = _services().prizes.all()
        except PrizeConfigError as exc:
            logger.error(f"[API] Failed to load prize configuration: {exc}")
            return error_response("prize_config_unavailable", PRIZE_CONFIG_MESSAGE, 500)
        return jsonify({"weeks": [prize_summary(prize) for prize in prizes]})

    @app.route("/api/prizes/<week>")
    @rate_limit
    def api_prize_week(week):
        """Prize descriptor for one week, with draw winners and claim status."""
        try:
            prize = _services().prizes.for_week(week)
        except PrizeConfigError as exc:
            logger.error(f"[API] Failed to read prize configuration: {exc}")
            return error_response("prize_config_unavailable", PRIZE_CONFIG_MESSAGE, 500)
        if prize is None:
            return error_response("invalid_week", f"Week must be between 1 and {TOTAL_WEEKS}.", 400)

        available = prize.get("assetId") and (prize.get("image") or prize.get("mainPrizes"))
        body = prize_summary(prize)
        body.update({
            "status": "available" if available else "coming-soon",
            "winners": [],
            "winnersCount": 0,
            "prizeAssets": [],
            "selectedWinners": [],
        })
        if body["status"] == "coming-soon":
            body["message"] = COMING_SOON_MESSAGE

        try:
            draw = _services().draws.week(prize["week"])
        except (IndexerError, WeekNotPublishedError) as exc:
            logger.warning(f"[API] Draw data for week {prize['week']} unavailable: {exc}")
            body["draw"] = {"error": normalise_error(exc)}
        else:
            attach_draw(body, prize, draw)
        return jsonify(body)


# ── Main (local dev only) ──────────────────────────────────────────
if __name__ == "__main__":
    settings = Settings()
    app = create_app(settings=settings, start_background=True)
    logger.info(f"[API] Starting Flask server on http://localhost:{settings.port}")
    app.run(host="0.0.0.0", port=settings.port, debug=False, use_reloader=False, threaded=True)
