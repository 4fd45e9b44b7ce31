"""
Asset Holder Resolver
=====================
Holders of a reward token, excluding the asset's admin accounts and the
configured distributors. A holder set backs both weekly completions (badge
asset) and prize claims (draw prize assets).
"""

import time

from loguru import logger

from algoland_backend.cache import MISSING, SingleFlight
from algoland_backend.config import allowlist_for_asset
from algoland_backend.errors import IndexerError
from algoland_backend.helpers import normalise_address, to_safe_int, utc_now_iso

ADMIN_FIELDS = ("creator", "manager", "reserve", "freeze", "clawback")
METADATA_TTL = 24 * 60 * 60


class AssetHolderResolver:
    def __init__(self, indexer, allowlist, metadata_store, holders_store, flight=None):
        self.indexer = indexer
        self.allowlist = allowlist
        self.metadata_store = metadata_store
        self.holders_store = holders_store
        self.flight = flight or SingleFlight()

    def asset_metadata(self, asset_id):
        """Decimals, admin addresses and creation round of an asset (cached)."""
        key = f"asset:{asset_id}"
        cached = self.metadata_store.get(key)
        if cached is not MISSING:
            return cached
        payload = self.indexer.request(f"/v2/assets/{asset_id}") or {}
        asset = payload.get("asset") or {}
        params = asset.get("params") or {}
        admins = {normalise_address(params.get(field)) for field in ADMIN_FIELDS}
        admins.discard(None)
        metadata = {
            "decimals": to_safe_int(params.get("decimals")) or 0,
            "adminAddresses": frozenset(admins),
            "creationRound": to_safe_int(asset.get("created-at-round")),
        }
        self.metadata_store.set(key, metadata, METADATA_TTL)
        return metadata

    def excluded_addresses(self, asset_id):
        metadata = self.asset_metadata(asset_id)
        excluded = {normalise_address(a) for a in allowlist_for_asset(self.allowlist, asset_id)}
        excluded.discard(None)
        return excluded | set(metadata["adminAddresses"])

    def fetch_holders(self, asset_id):
        """Enumerate non-zero balances straight from the indexer (no cache)."""
        start = time.perf_counter()
        excluded = self.excluded_addresses(asset_id)
        amounts = {}
        page_count = 0
        scanned = 0
        path = f"/v2/assets/{asset_id}/balances"
        params = {"include-all": False, "currency-greater-than": 0}
        for page in self.indexer.paginate(path, params, items_key="balances"):
            page_count += 1
            scanned += len(page)
            for balance in page:
                address = normalise_address((balance or {}).get("address"))
                if not address or address in excluded:
                    continue
                amount = to_safe_int(balance.get("amount"))
                if amount is None or amount <= 0:
                    continue
                amounts[address] = amount

        holders = sorted(amounts)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        logger.info(
            f"[Holders] Asset {asset_id}: {len(holders)} holders, "
            f"{scanned} balances over {page_count} pages ({duration_ms}ms)"
        )
        return {
            "assetId": int(asset_id),
            "holders": holders,
            "balances": [{"address": a, "amount": str(amounts[a])} for a in holders],
            "uniqueHolders": len(holders),
            "updatedAt": utc_now_iso(),
            "source": self.indexer.base_url,
            "meta": {
                "durationMs": duration_ms,
                "pageCount": page_count,
                "scannedBalances": scanned,
                "uniqueHolders": len(holders),
            },
            "stale": False,
        }

    def holders(self, asset_id):
        """AssetHolderSet read through the aged cache, stale on upstream failure."""
        key = f"holders:{asset_id}"
        fresh = self.holders_store.fresh(key)
        if fresh is not None:
            return dict(fresh)
        return dict(self.flight.do(key, lambda: self._refresh(key, asset_id)))

    def _refresh(self, key, asset_id):
        cached = self.holders_store.entry(key)
        try:
            payload = self.fetch_holders(asset_id)
        except IndexerError as exc:
            if cached is not None:
                logger.warning(f"[Holders] Enumeration for {asset_id} failed, serving cache: {exc}")
                return {**cached.payload, "stale": True}
            raise
        self.holders_store.set(key, payload)
        return payload

    def completions(self, asset_id):
        """CompletionRecord: number of holders of a week's badge asset."""
        holder_set = self.holders(asset_id)
        record = {
            "assetId": holder_set["assetId"],
            "completions": len(holder_set["holders"]),
            "updatedAt": holder_set["updatedAt"],
            "source": holder_set["source"],
            "stale": bool(holder_set.get("stale")),
            "meta": holder_set.get("meta"),
        }
        logger.info(
            f"[Holders] Completions for {asset_id}: {record['completions']}"
            + (" (stale)" if record["stale"] else "")
        )
        return record
