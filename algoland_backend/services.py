"""
Service container
=================
Builds the upstream clients, cache stores and resolvers from Settings and
owns the background refresh task. The HTTP app and the CLI both start here.
"""

from loguru import logger

from algoland_backend.cache import AgedStore, SingleFlight, TTLStore
from algoland_backend.challenges import ChallengePrizeService
from algoland_backend.config import Settings
from algoland_backend.draws import WeeklyDrawService
from algoland_backend.entrants import EntrantCounter
from algoland_backend.holders import AssetHolderResolver
from algoland_backend.indexer import IndexerClient
from algoland_backend.prizes import PrizeCatalog, PrizeStore
from algoland_backend.profiles import ProfileResolver
from algoland_backend.registry import RegistryClient


class Services:
    def __init__(self, settings=None, indexer=None, algod=None):
        self.settings = settings or Settings()
        s = self.settings
        flight = SingleFlight()

        self.indexer = indexer or IndexerClient(
            s.indexer_base, s.indexer_max_retries, s.retry_base_delay, s.request_timeout_seconds,
        )
        self.algod = algod or IndexerClient(
            s.algod_base, s.indexer_max_retries, s.retry_base_delay, s.request_timeout_seconds,
            label="Algod",
        )
        self.allowlist = s.distributor_allowlist

        self.registry = RegistryClient(
            self.indexer, s.algoland_app_id, box_reader=self.algod,
            draw_app_id=s.draw_app_id, flight=flight,
        )
        self.entrants = EntrantCounter(
            self.indexer, self.registry, AgedStore(s.cache_ttl_seconds),
            s.regression_window, flight,
        )
        self.holders = AssetHolderResolver(
            self.indexer, self.allowlist, TTLStore(s.cache_ttl_seconds),
            AgedStore(s.aged_cache_max_age), flight,
        )
        self.profiles = ProfileResolver(
            self.registry, AgedStore(s.cache_ttl_seconds), TTLStore(s.cache_ttl_seconds), flight,
        )
        self.draws = WeeklyDrawService(
            self.registry, self.holders, AgedStore(s.aged_cache_max_age), flight,
        )
        self.prizes = PrizeStore(s.prizes_file)
        self.catalog = PrizeCatalog.from_file(s.prize_metadata_file)
        self.challenges = ChallengePrizeService(
            self.registry, self.prizes, self.catalog, TTLStore(s.challenge_refresh_seconds),
            s.challenge_refresh_seconds,
        )

    def start(self):
        logger.info(
            f"[API] Starting background refresh (indexer {self.settings.indexer_base}, "
            f"every {self.settings.challenge_refresh_seconds}s)"
        )
        self.challenges.start()

    def stop(self):
        self.challenges.stop()
