"""Tests for registry box reads."""

import pytest

from algoland_backend import codec
from algoland_backend.registry import RegistryClient
from conftest import make_address

APP_ID = 3215540125
WALLET = make_address(9)


@pytest.fixture
def registry(indexer):
    return RegistryClient(indexer, APP_ID)


class TestRelativeAddress:
    def test_mapped_id(self, registry, session):
        session.add_box(APP_ID, codec.relative_id_key(5), bytes([9]) * 32)

        assert registry.relative_address(5) == WALLET

    def test_missing_box(self, registry, session):
        session.add_box(APP_ID, codec.relative_id_key(5), b"", status=404)

        assert registry.relative_address(5) is None

    def test_short_box_is_treated_as_unmapped(self, registry, session):
        session.add_box(APP_ID, codec.relative_id_key(5), b"\x01\x02\x03")

        assert registry.relative_address(5) is None
