"""Shared fixtures for the listing pipeline tests."""

import pytest

from fakes import FakeBackend, FakeGenerator, FakeShopify, FakeStorage, no_wait_policy
from ledger import ProductLedger


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def ledger(backend):
    return ProductLedger(backend, retry_policy=no_wait_policy())


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def shopify():
    return FakeShopify(metaobjects={
        "pattern": [
            {"id": "gid://shopify/Metaobject/10", "handle": "striped"},
            {"id": "gid://shopify/Metaobject/11", "handle": "dotted"},
        ],
    })


@pytest.fixture
def generator():
    return FakeGenerator()
