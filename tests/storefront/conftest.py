import pytest
from protean.integrations.pytest import DomainFixture

from storefront.identity import Principal
from storefront.persistence.memory_adapter import MemoryDocumentStore, MemoryLocalCache
from storefront.pricing.policy import PricingPolicy


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture()
def policy():
    return PricingPolicy(free_shipping_threshold=500.0, flat_shipping_fee=50.0, tax_rate=0.18, currency="INR")


@pytest.fixture()
def document_store():
    return MemoryDocumentStore()


@pytest.fixture()
def local_cache():
    return MemoryLocalCache()


@pytest.fixture()
def principal():
    return Principal(uid="user-001", email="asha@example.com", display_name="Asha Rao", phone="9876543210")


@pytest.fixture()
def shipping_info():
    return {
        "street": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "country": "India",
    }
