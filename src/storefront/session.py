"""Session factory — wires a cart engine to the configured stores."""

from storefront import config
from storefront.cart.engine import CartPricingEngine
from storefront.domain import storefront
from storefront.persistence.domain_adapter import DomainDocumentStore
from storefront.persistence.file_cache import FileLocalCache
from storefront.pricing.policy import PricingPolicy

_initialized = False


def open_session(identity=None, cache_dir=None, policy=None):
    """Initialize the domain and return a ``CartPricingEngine`` for one session.

    Pushes a storefront domain context for the calling thread, which the
    engine's aggregates need. ``engine.close()`` pops it again, so open and
    close a session on the same thread.
    """
    global _initialized
    if not _initialized:
        storefront.init()
        _initialized = True

    context = storefront.domain_context()
    context.push()

    engine = CartPricingEngine(
        document_store=DomainDocumentStore(storefront),
        local_cache=FileLocalCache(cache_dir or config.CACHE_DIR, quota_bytes=config.CACHE_QUOTA_BYTES),
        policy=policy or PricingPolicy.from_settings(),
        identity=identity,
    )
    engine.on_close(context.pop)
    return engine
