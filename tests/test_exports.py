"""Tests for package exports."""


def test_cache_exports_available() -> None:
    """Test that the cache API is importable from the package root."""
    from tagsync import (
        ApiClient,
        CacheStore,
        ClientSettings,
        EndpointRegistry,
        InvalidationBus,
        SubscriptionManager,
        mutation_endpoint,
        query_endpoint,
    )

    # Just verify they're importable
    assert ApiClient is not None
    assert CacheStore is not None
    assert ClientSettings is not None
    assert EndpointRegistry is not None
    assert InvalidationBus is not None
    assert SubscriptionManager is not None
    assert mutation_endpoint is not None
    assert query_endpoint is not None


def test_verification_exports_available() -> None:
    from tagsync import (
        CooldownActive,
        FlowState,
        VerificationFlow,
        VerificationSession,
    )

    assert VerificationFlow is not None
    assert VerificationSession is not None
    assert FlowState.VERIFIED.is_terminal
    assert CooldownActive(3).remaining == 3


def test_all_names_resolve() -> None:
    import tagsync

    missing = [name for name in tagsync.__all__ if not hasattr(tagsync, name)]
    assert missing == []
