from txflow.config import Settings


def test_prepare_urls_default_to_local_backends(monkeypatch):
    """Each domain resolves to its own prepare backend."""

    monkeypatch.delenv("LENDING_API_URL", raising=False)
    monkeypatch.delenv("STAKING_API_URL", raising=False)

    settings = Settings()

    assert settings.prepare_url_for("lending") == "http://localhost:3001"
    assert settings.prepare_url_for("STAKING") == "http://localhost:3004"
    assert settings.prepare_url_for("perps") is None


def test_prepare_url_strips_trailing_slash(monkeypatch):
    """Environment-provided backend URLs are normalized."""

    monkeypatch.setenv("LENDING_API_URL", "https://lending.example.com/")

    settings = Settings()

    assert settings.prepare_url_for("lending") == "https://lending.example.com"


def test_tracker_disabled_without_url(monkeypatch):
    """Tracking is optional and off unless TRACKER_URL is set."""

    monkeypatch.delenv("TRACKER_URL", raising=False)
    assert Settings().has_tracker is False

    monkeypatch.setenv("TRACKER_URL", "http://tracker.local")
    assert Settings().has_tracker is True


def test_rpc_urls_from_env_json(monkeypatch):
    """RPC_URLS accepts a JSON object keyed by chain id."""

    monkeypatch.setenv("RPC_URLS", '{"1": "http://localhost:8545"}')

    settings = Settings()

    assert settings.rpc_url_for(1) == "http://localhost:8545"
    assert settings.rpc_url_for(43114) is None


def test_receipt_defaults():
    """Receipt polling defaults match the documented deadline and interval."""

    settings = Settings()

    assert settings.receipt_timeout_seconds > 0
    assert settings.receipt_poll_interval_seconds > 0
    assert settings.rate_limit_min_seconds <= settings.rate_limit_default_seconds <= settings.rate_limit_max_seconds
    assert settings.supported_chain_ids == {1, 43114}


def test_cors_origins_from_env(monkeypatch):
    """CORS_ORIGINS accepts a JSON list; all origins are allowed by default."""

    monkeypatch.delenv("CORS_ORIGINS", raising=False)
    assert Settings().cors_origins == ["*"]

    monkeypatch.setenv("CORS_ORIGINS", '["https://app.example.com"]')
    assert Settings().cors_origins == ["https://app.example.com"]


def test_tracking_store_defaults(monkeypatch):
    """Tracking records stay in memory for a week unless configured otherwise."""

    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("TRACKING_TTL_SECONDS", raising=False)

    settings = Settings()

    assert settings.redis_url == ""
    assert settings.tracking_ttl_seconds == 7 * 24 * 3600

    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("TRACKING_TTL_SECONDS", "600")

    settings = Settings()

    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.tracking_ttl_seconds == 600
