"""
Tests for relay settings.
"""

from shared.config.settings import Settings


class TestSettings:

    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.port == 8787
        assert config.subscribe_path == "/"
        assert config.ws_heartbeat_interval == 30.0
        assert config.ws_max_buffered_bytes == 1_000_000
        assert config.ws_max_topics_per_message == 64
        assert config.ws_require_origin is False

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example,https://b.example")
        config = Settings(_env_file=None)
        assert config.port == 9000
        assert config.allowed_origin_set == {"https://a.example", "https://b.example"}

    def test_production_requires_origins(self):
        config = Settings(_env_file=None, environment="production", allowed_origins="")
        errors = config.validate_production_settings()
        assert any("ALLOWED_ORIGINS" in e for e in errors)

    def test_production_rejects_debug(self):
        config = Settings(
            _env_file=None, environment="production", allowed_origins="https://a.example", debug=True
        )
        assert any("DEBUG" in e for e in config.validate_production_settings())

    def test_valid_production_config(self):
        config = Settings(_env_file=None, environment="production", allowed_origins="https://a.example")
        assert config.validate_production_settings() == []

    def test_write_limit_must_exceed_backpressure_threshold(self):
        config = Settings(_env_file=None, ws_write_limit=1_000_000)
        assert any("WS_WRITE_LIMIT" in e for e in config.validate_production_settings())
