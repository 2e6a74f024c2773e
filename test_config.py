from recall_engine.config import EngineConfig


def test_defaults(monkeypatch):
    for name in ["RECALL_EXPERIMENT_ENABLED", "RECALL_LEDGER_CAPACITY", "RECALL_CORS_ORIGINS", "RECALL_PORT"]:
        monkeypatch.delenv(name, raising=False)
    config = EngineConfig()
    assert config.experiment_enabled
    assert config.ledger_capacity == 1000
    assert config.port == 8000
    assert "http://localhost:5173" in config.cors_origins


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("RECALL_EXPERIMENT_ENABLED", "false")
    monkeypatch.setenv("RECALL_LEDGER_CAPACITY", "5")
    monkeypatch.setenv("RECALL_PORT", "9100")
    monkeypatch.setenv("RECALL_CORS_ORIGINS", '["http://example.test"]')

    config = EngineConfig()
    assert config.experiment_enabled is False
    assert config.ledger_capacity == 5
    assert config.port == 9100
    assert config.cors_origins == ["http://example.test"]

    # Keyword arguments win over the environment
    assert EngineConfig(ledger_capacity=7).ledger_capacity == 7
