import importlib
import json

from kidpicks.ops import HealthMonitor, StructuredLogger


def test_structured_logger_writes_json_lines(tmp_path) -> None:
    path = tmp_path / "logs" / "events.jsonl"
    logger = StructuredLogger(path=path, keep=2)

    logger.log("feedback_recorded", kid="kid-1")
    logger.log("weights_updated", user="parent-1")
    logger.log("weights_updated", user="parent-2")

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["feedback_recorded", "weights_updated", "weights_updated"]
    assert len(logger.tail()) == 2
    assert [entry["user"] for entry in logger.events("weights_updated")] == ["parent-1", "parent-2"]


def test_health_monitor_tracks_store_outages() -> None:
    health = HealthMonitor()
    assert health.status() == {"store": "ok", "last_store_error": None, "weight_cache_age_seconds": None}

    health.mark_store_down("database is locked")
    assert health.status()["store"] == "down"
    assert health.status()["last_store_error"] == "database is locked"

    health.mark_store_up()
    assert health.store_online is True


def test_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("KIDPICKS_WEIGHT_CACHE_TTL", "5")
    monkeypatch.setenv("KIDPICKS_PEER_WORKERS", "not-a-number")
    from kidpicks.webapp import config

    try:
        reloaded = importlib.reload(config)
        assert reloaded.WEIGHT_CACHE_TTL_SECONDS == 5.0
        assert reloaded.PEER_QUERY_WORKERS == 4
    finally:
        monkeypatch.undo()
        importlib.reload(config)
