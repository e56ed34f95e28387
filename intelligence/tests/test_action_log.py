import sys
from pathlib import Path
ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

from intelligence.engine import config_loader
from intelligence.engine.action_log import ActionLog, get_action_log


def test_record_and_list_by_finding():
    log = ActionLog()
    log.record("t1", "risk/bounce/site", "reviewed", actor="ana")
    log.record("t1", "risk/bounce/site", "applied", note="new landing page")
    log.record("t1", "risk/funnel-leak/add-to-cart", "dismissed")
    items = log.list("t1", "risk/bounce/site")
    assert [r.action_type for r in items] == ["reviewed", "applied"]
    assert items[0].actor == "ana"
    assert items[1].note == "new landing page"
    assert items[0].recorded_at <= items[1].recorded_at


def test_filter_by_action_type():
    log = ActionLog()
    log.record("t1", "f", "applied")
    log.record("t1", "f", "snoozed")
    assert [r.action_type for r in log.list("t1", "f", "snoozed")] == ["snoozed"]


def test_tenants_are_isolated():
    log = ActionLog()
    log.record("t1", "f", "applied")
    assert log.list("t2", "f") == []


def test_clear_and_singleton():
    log = get_action_log()
    assert log is get_action_log()
    log.record("t1", "f", "applied")
    log.clear()
    assert log.list("t1", "f") == []


def test_each_key_keeps_only_the_newest_records():
    log = ActionLog(max_per_key=3)
    for i in range(10):
        log.record("t1", "f", "reviewed", note=str(i))
    assert [r.note for r in log.list("t1", "f")] == ["7", "8", "9"]
    assert len(log) == 3


def test_least_recently_written_key_is_evicted():
    log = ActionLog(max_per_key=5, max_keys=2)
    log.record("t1", "a", "applied")
    log.record("t1", "b", "applied")
    log.record("t1", "a", "reviewed")
    log.record("t1", "a", "applied")
    log.record("t1", "c", "applied")
    assert log.list("t1", "b") == []
    assert [r.action_type for r in log.list("t1", "a")] == ["applied"]
    assert len(log.list("t1", "c")) == 1


def test_limits_come_from_config(monkeypatch):
    monkeypatch.setenv("ACTION_LOG_MAX_PER_KEY", "2")
    config_loader.reset_config()
    log = ActionLog()
    for _ in range(5):
        log.record("t1", "f", "snoozed")
    assert len(log) == 2
