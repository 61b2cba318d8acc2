import json

from alert_engine.models import ConditionType
from alert_engine.store import SubscriberStore, short_token


def _rules():
    return [
        {"id": 1, "ticker": "spy", "type": "price_above", "value": 500},
        {"id": 2, "ticker": "QQQ", "type": "near-50-sma", "value": 2},
    ]


def test_register_persists_flat_list(tmp_path):
    path = tmp_path / "push-tokens.json"
    store = SubscriberStore(path)

    assert store.register("token-1", _rules()) == 2

    saved = json.loads(path.read_text())
    assert len(saved) == 1
    assert saved[0]["token"] == "token-1"
    assert saved[0]["alerts"][0] == {"id": 1, "ticker": "SPY", "type": "price_above", "value": 500.0}
    assert saved[0]["alerts"][1]["type"] == "sma_50"
    assert "registeredAt" in saved[0] and "lastSeen" in saved[0]


def test_register_existing_token_replaces_rules(tmp_path):
    store = SubscriberStore(tmp_path / "t.json")
    store.register("token-1", _rules())
    assert store.register("token-1", [{"id": 9, "ticker": "IWM", "type": "rsi_below", "value": 30}]) == 1
    assert len(store.subscribers) == 1
    assert [r.id for r in store.get("token-1").alerts] == [9]


def test_rules_without_id_get_sequential_ids(tmp_path):
    store = SubscriberStore(tmp_path / "t.json")
    store.register("tok", [{"ticker": "A", "type": "price_above", "value": 1},
                           {"ticker": "B", "type": "price_below", "value": 2}])
    assert [r.id for r in store.get("tok").alerts] == [1, 2]


def test_unknown_rule_type_is_kept_but_unparsed(tmp_path):
    store = SubscriberStore(tmp_path / "t.json")
    store.register("tok", [{"id": 1, "ticker": "A", "type": "moon_phase", "value": 1}])
    rule = store.get("tok").alerts[0]
    assert rule.type == "moon_phase"
    assert rule.condition is None


def test_update_unknown_token_is_noop(tmp_path):
    path = tmp_path / "t.json"
    store = SubscriberStore(path)
    assert store.update_alerts("nobody", _rules()) is False
    assert not path.exists()


def test_update_replaces_alerts(tmp_path):
    store = SubscriberStore(tmp_path / "t.json")
    store.register("tok", _rules())
    assert store.update_alerts("tok", []) is True
    assert store.get("tok").alerts == []
    assert store.status() == {"enabled": True, "subscriptionCount": 1, "totalAlerts": 0}


def test_status_counts(tmp_path):
    store = SubscriberStore(tmp_path / "t.json")
    assert store.status() == {"enabled": False, "subscriptionCount": 0, "totalAlerts": 0}
    store.register("a", _rules())
    store.register("b", _rules()[:1])
    assert store.status() == {"enabled": True, "subscriptionCount": 2, "totalAlerts": 3}


def test_remove_and_reload(tmp_path):
    path = tmp_path / "t.json"
    store = SubscriberStore(path)
    store.register("a", _rules())
    store.register("b", _rules())
    assert store.remove("a") is True
    assert store.remove("a") is False

    reloaded = SubscriberStore(path)
    assert reloaded.load() == 1
    sub = reloaded.get("b")
    assert sub.alerts[1].condition == ConditionType.NEAR_SMA_50


def test_load_missing_or_corrupt_file_gives_empty_store(tmp_path):
    missing = SubscriberStore(tmp_path / "nope.json")
    assert missing.load() == 0

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    store = SubscriberStore(bad)
    assert store.load() == 0
    assert store.subscribers == []


def test_write_failure_keeps_memory_authoritative(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = SubscriberStore(blocker / "tokens.json")

    assert store.register("tok", _rules()) == 2
    assert store.get("tok") is not None
    assert store.save() is False


def test_short_token():
    assert short_token("x" * 30) == "x" * 20 + "..."
    assert short_token("abc") == "abc"
