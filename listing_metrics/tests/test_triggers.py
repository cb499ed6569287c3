import pytest

from listing_metrics.core.errors import NotFoundError
from listing_metrics.core.triggers import LISTING_SYNC, POI_SYNC, SCORE_REFRESH, TriggerQueue


def test_listing_change_runs_in_background(pattaya_repo):
    triggers = TriggerQueue.for_repo(pattaya_repo)
    try:
        tasks = triggers.submit_listing_changed("lst-1")
        triggers.join()
    finally:
        triggers.stop(timeout=5)

    assert [task.kind for task in tasks] == ["listing_sync", "valuation_refresh"]
    assert pattaya_repo.listings["lst-1"]["nearest_beach_name"] == "Jomtien Beach"
    assert pattaya_repo.listings["lst-1"]["valuation_computed_at"] is not None
    assert triggers.drain_errors() == []


def test_failures_are_reported_on_error_channel(pattaya_repo):
    seen = []
    triggers = TriggerQueue.for_repo(pattaya_repo, on_error=seen.append)
    try:
        triggers.submit_poi_sync("missing-poi")
        triggers.submit_listing_sync("lst-2")
        triggers.join()
    finally:
        triggers.stop(timeout=5)

    failures = triggers.drain_errors()
    assert len(failures) == 1
    failure = failures[0]
    assert failure.task.kind == POI_SYNC
    assert failure.task.entity_id == "missing-poi"
    assert isinstance(failure.error, NotFoundError)
    assert seen == [failure]
    # later tasks still run
    assert pattaya_repo.listings["lst-2"]["nearest_mall_name"] == "Central Festival Pattaya Beach"


def test_broken_error_callback_does_not_stop_worker():
    calls = []

    def handler(entity_id):
        calls.append(entity_id)
        if entity_id == "bad":
            raise RuntimeError("boom")

    def on_error(failure):
        raise ValueError("callback broke")

    triggers = TriggerQueue({LISTING_SYNC: handler}, on_error=on_error)
    try:
        triggers.submit_listing_sync("bad")
        triggers.submit_listing_sync("good")
        triggers.join()
    finally:
        triggers.stop(timeout=5)

    assert calls == ["bad", "good"]
    assert len(triggers.errors) == 1


def test_unknown_trigger_kind_is_rejected():
    triggers = TriggerQueue({})
    with pytest.raises(ValueError):
        triggers.submit("reindex", "lst-1")


def test_error_log_keeps_only_the_most_recent_failures():
    def handler(entity_id):
        raise RuntimeError(f"failed {entity_id}")

    triggers = TriggerQueue({LISTING_SYNC: handler}, max_errors=3)
    try:
        for index in range(10):
            triggers.submit_listing_sync(f"lst-{index}")
        triggers.join()
    finally:
        triggers.stop(timeout=5)

    failures = triggers.drain_errors()
    assert [failure.task.entity_id for failure in failures] == ["lst-7", "lst-8", "lst-9"]
    assert triggers.drain_errors() == []


def test_score_refresh_trigger_writes_scores(pattaya_repo):
    pattaya_repo.listings["lst-1"].update({"nearest_beach_km": 0.4, "price_deviation": -20.0})
    triggers = TriggerQueue.for_repo(pattaya_repo)
    try:
        task = triggers.submit_score_refresh("lst-1")
        triggers.join()
    finally:
        triggers.stop(timeout=5)

    assert task.kind == SCORE_REFRESH
    assert pattaya_repo.listings["lst-1"]["value_score"] == 100
    assert "Beachfront" in pattaya_repo.listings["lst-1"]["key_features"]
    assert triggers.drain_errors() == []
