from typing import Any

import pytest

from listing_metrics.core import supabase_repo
from listing_metrics.core.proximity import ProximitySynchronizer
from listing_metrics.core.supabase_repo import SupabaseRepo


class FakeResponse:
    def __init__(self, data: list[dict[str, Any]]) -> None:
        self.data = data


class FakeQuery:
    """Chainable query builder that records every call made on it."""

    def __init__(self, client: "FakeClient", table: str) -> None:
        self.client = client
        self.table = table
        self.calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return record

    @property
    def not_(self) -> "FakeQuery":
        self.calls.append(("not_", (), {}))
        return self

    def call(self, name: str) -> tuple[tuple, dict]:
        matches = [(args, kwargs) for call_name, args, kwargs in self.calls if call_name == name]
        assert len(matches) == 1, f"expected one {name} call, got {matches}"
        return matches[0]

    def execute(self) -> FakeResponse:
        names = [name for name, _, _ in self.calls]
        if "upsert" in names:
            rows, kwargs = self.call("upsert")
            keys = kwargs["on_conflict"].split(",")
            stored = {tuple(row[key] for key in keys): row for row in self.client.tables.setdefault(self.table, [])}
            for row in rows[0]:
                stored[tuple(row[key] for key in keys)] = dict(row)
            self.client.tables[self.table] = list(stored.values())
            return FakeResponse([])
        if "update" in names:
            return FakeResponse([])
        return FakeResponse([dict(row) for row in self.client.tables.get(self.table, [])])


class FakeClient:
    def __init__(self, tables: dict[str, list[dict[str, Any]]]) -> None:
        self.tables = tables
        self.queries: list[FakeQuery] = []

    def table(self, name: str) -> FakeQuery:
        query = FakeQuery(self, name)
        self.queries.append(query)
        return query

    def queries_with(self, name: str) -> list[FakeQuery]:
        return [query for query in self.queries if any(call[0] == name for call in query.calls)]


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient(
        {
            "listings": [{"id": "lst-1", "reference_id": "PT-001", "lat": 12.9266, "lng": 100.8688}],
            "points_of_interest": [
                {"id": "poi-beach", "name": "Jomtien Beach", "category": "BEACH", "lat": 12.8886, "lng": 100.8742},
                {"id": "poi-mall", "name": "Central Festival", "category": "SHOPPING_MALL", "lat": 12.9358, "lng": 100.8847},
                {"id": "poi-hospital", "name": "Bangkok Hospital", "category": "HOSPITAL", "lat": 12.9292, "lng": 100.8987},
            ],
        }
    )


@pytest.fixture
def remote_repo(monkeypatch, fake_client) -> SupabaseRepo:
    monkeypatch.setattr(supabase_repo, "create_client", lambda url, key: fake_client)
    return SupabaseRepo(url="http://localhost:54321", service_role_key="service-role")


def test_repo_requires_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    with pytest.raises(ValueError):
        SupabaseRepo()


def test_listing_sync_is_one_upsert_keyed_on_listing_and_poi(remote_repo, fake_client):
    result = ProximitySynchronizer(remote_repo).sync_listing("lst-1")

    upserts = fake_client.queries_with("upsert")
    assert len(upserts) == 1
    assert upserts[0].table == "listing_poi_distances"
    (rows,), kwargs = upserts[0].call("upsert")
    assert kwargs == {"on_conflict": "listing_id,poi_id"}
    assert sorted((row["listing_id"], row["poi_id"]) for row in rows) == [
        ("lst-1", "poi-beach"),
        ("lst-1", "poi-hospital"),
        ("lst-1", "poi-mall"),
    ]
    assert result.rows_written == 3
    assert result.listing_updated is True


def test_repeated_listing_sync_keeps_one_row_per_pair(remote_repo, fake_client):
    sync = ProximitySynchronizer(remote_repo)
    sync.sync_listing("lst-1")
    stored = list(fake_client.tables["listing_poi_distances"])

    sync.sync_listing("lst-1")

    assert len(fake_client.queries_with("upsert")) == 2
    assert fake_client.tables["listing_poi_distances"] == stored
    assert len(stored) == 3


def test_empty_upsert_sends_nothing(remote_repo, fake_client):
    remote_repo.upsert_listing_poi_distances([])
    assert fake_client.queries == []


def test_stale_selection_puts_never_valued_listings_first(remote_repo, fake_client):
    fake_client.tables["listings"] = [{"id": "lst-9"}, {"id": 12}]

    ids = remote_repo.get_stale_listing_ids("2026-02-28T12:00:00+00:00", 25)

    assert ids == ["lst-9", "12"]
    (query,) = fake_client.queries
    assert query.table == "listings"
    assert query.call("eq") == (("status", "AVAILABLE"), {})
    assert query.call("or_") == (
        ("valuation_computed_at.is.null,valuation_computed_at.lt.2026-02-28T12:00:00+00:00",),
        {},
    )
    assert query.call("order") == (("valuation_computed_at",), {"desc": False, "nullsfirst": True})
    assert query.call("limit") == ((25,), {})


def test_listing_ids_are_paged(remote_repo, fake_client, monkeypatch):
    monkeypatch.setattr(supabase_repo, "PAGE_SIZE", 2)
    # serve one full page, then a short one
    pages = iter([[{"id": "a"}, {"id": "b"}], [{"id": "c"}]])
    monkeypatch.setattr(FakeQuery, "execute", lambda self: FakeResponse(next(pages)))

    assert remote_repo.get_listing_ids() == ["a", "b", "c"]
    ranges = [query.call("range")[0] for query in fake_client.queries]
    assert ranges == [(0, 1), (2, 3)]
