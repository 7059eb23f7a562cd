"""Tests for the paginated Harvest client."""
import pytest

import harvest
from harvest import HarvestAPIError, HarvestConfigError, InvalidDateFormat


class FakeResponse:
    def __init__(self, payload, status_code=200, total_pages=1, reason="OK", text=""):
        self._payload = payload
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.reason = reason
        self.text = text
        self.headers = {"X-Total-Pages": str(total_pages)}

    def json(self):
        return self._payload


def entry_payload(entry_id, spent_date="2024-04-01", hours=8.0):
    return {
        "id": entry_id,
        "spent_date": spent_date,
        "user": {"id": 1, "name": "Alice Johnson"},
        "project": {"id": 10, "name": "Website"},
        "client": {"id": 20, "name": "Acme Corp"},
        "task": {"id": 30, "name": "Development"},
        "notes": None,
        "hours": hours,
        "billable": True,
    }


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("HARVEST_ACCESS_TOKEN", "token-123")
    monkeypatch.setenv("HARVEST_ACCOUNT_ID", "42")
    monkeypatch.delenv("HARVEST_API_BASE", raising=False)


@pytest.fixture
def fake_get(monkeypatch):
    """Replace requests.get with a queue of canned responses."""
    calls = []
    responses = []

    def get(url, headers=None, params=None):
        calls.append({"url": url, "headers": headers, "params": params})
        return responses.pop(0)

    monkeypatch.setattr(harvest.requests, "get", get)
    return calls, responses


def test_fetch_time_entries_follows_all_pages(credentials, fake_get):
    """Test that every page up to X-Total-Pages is fetched and accumulated."""
    calls, responses = fake_get
    responses.extend(
        [
            FakeResponse({"time_entries": [entry_payload(1), entry_payload(2)]}, total_pages=3),
            FakeResponse({"time_entries": [entry_payload(3)]}, total_pages=3),
            FakeResponse({"time_entries": [entry_payload(4)]}, total_pages=3),
        ]
    )

    entries = harvest.fetch_time_entries("2024-04-01", "2024-04-30")

    assert [e.id for e in entries] == [1, 2, 3, 4]
    assert len(calls) == 3
    assert [c["params"]["page"] for c in calls] == [1, 2, 3]
    assert all(c["params"]["per_page"] == harvest.PER_PAGE for c in calls)
    assert calls[0]["params"]["from"] == "2024-04-01"
    assert calls[0]["params"]["to"] == "2024-04-30"
    assert calls[0]["url"] == "https://api.harvestapp.com/v2/time_entries"
    assert calls[0]["headers"]["Authorization"] == "Bearer token-123"
    assert calls[0]["headers"]["Harvest-Account-Id"] == "42"


def test_missing_total_pages_header_means_single_page(credentials, fake_get):
    calls, responses = fake_get
    response = FakeResponse({"users": []})
    response.headers = {}
    responses.append(response)

    assert harvest.fetch_users() == []
    assert len(calls) == 1


def test_error_page_aborts_whole_fetch(credentials, fake_get):
    """Test that a non-2xx page raises and discards the pages already read."""
    calls, responses = fake_get
    responses.extend(
        [
            FakeResponse({"time_entries": [entry_payload(1)]}, total_pages=2),
            FakeResponse({}, status_code=500, reason="Internal Server Error", text="boom"),
        ]
    )

    with pytest.raises(HarvestAPIError) as exc_info:
        harvest.fetch_time_entries("2024-04-01", "2024-04-30")

    assert exc_info.value.status_code == 500
    assert "boom" in str(exc_info.value)
    assert len(calls) == 2


@pytest.mark.parametrize(
    "date_from,date_to",
    [
        ("2024-4-01", "2024-04-30"),
        ("2024-04-01", "30/04/2024"),
        ("", "2024-04-30"),
        ("2024-04-01\n", "2024-04-30"),
        ("٢٠٢٤-04-01", "2024-04-30"),
    ],
)
def test_invalid_dates_rejected_before_any_request(credentials, fake_get, date_from, date_to):
    calls, _ = fake_get

    with pytest.raises(InvalidDateFormat):
        harvest.fetch_time_entries(date_from, date_to)

    assert calls == []


def test_missing_credentials(monkeypatch, fake_get):
    monkeypatch.delenv("HARVEST_ACCESS_TOKEN", raising=False)
    monkeypatch.setenv("HARVEST_ACCOUNT_ID", "42")

    with pytest.raises(HarvestConfigError):
        harvest.fetch_users()


def test_users_are_parsed(credentials, fake_get):
    _, responses = fake_get
    responses.append(
        FakeResponse(
            {
                "users": [
                    {
                        "id": 7,
                        "first_name": "Bob",
                        "last_name": "Smith",
                        "email": "Bob@Example.com",
                        "is_active": False,
                    }
                ]
            }
        )
    )

    users = harvest.fetch_users()

    assert users[0].full_name == "Bob Smith"
    assert users[0].is_active is False


def test_bare_list_response(credentials, fake_get):
    _, responses = fake_get
    responses.append(FakeResponse([{"id": 1, "name": "Acme Corp"}]))

    assert harvest.fetch_paginated("/clients") == [{"id": 1, "name": "Acme Corp"}]


def test_clients_and_projects_are_parsed(credentials, fake_get):
    _, responses = fake_get
    responses.extend(
        [
            FakeResponse({"clients": [{"id": 20, "name": "Acme Corp"}]}),
            FakeResponse({"projects": [{"id": 10, "name": "Website", "client_id": 20}]}),
        ]
    )

    clients = harvest.fetch_clients()
    projects = harvest.fetch_projects()

    assert clients[0].name == "Acme Corp"
    assert projects[0].client_id == clients[0].id
