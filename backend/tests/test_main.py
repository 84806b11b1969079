from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from bountymarket.domain import MarketNotFound
from bountymarket.main import _market_service, app
from bountymarket.services.market_service import MarketQueryResult

from conftest import USDC


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def live_client(client, service):
    app.dependency_overrides[_market_service] = lambda: service
    return client


def _create_market(client, clock, account="creator") -> int:
    response = client.post(
        "/markets",
        json={
            "question": "Will it ship?",
            "deadline": (clock.now + timedelta(days=1)).isoformat(),
            "resolution_date": (clock.now + timedelta(days=2)).isoformat(),
        },
        headers={"X-Account": account},
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _stake(client, market_id, clock, account, side, amount):
    return client.post(
        f"/markets/{market_id}/stakes",
        json={
            "side": side,
            "amount": amount,
            "timestamp_guess": (clock.now + timedelta(days=1, hours=1)).isoformat(),
        },
        headers={"X-Account": account},
    )


def test_healthcheck(client):
    """Verify the healthcheck endpoint returns a successful response."""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_markets(client):
    """Verify the /markets endpoint returns a list of markets."""
    mock_service = MagicMock()
    mock_service.list_markets.return_value = MarketQueryResult(total=0, markets=[])
    app.dependency_overrides[_market_service] = lambda: mock_service

    response = client.get("/markets")
    assert response.status_code == 200
    assert response.json() == {"total": 0, "items": []}
    mock_service.list_markets.assert_called_once()


def test_get_market_not_found(client):
    """Verify ledger errors are mapped to status codes with a stable body."""
    mock_service = MagicMock()
    mock_service.get_market.side_effect = MarketNotFound(5)
    app.dependency_overrides[_market_service] = lambda: mock_service

    response = client.get("/markets/5")
    assert response.status_code == 404
    assert response.json() == {"error": "market_not_found", "detail": "Market 5 not found"}
    mock_service.get_market.assert_called_once_with(5)


def test_market_flow(live_client, clock):
    market_id = _create_market(live_client, clock)

    assert _stake(live_client, market_id, clock, "alice", "yes", USDC).status_code == 201
    assert _stake(live_client, market_id, clock, "bob", "no", 2 * USDC).status_code == 201

    market = live_client.get(f"/markets/{market_id}").json()
    assert market["yes_pool"] == 900_000
    assert market["no_pool"] == 1_800_000
    assert market["bounty_pool"] == 300_000
    assert market["total_pool"] == 3 * USDC
    assert market["status"] == "active"

    assert live_client.get(f"/markets/{market_id}/odds").json() == {"yes": 33.3, "no": 66.7}
    preview = live_client.get(
        f"/markets/{market_id}/payout-preview", params={"side": "no", "amount": USDC}
    ).json()
    assert preview["potential_payout"] == 1_200_000
    stakes = live_client.get(f"/markets/{market_id}/stakes").json()
    assert [stake["staker"] for stake in stakes] == ["alice", "bob"]

    forbidden = live_client.post(
        f"/markets/{market_id}/resolve",
        json={"correct_answer": "yes", "actual_timestamp": clock.now.isoformat()},
        headers={"X-Account": "alice"},
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "unauthorized"

    resolved = live_client.post(
        f"/markets/{market_id}/resolve",
        json={"correct_answer": "yes", "actual_timestamp": clock.now.isoformat()},
        headers={"X-Account": "admin"},
    )
    assert resolved.status_code == 200
    report = resolved.json()
    assert report["total_paid"] == 2_700_000
    assert report["payouts"] == [
        {"recipient": "alice", "amount": 2_700_000, "kind": "payout", "stake_id": stakes[0]["id"]}
    ]
    assert report["unclaimed"] == 300_000

    again = live_client.post(
        f"/markets/{market_id}/resolve",
        json={"correct_answer": "no", "actual_timestamp": clock.now.isoformat()},
        headers={"X-Account": "admin"},
    )
    assert again.status_code == 409
    assert again.json()["error"] == "already_resolved"


def test_stake_errors_map_to_status_codes(live_client, clock):
    market_id = _create_market(live_client, clock)

    missing_header = live_client.post(
        f"/markets/{market_id}/stakes",
        json={"side": "yes", "amount": USDC, "timestamp_guess": clock.now.isoformat()},
    )
    assert missing_header.status_code == 403

    zero = _stake(live_client, market_id, clock, "alice", "yes", 0)
    assert zero.status_code == 422
    assert zero.json()["error"] == "invalid_amount"

    broke = _stake(live_client, market_id, clock, "nobody", "yes", USDC)
    assert broke.status_code == 502
    assert broke.json()["error"] == "transfer_failed"

    clock.advance(days=1)
    late = _stake(live_client, market_id, clock, "alice", "yes", USDC)
    assert late.status_code == 409
    assert late.json()["error"] == "deadline_passed"
    assert live_client.get(f"/markets/{market_id}").json()["status"] == "closed"


def test_proof_review_flow(live_client, clock):
    market_id = _create_market(live_client, clock)
    submitted = live_client.post(
        f"/markets/{market_id}/proofs",
        json={
            "image_url": "https://img.example/launch.png",
            "claimed_timestamp": (clock.now + timedelta(days=1, hours=2)).isoformat(),
        },
        headers={"X-Account": "carol"},
    )
    assert submitted.status_code == 201
    proof_id = submitted.json()["id"]

    approved = live_client.post(f"/proofs/{proof_id}/approve", headers={"X-Account": "admin"})
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert live_client.get(f"/markets/{market_id}").json()["bounty_claimant"] == "carol"

    again = live_client.post(f"/proofs/{proof_id}/reject", headers={"X-Account": "admin"})
    assert again.status_code == 409
    assert live_client.post("/proofs/999/approve", headers={"X-Account": "admin"}).status_code == 404
    assert [proof["id"] for proof in live_client.get(f"/markets/{market_id}/proofs").json()] == [proof_id]


def test_admin_endpoints_and_events(live_client, clock):
    assert live_client.get("/admin").json() == {"admin": "admin"}

    denied = live_client.put("/admin", json={"admin": "ops"}, headers={"X-Account": "ops"})
    assert denied.status_code == 403

    changed = live_client.put("/admin", json={"admin": "ops"}, headers={"X-Account": "admin"})
    assert changed.json() == {"admin": "ops"}

    events = live_client.get("/events", params={"kind": "admin_changed"}).json()
    assert [event["payload"]["admin"] for event in events] == ["ops"]


def test_blank_bounty_claimant_maps_to_422(live_client, clock):
    market_id = _create_market(live_client, clock)

    response = live_client.post(
        f"/markets/{market_id}/bounty-claim",
        json={"claimant": "   ", "actual_timestamp": (clock.now + timedelta(days=1, hours=1)).isoformat()},
        headers={"X-Account": "admin"},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_identity"
    assert live_client.get(f"/markets/{market_id}").json()["bounty_claimant"] is None
