from __future__ import annotations

import json

import httpx
import pytest

from bountymarket.domain import TransferFailed
from bountymarket.transfers import Credit, HttpTransferClient, InMemoryVault


@pytest.fixture
def funded_vault() -> InMemoryVault:
    vault = InMemoryVault(escrow_account="escrow")
    vault.deposit("alice", 500)
    return vault


def test_debit_moves_funds_into_escrow(funded_vault):
    funded_vault.debit("alice", 200, reference="stake:1")
    assert funded_vault.balance_of("alice") == 300
    assert funded_vault.balance_of("escrow") == 200


def test_debit_rejects_overdraft(funded_vault):
    with pytest.raises(TransferFailed):
        funded_vault.debit("alice", 501, reference="stake:1")
    assert funded_vault.balance_of("alice") == 500


def test_credit_batch_is_all_or_nothing(funded_vault):
    funded_vault.debit("alice", 100, reference="stake:1")

    with pytest.raises(TransferFailed):
        funded_vault.credit_batch([Credit("bob", 60), Credit("carol", 60)], reference="settle:1")

    assert funded_vault.balance_of("bob") == 0
    assert funded_vault.balance_of("escrow") == 100


def test_reverse_batch_returns_funds_to_escrow(funded_vault):
    funded_vault.debit("alice", 100, reference="stake:1")
    batch_id = funded_vault.credit_batch([Credit("bob", 70)], reference="settle:1")

    funded_vault.reverse_batch(batch_id)

    assert funded_vault.balance_of("bob") == 0
    assert funded_vault.balance_of("escrow") == 100
    with pytest.raises(TransferFailed):
        funded_vault.reverse_batch(batch_id)


def test_repeated_reference_pays_once(funded_vault):
    funded_vault.debit("alice", 300, reference="stake:1")
    first = funded_vault.credit_batch([Credit("bob", 70)], reference="settle:1")

    again = funded_vault.credit_batch([Credit("bob", 70)], reference="settle:1")

    assert again == first
    assert funded_vault.balance_of("bob") == 70
    assert funded_vault.balance_of("escrow") == 230


def test_reversed_reference_can_be_paid_again(funded_vault):
    funded_vault.debit("alice", 100, reference="stake:1")
    first = funded_vault.credit_batch([Credit("bob", 70)], reference="settle:1")
    funded_vault.reverse_batch(first)

    second = funded_vault.credit_batch([Credit("bob", 70)], reference="settle:1")

    assert second != first
    assert funded_vault.balance_of("bob") == 70


def test_vault_retains_only_recent_batches():
    vault = InMemoryVault(max_batches=2)
    vault.deposit("escrow", 30)
    oldest = vault.credit_batch([Credit("bob", 10)], reference="refund:1")
    vault.credit_batch([Credit("bob", 10)], reference="refund:2")
    vault.credit_batch([Credit("bob", 10)], reference="refund:3")

    assert vault.retained_batches() == 2
    with pytest.raises(TransferFailed):
        vault.reverse_batch(oldest)


def _client(handler) -> HttpTransferClient:
    return HttpTransferClient(base_url="https://transfers.test", transport=httpx.MockTransport(handler))


def test_http_client_posts_credit_batch():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"batch_id": "b-1"})

    with _client(handler) as client:
        batch_id = client.credit_batch([Credit("alice", 2_700_000)], reference="settle:3")

    assert batch_id == "b-1"
    (request,) = seen
    assert request.url.path == "/credit-batches"
    assert request.headers["Idempotency-Key"] == "settle:3"
    assert json.loads(request.content) == {
        "reference": "settle:3",
        "credits": [{"account": "alice", "amount": "2700000"}],
    }


def test_http_client_maps_rejections_to_transfer_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"error": "insufficient funds"})

    with _client(handler) as client:
        with pytest.raises(TransferFailed):
            client.debit("alice", 10, reference="stake:1")


def test_http_client_maps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(TransferFailed):
            client.reverse_batch("b-1")


def test_http_client_requires_batch_acknowledgement():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    with _client(handler) as client:
        with pytest.raises(TransferFailed):
            client.credit_batch([Credit("alice", 1)], reference="settle:9")
