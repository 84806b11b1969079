from __future__ import annotations

from typing import Any, Sequence

import httpx
from loguru import logger

from bountymarket.domain import TransferFailed

from .base import Credit


class HttpTransferClient:
    """Thin wrapper around the external stablecoin transfer service."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def _post(self, path: str, payload: dict[str, Any], *, reference: str) -> dict[str, Any]:
        logger.info("Transfer POST {} reference={}", path, reference)
        try:
            response = self.client.post(path, json=payload, headers={"Idempotency-Key": reference})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransferFailed(
                f"Transfer service rejected {path} ({exc.response.status_code}): {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransferFailed(f"Transfer service unreachable for {path}: {exc}") from exc

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise TransferFailed(f"Transfer service returned invalid JSON for {path}") from exc
        return body if isinstance(body, dict) else {}

    def debit(self, account: str, amount: int, *, reference: str) -> None:
        self._post(
            "/debits",
            {"account": account, "amount": str(amount), "reference": reference},
            reference=reference,
        )

    def credit_batch(self, credits: Sequence[Credit], *, reference: str) -> str:
        payload = {
            "reference": reference,
            "credits": [
                {"account": credit.account, "amount": str(credit.amount)} for credit in credits
            ],
        }
        body = self._post("/credit-batches", payload, reference=reference)
        batch_id = body.get("batch_id") or body.get("id")
        if not batch_id:
            raise TransferFailed(f"Transfer service did not acknowledge batch {reference}")
        return str(batch_id)

    def reverse_batch(self, batch_id: str) -> None:
        self._post(
            f"/credit-batches/{batch_id}/reverse",
            {"batch_id": batch_id},
            reference=f"reverse:{batch_id}",
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "HttpTransferClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
