"""
Clearinghouse Gateway.

Submits rendered claims to a clearinghouse channel, one at a time or as a
batch with per-claim results.

Endpoints (relative to BILLING_CLEARINGHOUSE_BASE_URL):
    POST /channels/{channel_id}/claims   -> {"tracking_number", "external_claim_id"}
    POST /channels/{channel_id}/batches  -> {"batch_id", "results": [...]}
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence
from uuid import uuid4
import logging

import httpx

from src.core.config import BillingSettings, get_billing_settings
from src.gateways.base import (
    BaseHttpGateway,
    ClaimEnvelope,
    GatewayConfig,
    IntegrationRejectedError,
)

logger = logging.getLogger(__name__)


@dataclass
class ClearinghouseSubmission:
    """Acknowledgement for one accepted claim."""

    tracking_number: Optional[str]
    external_claim_id: Optional[str]


@dataclass
class ClearinghouseBatchItem:
    """Per-claim outcome inside a batch submission."""

    claim_number: str
    accepted: bool
    tracking_number: Optional[str] = None
    external_claim_id: Optional[str] = None
    error: Optional[str] = None


class ClearinghouseClient(ABC):
    """Clearinghouse interface used by the submission orchestrator."""

    @abstractmethod
    async def submit_claim(
        self,
        channel_id: str,
        claim: ClaimEnvelope,
        options: Optional[dict[str, Any]] = None,
    ) -> ClearinghouseSubmission:
        ...

    @abstractmethod
    async def submit_batch(
        self,
        channel_id: str,
        claims: Sequence[ClaimEnvelope],
        options: Optional[dict[str, Any]] = None,
    ) -> list[ClearinghouseBatchItem]:
        """One result per claim; claims missing from the response count as rejected."""
        ...

    async def close(self) -> None:
        return None


class HttpClearinghouseClient(BaseHttpGateway, ClearinghouseClient):
    """Clearinghouse client over HTTP/JSON."""

    def __init__(
        self,
        settings: Optional[BillingSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_billing_settings()
        super().__init__(
            GatewayConfig(
                provider="clearinghouse",
                base_url=settings.CLEARINGHOUSE_BASE_URL,
                api_key=settings.CLEARINGHOUSE_API_KEY,
                timeout_seconds=settings.CLEARINGHOUSE_TIMEOUT_SECONDS,
                batch_timeout_seconds=settings.CLEARINGHOUSE_BATCH_TIMEOUT_SECONDS,
                retry_attempts=settings.CLEARINGHOUSE_RETRY_ATTEMPTS,
                retry_delay_seconds=settings.CLEARINGHOUSE_RETRY_DELAY_SECONDS,
            ),
            http_client=http_client,
        )

    async def submit_claim(
        self,
        channel_id: str,
        claim: ClaimEnvelope,
        options: Optional[dict[str, Any]] = None,
    ) -> ClearinghouseSubmission:
        payload = {"claim": claim.to_payload(), "options": options or {}}
        key = uuid4().hex
        data = await self._call(
            lambda: self._post_json(f"/channels/{channel_id}/claims", payload, idempotency_key=key)
        )
        logger.info(
            f"Clearinghouse accepted claim {claim.claim_number} "
            f"(tracking {data.get('tracking_number')})"
        )
        return ClearinghouseSubmission(
            tracking_number=data.get("tracking_number"),
            external_claim_id=data.get("external_claim_id"),
        )

    async def submit_batch(
        self,
        channel_id: str,
        claims: Sequence[ClaimEnvelope],
        options: Optional[dict[str, Any]] = None,
    ) -> list[ClearinghouseBatchItem]:
        if not claims:
            return []

        timeout = self.config.batch_timeout_seconds
        payload = {"claims": [c.to_payload() for c in claims], "options": options or {}}
        key = uuid4().hex
        data = await self._call(
            lambda: self._post_json(
                f"/channels/{channel_id}/batches", payload, timeout=timeout, idempotency_key=key
            ),
            timeout_seconds=timeout,
        )

        results = data.get("results")
        if not isinstance(results, list):
            raise IntegrationRejectedError(
                "Clearinghouse batch response has no results", provider=self.gateway_name
            )

        by_number = {r.get("claim_number"): r for r in results if isinstance(r, dict)}
        items = []
        for claim in claims:
            result = by_number.get(claim.claim_number)
            if result is None:
                items.append(
                    ClearinghouseBatchItem(
                        claim.claim_number, False, error="Claim missing from batch response"
                    )
                )
                continue
            items.append(
                ClearinghouseBatchItem(
                    claim_number=claim.claim_number,
                    accepted=bool(result.get("accepted")),
                    tracking_number=result.get("tracking_number"),
                    external_claim_id=result.get("external_claim_id"),
                    error=result.get("error"),
                )
            )

        accepted = sum(1 for i in items if i.accepted)
        logger.info(
            f"Clearinghouse batch {data.get('batch_id')}: {accepted}/{len(items)} accepted"
        )
        return items
