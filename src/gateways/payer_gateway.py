"""
Payer Gateway.

Direct submission to a payer's electronic intake (ELECTRONIC and DIRECT
channels). The endpoint comes from the payer's billing requirements, so one
client serves every payer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
from uuid import uuid4
import logging

import httpx

from src.core.config import BillingSettings, get_billing_settings
from src.gateways.base import BaseHttpGateway, ClaimEnvelope, GatewayConfig

logger = logging.getLogger(__name__)


@dataclass
class PayerSubmissionReceipt:
    confirmation_number: Optional[str]
    external_claim_id: Optional[str]
    raw: dict[str, Any]


class PayerSubmissionClient(ABC):
    """Payer API interface used by the submission orchestrator."""

    @abstractmethod
    async def submit(
        self,
        endpoint: str,
        claim: ClaimEnvelope,
        options: Optional[dict[str, Any]] = None,
    ) -> PayerSubmissionReceipt:
        ...

    async def close(self) -> None:
        return None


class HttpPayerSubmissionClient(BaseHttpGateway, PayerSubmissionClient):
    """Posts the claim envelope as JSON to the payer endpoint."""

    def __init__(
        self,
        settings: Optional[BillingSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_billing_settings()
        super().__init__(
            GatewayConfig(
                provider="payer-api",
                timeout_seconds=settings.PAYER_API_TIMEOUT_SECONDS,
                retry_attempts=settings.PAYER_API_RETRY_ATTEMPTS,
                retry_delay_seconds=settings.CLEARINGHOUSE_RETRY_DELAY_SECONDS,
            ),
            http_client=http_client,
        )

    async def submit(
        self,
        endpoint: str,
        claim: ClaimEnvelope,
        options: Optional[dict[str, Any]] = None,
    ) -> PayerSubmissionReceipt:
        payload = {"claim": claim.to_payload(), "options": options or {}}
        key = uuid4().hex
        data = await self._call(lambda: self._post_json(endpoint, payload, idempotency_key=key))

        confirmation = data.get("confirmation_number") or data.get("tracking_number")
        logger.info(f"Payer accepted claim {claim.claim_number} (confirmation {confirmation})")
        return PayerSubmissionReceipt(
            confirmation_number=confirmation,
            external_claim_id=data.get("claim_id") or data.get("external_claim_id"),
            raw=data,
        )
