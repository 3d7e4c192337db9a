"""
Submission Gateway Module for the HCBS Billing Engine.

Outbound clients for clearinghouses and payer APIs, sharing one error
taxonomy and retry policy.
"""

from src.gateways.base import (
    BaseHttpGateway,
    ClaimEnvelope,
    GatewayConfig,
    IntegrationError,
    IntegrationRateLimitError,
    IntegrationRejectedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
    classify_http_status,
    with_retry,
)
from src.gateways.clearinghouse_gateway import (
    ClearinghouseBatchItem,
    ClearinghouseClient,
    ClearinghouseSubmission,
    HttpClearinghouseClient,
)
from src.gateways.payer_gateway import (
    HttpPayerSubmissionClient,
    PayerSubmissionClient,
    PayerSubmissionReceipt,
)

__all__ = [
    # Base
    "BaseHttpGateway",
    "ClaimEnvelope",
    "GatewayConfig",
    "IntegrationError",
    "IntegrationRateLimitError",
    "IntegrationRejectedError",
    "IntegrationTimeoutError",
    "IntegrationUnavailableError",
    "classify_http_status",
    "with_retry",
    # Clearinghouse
    "ClearinghouseBatchItem",
    "ClearinghouseClient",
    "ClearinghouseSubmission",
    "HttpClearinghouseClient",
    # Payer
    "HttpPayerSubmissionClient",
    "PayerSubmissionClient",
    "PayerSubmissionReceipt",
]
