"""Application services built on the core, quota and upstream layers."""

from tubepulse.services.gateway import (
    GatedResult,
    QuotaGateway,
    denial_payload,
    quota_denial_response,
)

__all__ = [
    "GatedResult",
    "QuotaGateway",
    "denial_payload",
    "quota_denial_response",
]
