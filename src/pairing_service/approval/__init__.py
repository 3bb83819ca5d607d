"""
Approval pipeline
=================

- resolver:     service id → private network name (Railway GraphQL)
- handshake:    pure gateway handshake state machine
- gateway:      WebSocket driver for the handshake, with watchdog
- fallback:     secondary HTTP approval endpoint
- orchestrator: retry/fallback sequencing and manual remediation
"""

from pairing_service.approval.factories import create_orchestrator
from pairing_service.approval.fallback import FallbackTransport
from pairing_service.approval.gateway import GatewaySession
from pairing_service.approval.orchestrator import ApprovalOrchestrator
from pairing_service.approval.resolver import DirectoryResolver

__all__ = [
    'ApprovalOrchestrator',
    'DirectoryResolver',
    'FallbackTransport',
    'GatewaySession',
    'create_orchestrator',
]
