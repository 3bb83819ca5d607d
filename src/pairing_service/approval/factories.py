"""Dependency factories for the approval pipeline: built once from Settings."""

from pairing_service.approval.fallback import FallbackTransport
from pairing_service.approval.gateway import Connector, GatewaySession
from pairing_service.approval.orchestrator import ApprovalOrchestrator
from pairing_service.approval.resolver import DirectoryResolver
from pairing_service.config.settings import Settings
from pairing_service.core.structured_logger import get_logger

logger = get_logger("Factories")


def create_resolver(settings: Settings) -> DirectoryResolver:
    """Return a DirectoryResolver for the configured Railway endpoint."""
    cfg = settings.directory
    logger.info("Creating DirectoryResolver", endpoint=cfg.endpoint)
    return DirectoryResolver(
        endpoint=cfg.endpoint,
        token=cfg.token,
        timeout_seconds=cfg.timeout_seconds,
        private_domain_suffix=cfg.private_domain_suffix,
    )


def create_gateway_session(settings: Settings, connector: Connector | None = None) -> GatewaySession:
    """Return a GatewaySession identifying itself with this service's version."""
    cfg = settings.gateway
    logger.info("Creating GatewaySession", port=cfg.port, watchdog_seconds=cfg.watchdog_seconds)
    return GatewaySession(
        port=cfg.port,
        path=cfg.path,
        watchdog_seconds=cfg.watchdog_seconds,
        protocol_version=cfg.protocol_version,
        client_name=cfg.client_name,
        client_version=settings.version,
        role=cfg.role,
        scopes=cfg.scopes,
        connector=connector,
    )


def create_fallback_transport(settings: Settings) -> FallbackTransport:
    cfg = settings.fallback
    logger.info("Creating FallbackTransport", port=cfg.port, path=cfg.path)
    return FallbackTransport(
        port=cfg.port,
        path=cfg.path,
        timeout_seconds=cfg.timeout_seconds,
        token=cfg.token,
    )


def create_orchestrator(settings: Settings) -> ApprovalOrchestrator:
    """Wire resolver, gateway and fallback into an ApprovalOrchestrator."""
    cfg = settings.orchestrator
    logger.info(
        "Creating ApprovalOrchestrator",
        gateway_attempts=cfg.gateway_attempts,
        backoff_seconds=cfg.backoff_seconds,
    )
    return ApprovalOrchestrator(
        resolver=create_resolver(settings),
        gateway=create_gateway_session(settings),
        fallback=create_fallback_transport(settings),
        gateway_attempts=cfg.gateway_attempts,
        backoff_seconds=cfg.backoff_seconds,
        control_tool=cfg.control_tool,
        project_id=settings.directory.project_id,
        environment_id=settings.directory.environment_id,
    )
