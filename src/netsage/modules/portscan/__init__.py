"""Port discovery: escalation ladder, UDP sweep and finding collection."""

from .findings import PORT_STATES, PortCollection, PortFinding, normalize_state
from .ladder import (
    LADDER,
    LadderStep,
    PortScanOrchestrator,
    PortScanState,
    StepAttempt,
    next_step,
    summarize_port_status,
)
from .service_map import (
    SERVICES,
    canonical_service,
    default_port_for_scheme,
    extract_port_from_target,
    map_services_to_ports,
    ports_for_service,
    service_for_port,
)

__all__ = [
    "LADDER",
    "LadderStep",
    "PORT_STATES",
    "PortCollection",
    "PortFinding",
    "PortScanOrchestrator",
    "PortScanState",
    "SERVICES",
    "StepAttempt",
    "canonical_service",
    "default_port_for_scheme",
    "extract_port_from_target",
    "map_services_to_ports",
    "next_step",
    "normalize_state",
    "ports_for_service",
    "service_for_port",
    "summarize_port_status",
]
