"""Orchestration over the credit kernel: units of work, locks, configuration."""

from credit_services.certification_orchestrator import (
    CertificationOrchestrator,
    KernelServices,
    build_kernel_services,
)

__all__ = [
    "CertificationOrchestrator",
    "KernelServices",
    "build_kernel_services",
]
