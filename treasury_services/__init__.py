"""
treasury_services -- Package init and public API.

Responsibility:
    The external surface of the treasury: the authorization gate and the
    orchestrator that owns every transaction boundary.

Architecture position:
    Services -- orchestration over the kernel.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        treasury_services/ -> treasury_kernel/  (allowed)
        treasury_services/ -> treasury_config/  (allowed)
        treasury_kernel/   -> treasury_services/ (FORBIDDEN)
"""

from treasury_services.authority import (
    AllowAllAuthority,
    RoleBasedAuthority,
    TreasuryAction,
    TreasuryAuthority,
)
from treasury_services.treasury_orchestrator import TreasuryOrchestrator

__all__ = [
    "AllowAllAuthority",
    "RoleBasedAuthority",
    "TreasuryAction",
    "TreasuryAuthority",
    "TreasuryOrchestrator",
]
