"""
TreasuryConfig schema.

Defines the runtime configuration of the treasury: validation minimums,
daily cycle defaults, safe thresholds, concurrency retry bounds, the
receipt prefix and the role -> treasury action table.  YAML sets are
parsed into this type by the loader.

Key distinction:
  TreasuryConfig    = tunable policy (how much input a rule needs)
  LedgerInvariant   = structural law in the kernel (never configurable)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any

_logger = logging.getLogger("treasury_kernel.config")

# ---------------------------------------------------------------------------
# Role -> treasury action defaults
# ---------------------------------------------------------------------------

ALL_TREASURY_ACTIONS: tuple[str, ...] = (
    "record_transaction",
    "view_transactions",
    "reverse_transaction",
    "view_reversals",
    "open_day",
    "close_day",
    "transfer_safe_registry",
    "transfer_bank",
    "verify_safe",
    "adjust_balance",
    "view_reports",
    "approve_discrepancy",
)

DEFAULT_ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "director": ALL_TREASURY_ACTIONS,
    "accountant": tuple(
        action
        for action in ALL_TREASURY_ACTIONS
        if action not in ("transfer_safe_registry", "adjust_balance")
    ),
    "secretary": ("record_transaction", "view_transactions"),
}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TreasuryConfig:
    """Validated treasury configuration.  Amounts are minor currency units."""

    reason_min_length: int = 10
    transfer_notes_min_length: int = 3
    default_float_amount: int = 2_000_000
    discrepancy_alert_threshold: int = 50_000
    require_discrepancy_approval: bool = False
    safe_threshold_min: int = 5_000_000
    safe_threshold_max: int = 20_000_000
    max_retries: int = 5
    retry_backoff_seconds: float = 0.05
    receipt_prefix: str = "CAISSE"
    role_permissions: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_ROLE_PERMISSIONS)
    )
    config_id: str = "default"
    checksum: str | None = None

    def __post_init__(self) -> None:
        problems = self._problems()
        if problems:
            _logger.error(
                "treasury_config_invalid",
                extra={"config_id": self.config_id, "problems": problems},
            )
            raise ValueError(f"Invalid treasury configuration: {'; '.join(problems)}")

    def _problems(self) -> list[str]:
        problems = []
        for name in (
            "reason_min_length",
            "transfer_notes_min_length",
            "discrepancy_alert_threshold",
            "safe_threshold_min",
            "safe_threshold_max",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                problems.append(f"{name} must be a non-negative integer, got {value!r}")
        if (
            isinstance(self.default_float_amount, bool)
            or not isinstance(self.default_float_amount, int)
            or self.default_float_amount <= 0
        ):
            problems.append(
                f"default_float_amount must be a positive integer, got {self.default_float_amount!r}"
            )
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 1:
            problems.append(f"max_retries must be >= 1, got {self.max_retries!r}")
        if not isinstance(self.retry_backoff_seconds, (int, float)) or self.retry_backoff_seconds < 0:
            problems.append(
                f"retry_backoff_seconds must be >= 0, got {self.retry_backoff_seconds!r}"
            )
        if (
            not problems
            and self.safe_threshold_max < self.safe_threshold_min
        ):
            problems.append("safe_threshold_max must be >= safe_threshold_min")
        if not isinstance(self.receipt_prefix, str) or not self.receipt_prefix.strip():
            problems.append("receipt_prefix must be a non-empty string")
        for role, actions in self.role_permissions.items():
            unknown = sorted(set(actions) - set(ALL_TREASURY_ACTIONS))
            if unknown:
                problems.append(f"role '{role}' grants unknown actions {unknown}")
        return problems

    @classmethod
    def with_defaults(cls) -> TreasuryConfig:
        """The built-in configuration, without reading any file."""
        return cls()

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        config_id: str = "default",
        checksum: str | None = None,
    ) -> TreasuryConfig:
        """
        Build a config from parsed YAML.

        Missing keys take their default.  ``role_permissions`` lists are
        normalised to tuples.

        Raises:
            ValueError: unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)} - {"config_id", "checksum"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown treasury configuration keys: {unknown}")

        values = dict(data)
        if "role_permissions" in values:
            values["role_permissions"] = {
                str(role): tuple(actions or ())
                for role, actions in (values["role_permissions"] or {}).items()
            }
        return cls(config_id=config_id, checksum=checksum, **values)
