"""
Package boundaries and the invariants contract.

1. treasury_kernel/** may NOT import treasury_services or treasury_config.
   The kernel receives its settings as plain arguments.

2. treasury_config/** may NOT import treasury_services.

3. treasury_kernel.domain is pure: no SQLAlchemy, no ORM models, no
   services.  Selectors read models but never call writer services.

4. The ledger invariants declaration is complete and non-empty.

These tests read source code via AST and import nothing they inspect.
"""

import ast
from pathlib import Path

from treasury_kernel.invariants import ALL_LEDGER_INVARIANTS, LedgerInvariant

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(
                        f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'"
                    )
    return found


class TestPackageBoundaries:

    def test_packages_exist(self):
        for package in ("treasury_kernel", "treasury_config", "treasury_services"):
            assert _python_files(package), f"{package} not found under {ROOT}"

    def test_kernel_does_not_import_upward(self):
        violations = _violations(
            "treasury_kernel", ("treasury_services", "treasury_config")
        )
        assert not violations, (
            "treasury_kernel/** must not import treasury_services or "
            "treasury_config:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations = _violations("treasury_config", ("treasury_services",))
        assert not violations, "\n".join(violations)

    def test_domain_is_pure(self):
        violations = _violations(
            "treasury_kernel/domain",
            (
                "sqlalchemy",
                "treasury_kernel.db",
                "treasury_kernel.models",
                "treasury_kernel.services",
                "treasury_kernel.selectors",
            ),
        )
        assert not violations, (
            "treasury_kernel.domain must stay free of persistence:\n"
            + "\n".join(violations)
        )

    def test_selectors_do_not_call_services(self):
        violations = _violations(
            "treasury_kernel/selectors", ("treasury_kernel.services",)
        )
        assert not violations, "\n".join(violations)


class TestInvariantsContract:

    def test_declared(self):
        assert len(ALL_LEDGER_INVARIANTS) == len(LedgerInvariant) > 0

    def test_values_are_unique_snake_case(self):
        values = [inv.value for inv in LedgerInvariant]
        assert len(values) == len(set(values))
        assert all(v == v.lower() and " " not in v for v in values)
