"""
Kernel boundary and invariants contract.

1. credit_kernel/** may NOT import credit_services or credit_config.
   The kernel never depends upward.

2. credit_kernel/domain/** stays free of ORM and DB imports.

3. Only credit_config/__init__.py and bridges.py reach into the config
   internals (loader, validator); everything else goes through
   get_active_config() and the bridges.

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

from credit_kernel.invariants import (
    ALL_CREDIT_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    CreditInvariant,
)

REPO_ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    return sorted((REPO_ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(files: list[Path], forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in files:
        for lineno, module in _extract_imports(filepath):
            if any(module == p or module.startswith(f"{p}.") for p in forbidden):
                found.append(f"  {filepath.relative_to(REPO_ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_upward(self):
        violations = _violations(_python_files("credit_kernel"), FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, (
            "Kernel boundary violation -- credit_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations = _violations(_python_files("credit_config"), ("credit_services",))
        assert not violations, "\n".join(violations)


class TestKernelDomainPurity:

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "credit_kernel.db",
        "credit_kernel.models",
        "credit_kernel.services",
        "credit_kernel.selectors",
    )

    def test_domain_no_orm_imports(self):
        violations = _violations(
            _python_files("credit_kernel/domain"), self.FORBIDDEN_MODULES
        )
        assert not violations, (
            "Domain purity violation -- credit_kernel/domain/** must not "
            "import ORM/DB packages:\n" + "\n".join(violations)
        )


class TestConfigCentralisation:

    INTERNAL = ("credit_config.loader", "credit_config.validator")
    ALLOWED = {"__init__.py", "bridges.py", "loader.py", "validator.py"}

    def test_only_entrypoint_uses_internals(self):
        files = [
            f for f in _python_files("credit_config") if f.name not in self.ALLOWED
        ] + _python_files("credit_services") + _python_files("credit_kernel")
        violations = _violations(files, self.INTERNAL)
        assert not violations, (
            "Config internals must be reached through get_active_config():\n"
            + "\n".join(violations)
        )


class TestKernelInvariantsDeclaration:

    def test_invariants_declared(self):
        assert len(ALL_CREDIT_INVARIANTS) == len(CreditInvariant) > 0

    def test_every_invariant_documented(self):
        source = (REPO_ROOT / "credit_kernel" / "invariants.py").read_text()
        tree = ast.parse(source)
        enum_body = next(
            node.body for node in ast.walk(tree)
            if isinstance(node, ast.ClassDef) and node.name == "CreditInvariant"
        )
        documented = {
            stmt.targets[0].id
            for stmt, following in zip(enum_body, enum_body[1:])
            if isinstance(stmt, ast.Assign)
            and isinstance(following, ast.Expr)
            and isinstance(following.value, ast.Constant)
        }
        assert documented == {member.name for member in CreditInvariant}

    def test_forbidden_imports_cover_outer_layers(self):
        assert set(FORBIDDEN_KERNEL_IMPORTS) == {"credit_services", "credit_config"}
