"""
Import-boundary enforcement.

1. Engine purity       -- bizbooks_engines/** may not import DB drivers,
                          the ORM, kernel models/db/services, or the
                          config and service layers.
2. Engine no-impure    -- bizbooks_engines/** may not read the wall clock
                          or the environment.
3. Domain purity       -- bizbooks_kernel/domain/** imports no ORM.
4. Kernel independence -- bizbooks_kernel/** never imports the layers
                          built on top of it.
5. Config direction    -- bizbooks_config/** may not import services.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted((REPO_ROOT / package).rglob("*.py"))


def _parse(filepath: Path) -> ast.AST | None:
    try:
        return ast.parse(filepath.read_text(), filename=str(filepath))
    except (SyntaxError, UnicodeDecodeError):
        return None


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = _parse(filepath)
    if tree is None:
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    for prefix in prefixes:
        if module == prefix or module.startswith(f"{prefix}."):
            return True
    return False


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute refs."""
    tree = _parse(filepath)
    if tree is None:
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            results.append((node.lineno, f"{node.value.id}.{node.attr}"))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    violations: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                rel = filepath.relative_to(REPO_ROOT)
                violations.append(f"  {rel}:{lineno} imports '{module}'")
    return violations


# ---------------------------------------------------------------------------
# 1. TestEnginePurity
# ---------------------------------------------------------------------------

class TestEnginePurity:
    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "bizbooks_kernel.db",
        "bizbooks_kernel.models",
        "bizbooks_kernel.services",
        "bizbooks_kernel.selectors",
        "bizbooks_services",
        "bizbooks_config",
    )

    def test_engines_exist(self):
        assert _python_files("bizbooks_engines")

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("bizbooks_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation; bizbooks_engines/** must not import "
            "DB drivers, ORM, kernel persistence, services or config:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 2. TestEngineNoImpureFunctions
# ---------------------------------------------------------------------------

class TestEngineNoImpureFunctions:
    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "os.environ",
        "os.getenv",
    })

    def test_engines_do_not_read_clock_or_environment(self):
        violations: list[str] = []
        for filepath in _python_files("bizbooks_engines"):
            for lineno, ref in _extract_attribute_calls(filepath):
                if ref in self.FORBIDDEN_CALLS:
                    rel = filepath.relative_to(REPO_ROOT)
                    violations.append(f"  {rel}:{lineno} uses {ref}")
        assert not violations, (
            "Engines take dates and settings as parameters:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 3. TestDomainPurity
# ---------------------------------------------------------------------------

class TestDomainPurity:
    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "bizbooks_kernel.db",
        "bizbooks_kernel.models",
        "bizbooks_kernel.services",
        "bizbooks_kernel.selectors",
    )

    def test_domain_has_no_orm_imports(self):
        violations = _violations("bizbooks_kernel/domain", self.FORBIDDEN_PREFIXES)
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# 4. TestKernelIndependence
# ---------------------------------------------------------------------------

class TestKernelIndependence:
    FORBIDDEN_PREFIXES = ("bizbooks_engines", "bizbooks_services", "bizbooks_config")

    def test_kernel_does_not_import_upper_layers(self):
        violations = _violations("bizbooks_kernel", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "bizbooks_kernel/** must not depend on the layers above it:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 5. TestConfigDirection
# ---------------------------------------------------------------------------

class TestConfigDirection:
    def test_config_does_not_import_services(self):
        violations = _violations("bizbooks_config", ("bizbooks_services",))
        assert not violations, "\n".join(violations)
