"""
Import boundaries between packages.

1. funding_kernel/** may NOT import funding_config, funding_gateways or
   funding_services.  The kernel never depends upward.
2. funding_gateways/** may NOT import funding_services.
3. Transaction rows are constructed only by the ledger service.

These tests read source code via AST.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _tree(path: Path) -> ast.AST:
    return ast.parse(path.read_text(), filename=str(path))


def _imports(path: Path) -> list[tuple[int, str]]:
    results = []
    for node in ast.walk(_tree(path)):
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _imports(path):
            if any(module == prefix or module.startswith(f"{prefix}.") for prefix in forbidden):
                found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


def test_kernel_has_no_upward_dependencies():
    violations = _violations("funding_kernel", ("funding_config", "funding_gateways", "funding_services"))
    assert not violations, "funding_kernel must not import upward packages:\n" + "\n".join(violations)


def test_gateways_do_not_import_services():
    violations = _violations("funding_gateways", ("funding_services",))
    assert not violations, "funding_gateways must not import funding_services:\n" + "\n".join(violations)


def test_only_the_ledger_builds_transaction_rows():
    allowed = ROOT / "funding_kernel" / "services" / "ledger_service.py"
    builders = []
    for package in ("funding_kernel", "funding_gateways", "funding_services"):
        for path in _python_files(package):
            if path == allowed:
                continue
            for node in ast.walk(_tree(path)):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Name)
                    and node.func.id == "Transaction"
                ):
                    builders.append(f"  {path.relative_to(ROOT)}:{node.lineno}")
    assert not builders, "Transaction rows built outside LedgerService:\n" + "\n".join(builders)
