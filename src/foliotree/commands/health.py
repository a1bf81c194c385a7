"""
foliotree.commands.health - Diagnose configuration and content tree integrity.

``foliotree doctor`` runs three groups of checks and exits non-zero when
any error-severity check fails:

- config: which config file is in use
- store: the configured store can list its nodes
- tree: acyclic parent chains, folder-only containment, type references,
  orphans and duplicate paths
"""

from __future__ import annotations

import argparse
import asyncio
import json
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Iterator

from foliotree.graph.ContentNode import ContentNode
from foliotree.graph.errors import StoreError
from foliotree.graph.index import NodeIndex
from foliotree.graph.paths import PathResolver

CATEGORIES = ("config", "store", "tree")

_ICONS = {"ok": "✓", "warning": "⚠", "error": "✗"}


@dataclass
class HealthCheck:
    """Outcome of one doctor check.

    A failed check with ``severity="warning"`` is reported but does not
    make the report unhealthy; ``info`` is for passing checks that carry
    a note.
    """

    name: str
    passed: bool
    message: str
    category: str
    severity: str = "error"
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def outcome(self) -> str:
        if self.passed:
            return "ok"
        return "warning" if self.severity == "warning" else "error"


@dataclass
class HealthReport:
    checks: list[HealthCheck] = field(default_factory=list)

    def _tally(self) -> Counter[str]:
        return Counter(check.outcome for check in self.checks)

    @property
    def passed(self) -> int:
        return self._tally()["ok"]

    @property
    def failed(self) -> int:
        return self._tally()["error"]

    @property
    def warnings(self) -> int:
        return self._tally()["warning"]

    @property
    def is_healthy(self) -> bool:
        return not self.failed

    def add(self, check: HealthCheck) -> None:
        self.checks.append(check)

    def iter_by_category(self, category: str) -> Iterator[HealthCheck]:
        return (check for check in self.checks if check.category == category)

    def to_dict(self) -> dict[str, Any]:
        tally = self._tally()
        return {
            "healthy": self.is_healthy,
            "summary": {
                "passed": tally["ok"],
                "failed": tally["error"],
                "warnings": tally["warning"],
            },
            "checks": [asdict(check) for check in self.checks],
        }


# =============================================================================
# Config Checks
# =============================================================================


def check_config_exists(config_path: Path | None, start_path: Path) -> HealthCheck:
    """Report which config file is in use; running on defaults is fine."""
    from foliotree.config import find_config_file

    found = config_path if config_path and config_path.exists() else find_config_file(start_path)
    if found is None:
        return HealthCheck(
            name="config.exists",
            passed=True,
            message="Running on built-in defaults (no .foliotree.toml)",
            category="config",
            severity="info",
        )
    return HealthCheck(
        name="config.exists",
        passed=True,
        message=f"Using {found}",
        category="config",
        details={"path": str(found)},
    )


# =============================================================================
# Tree Checks
# =============================================================================


def check_tree_acyclic(index: NodeIndex) -> HealthCheck:
    """Check that every parent chain ends at a root."""
    cycles: list[list[str]] = []
    in_cycle: set[str] = set()
    for node in index.nodes():
        if node.id in in_cycle:
            continue
        cycle = index.find_cycle(node.id)
        if cycle and not in_cycle.intersection(cycle):
            cycles.append(cycle)
            in_cycle.update(cycle)

    if cycles:
        return HealthCheck(
            name="tree.acyclic",
            passed=False,
            message=f"{len(cycles)} parent cycle(s) found",
            category="tree",
            details={"cycles": cycles},
        )
    return HealthCheck(
        name="tree.acyclic",
        passed=True,
        message="Every parent chain reaches a root",
        category="tree",
    )


def check_folder_containment(index: NodeIndex) -> HealthCheck:
    """Check that every parent is a folder and no node parents itself."""
    bad = []
    for node in index.nodes():
        if node.parent_id is None:
            continue
        parent = index.get(node.parent_id)
        if node.parent_id == node.id or (parent is not None and not parent.is_folder):
            bad.append(node.id)

    if bad:
        return HealthCheck(
            name="tree.folder_containment",
            passed=False,
            message=f"{len(bad)} node(s) sit under a non-folder or under themselves",
            category="tree",
            details={"nodes": sorted(bad)},
        )
    return HealthCheck(
        name="tree.folder_containment",
        passed=True,
        message="All parents are folders",
        category="tree",
    )


def check_type_references(index: NodeIndex) -> HealthCheck:
    """Check that project and blog nodes carry a reference."""
    missing = [
        node.id for node in index.nodes() if node.node_type.requires_ref and not node.ref_id
    ]
    if missing:
        return HealthCheck(
            name="tree.type_references",
            passed=False,
            message=f"{len(missing)} project/blog node(s) have no reference",
            category="tree",
            details={"nodes": sorted(missing)},
        )
    return HealthCheck(
        name="tree.type_references",
        passed=True,
        message="All project/blog nodes reference their content",
        category="tree",
    )


def check_orphans(index: NodeIndex) -> HealthCheck:
    """Flag nodes whose parent no longer exists.

    Listings show such nodes as roots, so this is a warning, not an error.
    """
    orphans = [node.id for node in index.nodes() if index.is_orphan(node)]
    if orphans:
        return HealthCheck(
            name="tree.orphans",
            passed=False,
            message=f"{len(orphans)} node(s) reference a missing parent",
            category="tree",
            severity="warning",
            details={"nodes": sorted(orphans)},
        )
    return HealthCheck(
        name="tree.orphans",
        passed=True,
        message="Every parent reference resolves",
        category="tree",
    )


def check_duplicate_paths(index: NodeIndex) -> HealthCheck:
    """Flag nodes that resolve to the same full path."""
    resolver = PathResolver(index)
    by_path: dict[str, list[str]] = defaultdict(list)
    for node in index.nodes():
        by_path[resolver.full_path(node.id)].append(node.id)
    duplicates = {path: sorted(ids) for path, ids in by_path.items() if len(ids) > 1}

    if duplicates:
        return HealthCheck(
            name="tree.duplicate_paths",
            passed=False,
            message=f"{len(duplicates)} path(s) are shared by several nodes",
            category="tree",
            severity="warning",
            details={"paths": duplicates},
        )
    return HealthCheck(
        name="tree.duplicate_paths",
        passed=True,
        message="Every node has a distinct path",
        category="tree",
    )


def run_tree_checks(nodes: list[ContentNode]) -> list[HealthCheck]:
    """Run all tree integrity checks over a full node snapshot."""
    index = NodeIndex(nodes)
    return [
        check_tree_acyclic(index),
        check_folder_containment(index),
        check_type_references(index),
        check_orphans(index),
        check_duplicate_paths(index),
    ]


# =============================================================================
# Main Command
# =============================================================================


def run(args: argparse.Namespace) -> int:
    """Run the doctor command.

    Loads configuration, reads the full node set once, and checks the
    stored tree against its structural rules.
    """
    from foliotree.config import get_config
    from foliotree.graph.factory import build_store

    config_path = getattr(args, "config", None)
    start_path = Path.cwd()
    report = HealthReport()

    try:
        config = get_config(config_path, start_path=start_path)
    except (OSError, ValueError) as e:
        report.add(
            HealthCheck(
                name="config.load",
                passed=False,
                message=f"Config could not be loaded: {e}",
                category="config",
            )
        )
        return _output_report(report, args)
    report.add(check_config_exists(config_path, start_path))

    try:
        store = build_store(config, base_dir=Path(config_path).parent if config_path else start_path)
        nodes = asyncio.run(store.list_nodes())
    except (StoreError, ValueError) as e:
        report.add(
            HealthCheck(
                name="store.reachable",
                passed=False,
                message=f"Cannot read content nodes: {e}",
                category="store",
            )
        )
        return _output_report(report, args)

    report.add(
        HealthCheck(
            name="store.reachable",
            passed=True,
            message=f"Read {len(nodes)} content node(s)",
            category="store",
            details={"backend": config.get("store", {}).get("backend", "memory")},
        )
    )
    for check in run_tree_checks(nodes):
        report.add(check)

    return _output_report(report, args)


def _output_report(report: HealthReport, args: argparse.Namespace) -> int:
    if getattr(args, "json", False):
        print(json.dumps(report.to_dict(), indent=2))
    else:
        _print_text_report(report, verbose=getattr(args, "verbose", False))
    return 0 if report.is_healthy else 1


def _format_detail(key: str, value: Any) -> str:
    if isinstance(value, list) and len(value) > 3:
        return f"{key}: {value[:3]} ... ({len(value)} total)"
    return f"{key}: {value}"


def _print_text_report(report: HealthReport, verbose: bool = False) -> None:
    """Print checks grouped by category, then a one-line verdict."""
    rule = "=" * 40
    for category in CATEGORIES:
        checks = list(report.iter_by_category(category))
        if not checks:
            continue
        ok = sum(check.passed for check in checks)
        heading = _ICONS["ok"] if ok == len(checks) else _ICONS["error"]
        print(f"\n{heading} {category.upper()} ({ok}/{len(checks)} checks passed)")
        print("-" * 40)
        for check in checks:
            print(f"  {_ICONS[check.outcome]} {check.name}: {check.message}")
            if verbose:
                for key, value in check.details.items():
                    print(f"      {_format_detail(key, value)}")

    print(f"\n{rule}")
    if report.is_healthy:
        print(f"{_ICONS['ok']} HEALTHY: {report.passed} checks passed")
    else:
        print(f"{_ICONS['error']} UNHEALTHY: {report.failed} errors, {report.warnings} warnings")
    print(rule)
