"""
Preflight Validator - Structural lint of a graph snapshot before generation.

Catches issues like:
- Empty canvas, empty labels
- Dangling edges and self loops
- REST route/method problems and duplicate routes
- Processes without steps, databases without tables or columns
- Duplicate labels, orphaned nodes, circular dependencies

Errors block generation; warnings can be overridden.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from archgraph.ir.graph import GraphCollection, GraphEdge, GraphNode
from archgraph.ir.nodes import ApiBinding, DatabaseBlock, ProcessDefinition

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")


class ValidationSeverity(Enum):
    ERROR = "error"      # Blocks deploy or generation
    WARNING = "warning"  # Reported, can be overridden
    INFO = "info"        # Suggestions for improvement


@dataclass
class ValidationIssue:
    """A single structural issue found in the graph"""
    severity: ValidationSeverity
    code: str           # Machine-readable issue code
    message: str        # Human-readable description
    node_id: Optional[str] = None
    edge_info: Optional[str] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "node_id": self.node_id,
            "edge_info": self.edge_info,
            "suggestion": self.suggestion,
        }


@dataclass
class PreflightResult:
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == ValidationSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == ValidationSeverity.WARNING)

    def codes(self) -> List[str]:
        return [i.code for i in self.issues]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "issues": [i.to_dict() for i in self.issues],
            "stats": self.stats,
        }

    def get_summary(self) -> str:
        status = "Valid" if self.is_valid else "Invalid"
        return f"{status} | Errors: {self.error_count}, Warnings: {self.warning_count}"


def _label(node: GraphNode) -> str:
    return node.data.label or node.id


class PreflightValidator:
    """
    Validates a graph snapshot for structural problems.

    Usage:
        result = PreflightValidator().validate(graphs)
        if not result.is_valid:
            for issue in result.issues:
                print(f"[{issue.severity.value}] {issue.message}")
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode

    def validate(self, graphs: GraphCollection) -> PreflightResult:
        nodes = graphs.all_nodes()
        edges = graphs.all_edges()
        node_ids = {node.id for node in nodes}

        issues: List[ValidationIssue] = []
        issues.extend(self._check_empty_canvas(nodes))
        issues.extend(self._check_empty_labels(nodes))
        issues.extend(self._check_dangling_edges(edges, node_ids))
        issues.extend(self._check_self_loops(nodes, edges))
        issues.extend(self._check_api_bindings(nodes, edges))
        issues.extend(self._check_duplicate_labels(nodes))
        issues.extend(self._check_orphaned_nodes(nodes, edges))
        issues.extend(self._check_process_steps(nodes))
        issues.extend(self._check_database_tables(nodes))
        issues.extend(self._check_circular_dependencies(nodes, edges))

        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        has_warnings = any(i.severity == ValidationSeverity.WARNING for i in issues)

        is_valid = not has_errors
        if self.strict_mode:
            is_valid = not has_errors and not has_warnings

        return PreflightResult(
            is_valid=is_valid,
            issues=issues,
            stats=self._calculate_stats(nodes, edges, node_ids),
        )

    def _check_empty_canvas(self, nodes: List[GraphNode]) -> List[ValidationIssue]:
        if nodes:
            return []
        return [ValidationIssue(
            severity=ValidationSeverity.ERROR,
            code="NO_NODES",
            message="No blocks on the canvas",
            suggestion="Add at least one block",
        )]

    def _check_empty_labels(self, nodes: List[GraphNode]) -> List[ValidationIssue]:
        issues = []
        for node in nodes:
            if not node.data.label.strip():
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.ERROR,
                    code="EMPTY_LABEL",
                    message=f"Block '{node.id}' has no label",
                    node_id=node.id,
                    suggestion="Give every block a descriptive label",
                ))
        return issues

    def _check_dangling_edges(self, edges: List[GraphEdge], node_ids: Set[str]) -> List[ValidationIssue]:
        issues = []
        for edge in edges:
            if edge.source not in node_ids:
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.ERROR,
                    code="MISSING_SOURCE_NODE",
                    message=f"Edge references missing source block '{edge.source}'",
                    edge_info=f"{edge.source} -> {edge.target}",
                    suggestion="Remove this edge or restore the source block",
                ))
            if edge.target not in node_ids:
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.ERROR,
                    code="MISSING_TARGET_NODE",
                    message=f"Edge references missing target block '{edge.target}'",
                    edge_info=f"{edge.source} -> {edge.target}",
                    suggestion="Remove this edge or restore the target block",
                ))
        return issues

    def _check_self_loops(self, nodes: List[GraphNode], edges: List[GraphEdge]) -> List[ValidationIssue]:
        issues = []
        node_by_id = {node.id: node for node in nodes}
        for edge in edges:
            if edge.source == edge.target and edge.source in node_by_id:
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.WARNING,
                    code="SELF_LOOP",
                    message=f"'{_label(node_by_id[edge.source])}' is connected to itself",
                    node_id=edge.source,
                    edge_info=f"{edge.source} -> {edge.target}",
                    suggestion="Remove the self-referencing edge",
                ))
        return issues

    def _check_api_bindings(self, nodes: List[GraphNode], edges: List[GraphEdge]) -> List[ValidationIssue]:
        issues = []
        seen_routes: Dict[str, str] = {}
        sources = {edge.source for edge in edges}

        for node in nodes:
            api = node.data
            if not isinstance(api, ApiBinding):
                continue
            label = _label(node)

            if api.protocol == "rest":
                route = api.route or ""
                method = (api.method or "").upper()
                route_ok = bool(route.strip())

                if not route_ok:
                    issues.append(ValidationIssue(
                        severity=ValidationSeverity.ERROR,
                        code="API_NO_ROUTE",
                        message=f"API '{label}' has no route defined",
                        node_id=node.id,
                        suggestion="Set a route such as /api/users",
                    ))
                else:
                    if not route.startswith("/"):
                        route_ok = False
                        issues.append(ValidationIssue(
                            severity=ValidationSeverity.ERROR,
                            code="API_ROUTE_NO_LEADING_SLASH",
                            message=f"API '{label}' route '{route}' must start with /",
                            node_id=node.id,
                            suggestion=f"Change the route to '/{route}'",
                        ))
                    if _WHITESPACE.search(route):
                        route_ok = False
                        issues.append(ValidationIssue(
                            severity=ValidationSeverity.ERROR,
                            code="API_ROUTE_WHITESPACE",
                            message=f"API '{label}' route '{route}' contains spaces",
                            node_id=node.id,
                            suggestion="Use hyphens or %20 instead of spaces",
                        ))

                if not method:
                    issues.append(ValidationIssue(
                        severity=ValidationSeverity.ERROR,
                        code="API_NO_METHOD",
                        message=f"API '{label}' has no HTTP method set",
                        node_id=node.id,
                        suggestion="Set a method (GET, POST, PUT, PATCH, DELETE)",
                    ))
                elif route_ok:
                    key = f"{method} {route.strip()}"
                    if key in seen_routes:
                        issues.append(ValidationIssue(
                            severity=ValidationSeverity.ERROR,
                            code="DUPLICATE_ROUTE",
                            message=f"Duplicate route: {key}",
                            node_id=node.id,
                            suggestion=f"'{label}' and '{seen_routes[key]}' share the same route",
                        ))
                    else:
                        seen_routes[key] = label

            if node.id not in sources:
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.WARNING,
                    code="API_NO_PROCESS",
                    message=f"API '{label}' has no connected process",
                    node_id=node.id,
                    suggestion="Connect the API to the process that handles it",
                ))
        return issues

    def _check_duplicate_labels(self, nodes: List[GraphNode]) -> List[ValidationIssue]:
        issues = []
        seen: Dict[str, List[GraphNode]] = defaultdict(list)
        for node in nodes:
            if node.data.label:
                seen[node.data.label.strip().lower()].append(node)
        for group in seen.values():
            if len(group) > 1:
                ids = ", ".join(node.id for node in group)
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.WARNING,
                    code="DUPLICATE_LABEL",
                    message=f"Duplicate label '{group[0].data.label}' on {len(group)} blocks ({ids})",
                    suggestion="Give each block a distinct label",
                ))
        return issues

    def _check_orphaned_nodes(self, nodes: List[GraphNode], edges: List[GraphEdge]) -> List[ValidationIssue]:
        # A single block on its own is fine
        if len(nodes) < 2:
            return []

        connected = {edge.source for edge in edges} | {edge.target for edge in edges}
        orphaned = [node for node in nodes if node.id not in connected]
        logger.debug("Orphan check: %d orphaned out of %d nodes", len(orphaned), len(nodes))

        return [
            ValidationIssue(
                severity=ValidationSeverity.WARNING,
                code="ORPHANED_NODE",
                message=f"'{_label(node)}' ({node.id}, kind={node.kind}) is not connected to anything",
                node_id=node.id,
                suggestion=f"Connect this {node.kind} to other blocks or remove it",
            )
            for node in orphaned
        ]

    def _check_process_steps(self, nodes: List[GraphNode]) -> List[ValidationIssue]:
        issues = []
        for node in nodes:
            if isinstance(node.data, ProcessDefinition) and not node.data.steps:
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.WARNING,
                    code="PROCESS_NO_STEPS",
                    message=f"Process '{_label(node)}' has no steps defined",
                    node_id=node.id,
                    suggestion="Add explicit steps to the process",
                ))
        return issues

    def _check_database_tables(self, nodes: List[GraphNode]) -> List[ValidationIssue]:
        issues = []
        for node in nodes:
            database = node.data
            if not isinstance(database, DatabaseBlock):
                continue
            if not database.tables:
                issues.append(ValidationIssue(
                    severity=ValidationSeverity.WARNING,
                    code="DATABASE_NO_TABLES",
                    message=f"Database '{_label(node)}' has no tables",
                    node_id=node.id,
                    suggestion="Define at least one table",
                ))
                continue
            for table in database.tables:
                if not table.fields:
                    issues.append(ValidationIssue(
                        severity=ValidationSeverity.WARNING,
                        code="TABLE_NO_COLUMNS",
                        message=f"Table '{table.name}' in '{_label(node)}' has no columns",
                        node_id=node.id,
                        suggestion="Add at least one column",
                    ))
        return issues

    def _check_circular_dependencies(self, nodes: List[GraphNode], edges: List[GraphEdge]) -> List[ValidationIssue]:
        issues = []
        adjacency: Dict[str, Set[str]] = defaultdict(set)
        for edge in edges:
            if edge.source != edge.target:
                adjacency[edge.source].add(edge.target)

        visited: Set[str] = set()
        rec_stack: Set[str] = set()
        cycles_found: List[List[str]] = []

        def dfs(node: str, path: List[str]) -> bool:
            visited.add(node)
            rec_stack.add(node)
            for neighbor in sorted(adjacency.get(node, ())):
                if neighbor not in visited:
                    if dfs(neighbor, path + [neighbor]):
                        return True
                elif neighbor in rec_stack:
                    cycle_start = path.index(neighbor) if neighbor in path else 0
                    cycles_found.append(path[cycle_start:] + [neighbor])
                    return True
            rec_stack.remove(node)
            return False

        for node_id in [n.id for n in nodes]:
            if node_id not in visited:
                rec_stack.clear()
                dfs(node_id, [node_id])

        for cycle in cycles_found[:3]:
            issues.append(ValidationIssue(
                severity=ValidationSeverity.WARNING,
                code="CIRCULAR_DEPENDENCY",
                message=f"Circular dependency detected: {' -> '.join(cycle)}",
                suggestion="Break the cycle with a queue or an intermediary process",
            ))
        return issues

    def _calculate_stats(
        self, nodes: List[GraphNode], edges: List[GraphEdge], node_ids: Set[str]
    ) -> Dict[str, int]:
        kind_counts: Dict[str, int] = defaultdict(int)
        for node in nodes:
            kind_counts[node.kind] += 1

        connected = {edge.source for edge in edges} | {edge.target for edge in edges}

        return {
            "nodes": len(nodes),
            "edges": len(edges),
            "orphaned_nodes": len(node_ids - connected),
            "apis": kind_counts.get("api_binding", 0),
            "processes": kind_counts.get("process", 0),
            "databases": kind_counts.get("database", 0),
            "queues": kind_counts.get("queue", 0),
            "infrastructure": kind_counts.get("infra", 0),
            "service_boundaries": kind_counts.get("service_boundary", 0),
        }


def validate_architecture(graphs: GraphCollection, strict: bool = False) -> PreflightResult:
    """Convenience function to lint a graph snapshot."""
    return PreflightValidator(strict_mode=strict).validate(graphs)
