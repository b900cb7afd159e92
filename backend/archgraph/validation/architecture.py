"""
Architecture Analyzer - Static ownership and dependency checks that gate deploy.

Produces a report with three parts:
- Runtime dependencies (API -> function -> data/infra references, compute hosting)
- Service ownership (exclusive claims, compute binding, cross-service calls)
- Deploy readiness plus a 7-stage workflow model

Never raises; callers inspect the report.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from archgraph.ir.graph import GraphCollection
from archgraph.ir.nodes import (
    ApiBinding,
    DatabaseBlock,
    InfraBlock,
    ProcessDefinition,
    QueueBlock,
    ServiceBoundaryBlock,
)
from archgraph.validation.preflight import ValidationSeverity

DEPENDENCY_DIRECTION = "API -> Functional -> Data -> Infra"
HOSTING_LAYER = "Infrastructure hosts all layers"

ORDERED_STEPS = [
    "Create API",
    "Attach Function",
    "Define Function Logic",
    "Define Database",
    "Configure Infrastructure",
    "Assign Services",
    "Deploy",
]

SERVICE_RULES = [
    "Each service owns its API, functions, and data",
    "No direct DB sharing across services",
    "Cross-service communication only via API, queue, or event bus",
]


@dataclass
class ArchitectureIssue:
    code: str
    severity: ValidationSeverity
    message: str
    refs: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.refs:
            result["refs"] = list(self.refs)
        return result


@dataclass
class WorkflowStage:
    id: str
    title: str
    status: str  # complete | incomplete | blocked
    detail: str

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "status": self.status, "detail": self.detail}


@dataclass
class ServiceSummary:
    id: str
    label: str
    api_count: int
    function_count: int
    data_count: int
    compute_ref: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "apiCount": self.api_count,
            "functionCount": self.function_count,
            "dataCount": self.data_count,
            "computeRef": self.compute_ref,
        }


@dataclass
class DesignSystemReport:
    layer_counts: Dict[str, int]
    runtime_issues: List[ArchitectureIssue]
    stages: List[WorkflowStage]
    services: List[ServiceSummary]
    service_issues: List[ArchitectureIssue]
    ready: bool

    @property
    def issues(self) -> List[ArchitectureIssue]:
        return self.runtime_issues + self.service_issues

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == ValidationSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == ValidationSeverity.WARNING)

    @property
    def blockers(self) -> List[str]:
        return [i.message for i in self.issues if i.severity == ValidationSeverity.ERROR]

    @property
    def has_service_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.service_issues)

    def to_dict(self) -> dict:
        return {
            "runtimeModel": {
                "dependencyDirection": DEPENDENCY_DIRECTION,
                "hostingLayer": HOSTING_LAYER,
                "layerCounts": dict(self.layer_counts),
                "issues": [i.to_dict() for i in self.runtime_issues],
            },
            "workflowModel": {
                "orderedSteps": list(ORDERED_STEPS),
                "stages": [s.to_dict() for s in self.stages],
            },
            "serviceModel": {
                "rules": list(SERVICE_RULES),
                "services": [s.to_dict() for s in self.services],
                "issues": [i.to_dict() for i in self.service_issues],
            },
            "deploy": {
                "ready": self.ready,
                "blockers": self.blockers,
                "errorCount": self.error_count,
                "warningCount": self.warning_count,
            },
        }


def _name(node) -> str:
    return node.label or node.id


def _error(code: str, message: str, refs: Optional[List[str]] = None) -> ArchitectureIssue:
    return ArchitectureIssue(
        code=code,
        severity=ValidationSeverity.ERROR,
        message=message,
        refs=refs or [],
    )


class ArchitectureAnalyzer:
    """
    Validates a graph snapshot for referential integrity and service ownership.

    All references (processRef, step refs, service refs) resolve against
    domain ids (`data.id`), not graph ids.

    Usage:
        report = ArchitectureAnalyzer(graphs).analyze()
        if not report.ready:
            for blocker in report.blockers:
                print(blocker)
    """

    def __init__(self, graphs: GraphCollection):
        all_data = [node.data for node in graphs.all_nodes()]
        api_tab = [node.data for node in graphs.tab("api").nodes]
        functions_tab = [node.data for node in graphs.tab("functions").nodes]

        self.apis = [d for d in all_data if isinstance(d, ApiBinding)]
        self.functions = [d for d in all_data if isinstance(d, ProcessDefinition)]
        self.api_functions = [d for d in api_tab if isinstance(d, ProcessDefinition)]
        self.business_functions = [d for d in functions_tab if isinstance(d, ProcessDefinition)]
        self.data = [d for d in all_data if isinstance(d, DatabaseBlock)]
        self.infra = [d for d in all_data if isinstance(d, InfraBlock)]
        self.queues = [d for d in all_data if isinstance(d, QueueBlock)]
        self.boundaries = [d for d in all_data if isinstance(d, ServiceBoundaryBlock)]
        self.compute = [d for d in self.infra if d.is_compute]

        self.function_ids = {fn.id for fn in self.functions}
        self.business_function_ids = {fn.id for fn in self.business_functions}
        self.data_ids = {db.id for db in self.data}
        self.api_ids = {api.id for api in self.apis}
        self.compute_ids = {infra.id for infra in self.compute}
        self.runtime_resource_ids = (
            {infra.id for infra in self.infra}
            | {queue.id for queue in self.queues}
            | self.api_ids
        )

        # Filled by _check_boundaries; reset on every analyze()
        self.api_owner: Dict[str, str] = {}
        self.function_owner: Dict[str, str] = {}
        self.data_owner: Dict[str, str] = {}

    def analyze(self) -> DesignSystemReport:
        for owners in (self.api_owner, self.function_owner, self.data_owner):
            owners.clear()

        runtime_issues: List[ArchitectureIssue] = []
        runtime_issues.extend(self._check_api_bindings())
        runtime_issues.extend(self._check_api_function_imports())
        runtime_issues.extend(self._check_function_dependencies())
        runtime_issues.extend(self._check_compute_hosting())

        service_issues: List[ArchitectureIssue] = []
        service_issues.extend(self._check_boundaries())
        service_issues.extend(self._check_unowned())
        service_issues.extend(self._check_cross_service_refs())

        has_errors = any(
            i.severity == ValidationSeverity.ERROR for i in runtime_issues + service_issues
        )
        has_apis = bool(self.apis)
        all_apis_bound = has_apis and all(
            api.process_ref.strip() in self.function_ids for api in self.apis
        )
        has_business_functions = bool(self.business_functions)
        has_data = bool(self.data)
        has_infra = bool(self.infra)
        has_compute = bool(self.compute)
        services_assigned = (
            bool(self.boundaries)
            and all(api.id in self.api_owner for api in self.apis)
            and all(fn.id in self.function_owner for fn in self.functions)
            and all(db.id in self.data_owner for db in self.data)
        )

        ready = (
            not has_errors
            and has_apis
            and all_apis_bound
            and has_business_functions
            and has_data
            and has_infra
            and has_compute
            and services_assigned
        )

        stages = [
            WorkflowStage(
                id="create_api",
                title="1. Create API",
                status="complete" if has_apis else "incomplete",
                detail="API contracts are defined" if has_apis else "Add at least one API block",
            ),
            WorkflowStage(
                id="attach_function",
                title="2. Attach Function",
                status="complete" if all_apis_bound else ("blocked" if has_apis else "incomplete"),
                detail=(
                    "All APIs are bound to function blocks"
                    if all_apis_bound
                    else "Each API must reference a function block"
                ),
            ),
            WorkflowStage(
                id="define_function_logic",
                title="3. Define Function Logic",
                status="complete" if has_business_functions else "incomplete",
                detail=(
                    "Business functions exist in Functions tab"
                    if has_business_functions
                    else "Add business logic functions in the Functions tab"
                ),
            ),
            WorkflowStage(
                id="define_database",
                title="4. Define Database",
                status="complete" if has_data else "incomplete",
                detail="Data models are defined" if has_data else "Add database models",
            ),
            WorkflowStage(
                id="configure_infra",
                title="5. Configure Infrastructure",
                status=(
                    "complete" if has_infra and has_compute
                    else "blocked" if has_infra
                    else "incomplete"
                ),
                detail=(
                    "Infrastructure and compute hosts are configured"
                    if has_infra and has_compute
                    else "Configure infra and at least one compute host"
                ),
            ),
            WorkflowStage(
                id="assign_services",
                title="6. Assign Services",
                status="complete" if services_assigned else "blocked",
                detail=(
                    "Service ownership and compute assignments are valid"
                    if services_assigned
                    else "Assign API/functions/data to service boundaries and bind compute"
                ),
            ),
            WorkflowStage(
                id="deploy",
                title="7. Deploy",
                status="complete" if ready else "blocked",
                detail=(
                    "All dependency and ownership checks passed"
                    if ready
                    else "Resolve blocking validation issues before deploy"
                ),
            ),
        ]

        services = [
            ServiceSummary(
                id=boundary.id,
                label=_name(boundary),
                api_count=len(boundary.api_refs),
                function_count=len(boundary.function_refs),
                data_count=len(boundary.data_refs),
                compute_ref=boundary.compute_ref,
            )
            for boundary in self.boundaries
        ]

        layer_counts = {
            "api": len(self.apis),
            "functional": len(self.functions),
            "data": len(self.data),
            "infra": len(self.infra) + len(self.queues),
            "serviceBoundaries": len(self.boundaries),
        }

        return DesignSystemReport(
            layer_counts=layer_counts,
            runtime_issues=runtime_issues,
            stages=stages,
            services=services,
            service_issues=service_issues,
            ready=ready,
        )

    # ---- runtime dependencies ----

    def _check_api_bindings(self) -> List[ArchitectureIssue]:
        issues = []
        for api in self.apis:
            process_ref = api.process_ref.strip()
            if not process_ref:
                issues.append(_error(
                    "api.unbound_function",
                    f'API "{_name(api)}" is not bound to a function block',
                    [api.id],
                ))
            elif process_ref not in self.function_ids:
                issues.append(_error(
                    "api.invalid_function_ref",
                    f'API "{_name(api)}" points to missing function "{process_ref}"',
                    [api.id, process_ref],
                ))
        return issues

    def _check_api_function_imports(self) -> List[ArchitectureIssue]:
        issues = []
        for fn in self.api_functions:
            imports = [
                step.ref.strip()
                for step in fn.steps
                if step.kind == "ref" and step.ref and step.ref.strip()
            ]
            if not imports:
                issues.append(_error(
                    "api.function.no_imports",
                    f'API function "{_name(fn)}" has no imported business functions',
                    [fn.id],
                ))
                continue

            for ref in imports:
                if ref not in self.business_function_ids:
                    issues.append(_error(
                        "api.function.missing_import",
                        f'API function "{_name(fn)}" imports unknown function "{ref}"',
                        [fn.id, ref],
                    ))
        return issues

    def _check_function_dependencies(self) -> List[ArchitectureIssue]:
        issues = []
        for fn in self.business_functions:
            for step in fn.steps:
                ref = (step.ref or "").strip()
                if not ref:
                    continue
                if step.kind == "db_operation" and ref not in self.data_ids:
                    issues.append(_error(
                        "function.unresolved_data_dependency",
                        f'Function "{_name(fn)}" references missing data model "{ref}"',
                        [fn.id, ref],
                    ))
                if step.kind == "external_call" and ref not in self.runtime_resource_ids:
                    issues.append(_error(
                        "function.unresolved_infra_dependency",
                        f'Function "{_name(fn)}" references missing infra resource "{ref}"',
                        [fn.id, ref],
                    ))
        return issues

    def _check_compute_hosting(self) -> List[ArchitectureIssue]:
        if self.data and not self.compute:
            return [_error(
                "data.no_compute_host",
                "Data layer exists but no compute infrastructure host is configured",
                [db.id for db in self.data],
            )]
        return []

    # ---- service ownership ----

    def _claim(
        self,
        boundary: ServiceBoundaryBlock,
        refs: List[str],
        known_ids: set,
        owners: Dict[str, str],
        resource: str,
    ) -> List[ArchitectureIssue]:
        issues = []
        noun = {"api": "API", "function": "function", "data": "data model"}[resource]
        for ref in refs:
            if ref not in known_ids:
                issues.append(_error(
                    f"service.{resource}_missing",
                    f'Service "{_name(boundary)}" references missing {noun} "{ref}"',
                    [boundary.id, ref],
                ))
                continue

            existing = owners.get(ref)
            if existing and existing != boundary.id:
                if resource == "data":
                    message = f'Direct DB sharing is disallowed: "{ref}" belongs to multiple services'
                else:
                    message = (
                        f'{noun[0].upper()}{noun[1:]} "{ref}" is shared across services '
                        f"({existing}, {boundary.id})"
                    )
                issues.append(_error(
                    f"service.{resource}_shared", message, [ref, existing, boundary.id]
                ))
            else:
                owners[ref] = boundary.id
        return issues

    def _check_boundaries(self) -> List[ArchitectureIssue]:
        issues = []
        for boundary in self.boundaries:
            if boundary.communication.allow_direct_db_access:
                issues.append(_error(
                    "service.direct_db_disallowed",
                    f'Service "{_name(boundary)}" enables direct DB sharing, which is '
                    "disallowed. Use API, queue, or event bus communication.",
                    [boundary.id],
                ))

            if not boundary.compute_ref or boundary.compute_ref not in self.compute_ids:
                issues.append(_error(
                    "service.compute_missing",
                    f'Service "{_name(boundary)}" must bind to a valid compute resource',
                    [ref for ref in (boundary.id, boundary.compute_ref) if ref],
                ))

            issues.extend(self._claim(boundary, boundary.api_refs, self.api_ids, self.api_owner, "api"))
            issues.extend(self._claim(
                boundary, boundary.function_refs, self.function_ids, self.function_owner, "function"
            ))
            issues.extend(self._claim(boundary, boundary.data_refs, self.data_ids, self.data_owner, "data"))
        return issues

    def _check_unowned(self) -> List[ArchitectureIssue]:
        if not self.boundaries:
            return [_error(
                "service.none_defined",
                "At least one Service Boundary is required before deploy",
            )]

        issues = []
        for api in self.apis:
            if api.id not in self.api_owner:
                issues.append(_error(
                    "service.api_unowned",
                    f'API "{_name(api)}" is not assigned to any service',
                    [api.id],
                ))
        for fn in self.functions:
            if fn.id not in self.function_owner:
                issues.append(_error(
                    "service.function_unowned",
                    f'Function "{_name(fn)}" is not assigned to any service',
                    [fn.id],
                ))
        for db in self.data:
            if db.id not in self.data_owner:
                issues.append(_error(
                    "service.data_unowned",
                    f'Data model "{_name(db)}" is not assigned to any service',
                    [db.id],
                ))
        return issues

    def _check_cross_service_refs(self) -> List[ArchitectureIssue]:
        issues = []
        for fn in self.functions:
            source = self.function_owner.get(fn.id)
            if not source:
                continue
            for step in fn.steps:
                if step.kind != "ref" or not step.ref:
                    continue
                target = self.function_owner.get(step.ref)
                if target and target != source:
                    issues.append(_error(
                        "service.cross_function_ref",
                        f"Cross-service direct function access is disallowed ({source} -> {target}). "
                        "Use API, queue, or event bus communication.",
                        [fn.id, step.ref, source, target],
                    ))
        return issues


def analyze_design_system(graphs: GraphCollection) -> DesignSystemReport:
    """Convenience function to analyze a graph snapshot."""
    return ArchitectureAnalyzer(graphs).analyze()
