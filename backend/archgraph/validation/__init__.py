"""
Validation module for graph snapshots.
"""

from archgraph.validation.preflight import (
    PreflightResult,
    PreflightValidator,
    ValidationIssue,
    ValidationSeverity,
    validate_architecture,
)

from archgraph.validation.architecture import (
    ArchitectureAnalyzer,
    ArchitectureIssue,
    DesignSystemReport,
    analyze_design_system,
)
