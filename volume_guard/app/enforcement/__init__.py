"""Enforcement of abuse decisions against the control plane."""

from .workflow import (
    DriftLedger,
    EnforcementOptions,
    EnforcementOutcome,
    EnforcementState,
    EnforcementWorkflow,
    PowerController,
    ReportNotifier,
)

__all__ = [
    "DriftLedger",
    "EnforcementOptions",
    "EnforcementOutcome",
    "EnforcementState",
    "EnforcementWorkflow",
    "PowerController",
    "ReportNotifier",
]
