"""Workflow policy: status derivation and transition guards, no I/O."""

from documents.services.policy.workflow_policy import WorkflowPolicy

__all__ = ["WorkflowPolicy"]
