"""
Domain models — Pydantic types and report values for the rotator.

    from keyrotate.core.models import CIProject, RotationConfig, Receipt, RunReport
"""

from keyrotate.core.models.action import Action, Receipt
from keyrotate.core.models.config import (
    PlatformCredentials,
    RotationConfig,
    SubstitutionRule,
)
from keyrotate.core.models.project import CIProject, ProjectPage
from keyrotate.core.models.report import ProjectOutcome, RunReport, StepResult

__all__ = [
    "Action",
    "CIProject",
    "PlatformCredentials",
    "ProjectOutcome",
    "ProjectPage",
    "Receipt",
    "RotationConfig",
    "RunReport",
    "StepResult",
    "SubstitutionRule",
]
