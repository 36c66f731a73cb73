# sitegen/core/errors.py
"""
Failure classes raised by the generation pipeline.

Recoverable failures (malformed model JSON, lint violations) are absorbed by the
parse cascade and the repair loops; these exceptions only escape once the
corresponding bound is exhausted.
"""
from typing import Optional

from sitegen.models import LintIssue


class GenerationError(Exception):
    """Base class for terminal pipeline failures."""


class StructuralParseFailure(GenerationError):
    def __init__(self, message: str, excerpt: str = ""):
        super().__init__(message)
        self.excerpt = excerpt


class ProjectShapeError(StructuralParseFailure):
    """Parsed JSON does not describe a usable project (bad files array, no files, limits)."""


class SyntaxFailure(GenerationError):
    def __init__(self, issue: LintIssue):
        super().__init__(
            f"Generated code contains syntax errors. First issue: "
            f"{issue.path}:{issue.line}:{issue.column} {issue.message}"
        )
        self.issue = issue


class LintFailure(GenerationError):
    def __init__(self, issue: LintIssue, remaining: int = 1):
        super().__init__(
            f"Lint errors remain after repair ({remaining}). First issue: {issue.describe()}"
        )
        self.issue = issue
        self.remaining = remaining


class LintToolError(GenerationError):
    """The lint tool could not analyze a single file."""


class TransportFailure(GenerationError):
    """Status registry or network delivery failed."""


class ModelInvocationError(TransportFailure):
    """The generative model call failed or returned nothing."""


class StepFailed(GenerationError):
    def __init__(self, step: str, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(f"Step '{step}' failed after {attempts} attempt(s): {cause}")
        self.step = step
        self.attempts = attempts
        self.cause = cause


class CancellationSignal(Exception):
    """Raised at a checkpoint when the job was cancelled. Never retried."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} was cancelled")
        self.job_id = job_id
