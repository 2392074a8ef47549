"""Exception hierarchy for litestar-automation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "AutomationError",
    "CategoryNotFoundError",
    "ExecutionFailedError",
    "ExecutionNotFoundError",
    "ExecutionTimeoutError",
    "InvalidExecutionStateError",
    "NotFoundError",
    "RetryLimitExceededError",
    "RuleNotFoundError",
    "RuleValidationError",
    "StatusNotFoundError",
    "TransitionNotFoundError",
    "ValidationError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
)


class AutomationError(Exception):
    """Base exception for all litestar-automation errors.

    All exceptions raised by litestar-automation inherit from this class,
    so callers can catch every automation error with a single except clause.
    """


class NotFoundError(AutomationError):
    """Base exception for lookups that did not resolve to a stored record."""


class WorkflowNotFoundError(NotFoundError):
    """Raised when an active workflow cannot be found.

    Attributes:
        workflow_id: The ID of the workflow that was not found.
    """

    def __init__(self, workflow_id: str | UUID) -> None:
        """Initialize the exception with workflow details.

        Args:
            workflow_id: The ID of the workflow that was not found.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found or not active")


class ExecutionNotFoundError(NotFoundError):
    """Raised when a workflow execution record does not exist.

    Attributes:
        execution_id: The ID of the execution that was not found.
    """

    def __init__(self, execution_id: str | UUID) -> None:
        """Initialize the exception with execution details.

        Args:
            execution_id: The ID of the execution that was not found.
        """
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' not found")


class RuleNotFoundError(NotFoundError):
    """Raised when an automation rule is missing or not owned by the caller.

    Ownership-scoped operations raise this error for rules created by another
    user, so the existence of foreign rules is not disclosed.

    Attributes:
        rule_id: The ID of the rule that was not found.
    """

    def __init__(self, rule_id: str | UUID) -> None:
        """Initialize the exception with rule details.

        Args:
            rule_id: The ID of the rule that was not found.
        """
        self.rule_id = rule_id
        super().__init__(f"Rule '{rule_id}' not found")


class StatusNotFoundError(NotFoundError):
    """Raised when a workflow status cannot be resolved.

    Attributes:
        status: The name or ID of the status that was not found.
        project_id: The project the lookup was scoped to, if any.
    """

    def __init__(self, status: str | UUID, project_id: str | None = None) -> None:
        """Initialize the exception with status details.

        Args:
            status: The name or ID of the status that was not found.
            project_id: The project the lookup was scoped to, if any.
        """
        self.status = status
        self.project_id = project_id
        msg = f"Status '{status}' not found"
        if project_id:
            msg += f" in project '{project_id}'"
        super().__init__(msg)


class CategoryNotFoundError(NotFoundError):
    """Raised when a status category key is not one of the seeded categories.

    Attributes:
        key: The category key that was requested.
    """

    def __init__(self, key: str) -> None:
        """Initialize the exception with category details.

        Args:
            key: The category key that was requested.
        """
        self.key = key
        super().__init__(f"Invalid category key '{key}'")


class TransitionNotFoundError(NotFoundError):
    """Raised when a transition rule does not exist.

    Attributes:
        transition_id: The ID of the transition that was not found.
    """

    def __init__(self, transition_id: str | UUID) -> None:
        """Initialize the exception with transition details.

        Args:
            transition_id: The ID of the transition that was not found.
        """
        self.transition_id = transition_id
        super().__init__(f"Transition '{transition_id}' not found")


class ValidationError(AutomationError):
    """Base exception for malformed definitions and rules.

    Attributes:
        errors: List of validation error messages.
    """

    subject = "Validation"

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"{self.subject} failed: {'; '.join(errors)}")


class WorkflowValidationError(ValidationError):
    """Raised when a workflow definition fails structural validation."""

    subject = "Workflow validation"


class RuleValidationError(ValidationError):
    """Raised when an automation rule payload is malformed."""

    subject = "Rule validation"


class ExecutionFailedError(AutomationError):
    """Raised when a workflow execution ends in failure.

    The failure is persisted on the execution record before this error is
    raised, so the execution can be inspected and retried.

    Attributes:
        execution_id: The ID of the failed execution.
        error: The error message captured from the executor.
    """

    def __init__(self, execution_id: str | UUID, error: str | None = None) -> None:
        """Initialize the exception with failure details.

        Args:
            execution_id: The ID of the failed execution.
            error: The error message captured from the executor.
        """
        self.execution_id = execution_id
        self.error = error
        msg = f"Execution '{execution_id}' failed"
        if error:
            msg += f": {error}"
        super().__init__(msg)


class ExecutionTimeoutError(AutomationError):
    """Raised when a workflow run exceeds its wall-clock budget.

    Attributes:
        timeout: The timeout in seconds that was exceeded.
        execution_id: The ID of the timed out execution, when one was persisted.
    """

    def __init__(self, timeout: float, execution_id: str | UUID | None = None) -> None:
        """Initialize the exception with timeout details.

        Args:
            timeout: The timeout in seconds that was exceeded.
            execution_id: The ID of the timed out execution, when one was persisted.
        """
        self.timeout = timeout
        self.execution_id = execution_id
        msg = f"Execution exceeded {timeout:g}s timeout"
        if execution_id:
            msg = f"Execution '{execution_id}' exceeded {timeout:g}s timeout"
        super().__init__(msg)


class RetryLimitExceededError(AutomationError):
    """Raised when an execution has used up all of its retries.

    Attributes:
        execution_id: The ID of the execution.
        max_retries: The configured retry limit.
    """

    def __init__(self, execution_id: str | UUID, max_retries: int) -> None:
        """Initialize the exception with retry details.

        Args:
            execution_id: The ID of the execution.
            max_retries: The configured retry limit.
        """
        self.execution_id = execution_id
        self.max_retries = max_retries
        super().__init__(f"Execution '{execution_id}' reached its retry limit of {max_retries}")


class InvalidExecutionStateError(AutomationError):
    """Raised when an execution status change would not be monotonic.

    Attributes:
        execution_id: The ID of the execution.
        from_status: The current status of the execution.
        to_status: The requested status.
    """

    def __init__(self, execution_id: str | UUID, from_status: str, to_status: str) -> None:
        """Initialize the exception with status details.

        Args:
            execution_id: The ID of the execution.
            from_status: The current status of the execution.
            to_status: The requested status.
        """
        self.execution_id = execution_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Execution '{execution_id}' cannot move from '{from_status}' to '{to_status}'")
