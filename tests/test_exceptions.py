"""Tests for exception hierarchy."""

from __future__ import annotations

from uuid import UUID

import pytest

from litestar_automation import exceptions
from litestar_automation.exceptions import (
    AutomationError,
    CategoryNotFoundError,
    ExecutionFailedError,
    ExecutionNotFoundError,
    ExecutionTimeoutError,
    InvalidExecutionStateError,
    NotFoundError,
    RetryLimitExceededError,
    RuleNotFoundError,
    RuleValidationError,
    StatusNotFoundError,
    TransitionNotFoundError,
    ValidationError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

EXECUTION_ID = UUID("00000000-0000-0000-0000-000000000001")


@pytest.mark.unit
class TestHierarchy:
    """Tests for the shape of the exception tree."""

    @pytest.mark.parametrize("name", exceptions.__all__)
    def test_everything_is_an_automation_error(self, name: str) -> None:
        assert issubclass(getattr(exceptions, name), AutomationError)

    @pytest.mark.parametrize(
        "error_class",
        [
            WorkflowNotFoundError,
            ExecutionNotFoundError,
            RuleNotFoundError,
            StatusNotFoundError,
            CategoryNotFoundError,
            TransitionNotFoundError,
        ],
    )
    def test_lookup_errors_share_a_base(self, error_class: type[AutomationError]) -> None:
        assert issubclass(error_class, NotFoundError)

    def test_validation_errors_share_a_base(self) -> None:
        assert issubclass(WorkflowValidationError, ValidationError)
        assert issubclass(RuleValidationError, ValidationError)

    def test_catchable_through_base(self) -> None:
        with pytest.raises(AutomationError, match="not found or not active"):
            raise WorkflowNotFoundError("wf-1")


@pytest.mark.unit
class TestNotFoundErrors:
    """Tests for lookup error messages and attributes."""

    def test_workflow_not_found(self) -> None:
        error = WorkflowNotFoundError("wf-1")

        assert str(error) == "Workflow 'wf-1' not found or not active"
        assert error.workflow_id == "wf-1"

    def test_execution_not_found(self) -> None:
        assert str(ExecutionNotFoundError(EXECUTION_ID)) == f"Execution '{EXECUTION_ID}' not found"

    def test_rule_not_found(self) -> None:
        error = RuleNotFoundError("rule-1")

        assert str(error) == "Rule 'rule-1' not found"
        assert error.rule_id == "rule-1"

    def test_status_not_found_without_project(self) -> None:
        assert str(StatusNotFoundError("Done")) == "Status 'Done' not found"

    def test_status_not_found_in_project(self) -> None:
        error = StatusNotFoundError("Done", project_id="proj-1")

        assert str(error) == "Status 'Done' not found in project 'proj-1'"
        assert error.project_id == "proj-1"

    def test_category_not_found(self) -> None:
        error = CategoryNotFoundError("blocked")

        assert str(error) == "Invalid category key 'blocked'"
        assert error.key == "blocked"

    def test_transition_not_found(self) -> None:
        assert str(TransitionNotFoundError("t-1")) == "Transition 't-1' not found"


@pytest.mark.unit
class TestValidationErrors:
    """Tests for validation error formatting."""

    def test_generic_validation_error(self) -> None:
        error = ValidationError(["name is required"])

        assert str(error) == "Validation failed: name is required"
        assert error.errors == ["name is required"]

    def test_workflow_validation_joins_errors(self) -> None:
        error = WorkflowValidationError(["a", "b"])

        assert str(error) == "Workflow validation failed: a; b"
        assert error.errors == ["a", "b"]

    def test_rule_validation(self) -> None:
        assert str(RuleValidationError(["Rule name is required"])) == "Rule validation failed: Rule name is required"


@pytest.mark.unit
class TestExecutionErrors:
    """Tests for execution lifecycle errors."""

    def test_failed_with_error(self) -> None:
        error = ExecutionFailedError(EXECUTION_ID, "boom")

        assert str(error) == f"Execution '{EXECUTION_ID}' failed: boom"
        assert error.error == "boom"

    def test_failed_without_error(self) -> None:
        assert str(ExecutionFailedError("exec-1")) == "Execution 'exec-1' failed"

    def test_timeout_without_execution(self) -> None:
        error = ExecutionTimeoutError(5.0)

        assert str(error) == "Execution exceeded 5s timeout"
        assert error.execution_id is None
        assert error.timeout == 5.0

    def test_timeout_with_execution(self) -> None:
        assert str(ExecutionTimeoutError(2.5, "exec-1")) == "Execution 'exec-1' exceeded 2.5s timeout"

    def test_retry_limit(self) -> None:
        error = RetryLimitExceededError("exec-1", 3)

        assert str(error) == "Execution 'exec-1' reached its retry limit of 3"
        assert error.max_retries == 3

    def test_invalid_state(self) -> None:
        error = InvalidExecutionStateError("exec-1", "completed", "running")

        assert str(error) == "Execution 'exec-1' cannot move from 'completed' to 'running'"
        assert (error.from_status, error.to_status) == ("completed", "running")
