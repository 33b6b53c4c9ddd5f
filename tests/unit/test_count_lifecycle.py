"""Tests for the count state machine and the workflow definition types."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from stock_kernel.domain.count_lifecycle import (
    COUNT_WORKFLOW,
    default_count_name,
    is_deletable,
    is_locked,
    require_transition,
)
from stock_kernel.domain.values import CountStatus, CountType
from stock_kernel.domain.workflow import Transition, Workflow
from stock_kernel.exceptions import InvalidCountTransitionError

FORWARD = [
    (CountStatus.DRAFT, CountStatus.IN_PROGRESS, "start"),
    (CountStatus.IN_PROGRESS, CountStatus.COMPLETED, "complete"),
    (CountStatus.COMPLETED, CountStatus.APPROVED, "approve"),
]


class TestCountWorkflow:
    @pytest.mark.parametrize("from_status, to_status, action", FORWARD)
    def test_forward_transitions(self, from_status, to_status, action):
        assert require_transition(uuid4(), from_status, to_status).action == action

    @pytest.mark.parametrize(
        "from_status, to_status",
        [
            (CountStatus.DRAFT, CountStatus.COMPLETED),
            (CountStatus.DRAFT, CountStatus.APPROVED),
            (CountStatus.IN_PROGRESS, CountStatus.APPROVED),
            (CountStatus.COMPLETED, CountStatus.IN_PROGRESS),
            (CountStatus.APPROVED, CountStatus.COMPLETED),
            (CountStatus.APPROVED, CountStatus.DRAFT),
            (CountStatus.IN_PROGRESS, CountStatus.IN_PROGRESS),
        ],
    )
    def test_other_moves_rejected(self, from_status, to_status):
        with pytest.raises(InvalidCountTransitionError) as exc_info:
            require_transition(uuid4(), from_status, to_status)
        assert exc_info.value.from_status == from_status.value
        assert exc_info.value.to_status == to_status.value

    def test_nothing_leaves_approved(self):
        approved = CountStatus.APPROVED.value
        assert COUNT_WORKFLOW.is_terminal(approved)
        assert not [t for t in COUNT_WORKFLOW.transitions if t.from_state == approved]

    def test_approval_requires_approval(self):
        transition = require_transition(uuid4(), CountStatus.COMPLETED, CountStatus.APPROVED)
        assert transition.requires_approval

    def test_locked_and_deletable(self):
        assert is_locked(CountStatus.APPROVED)
        assert not is_locked(CountStatus.COMPLETED)
        assert is_deletable(CountStatus.DRAFT)
        assert not is_deletable(CountStatus.IN_PROGRESS)

    def test_default_name(self):
        when = datetime(2024, 3, 9, 23, 0, tzinfo=UTC)
        assert default_count_name(CountType.SPOT, when) == "SPOT Count - 2024-03-09"


class TestWorkflowDefinition:
    def test_undeclared_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="A",
                states=("A",),
                transitions=(Transition("A", "B", action="go"),),
            )

    def test_terminal_state_cannot_have_outgoing_transition(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="A",
                states=("A", "B"),
                transitions=(Transition("B", "A", action="back"),),
                terminal_states=("B",),
            )
