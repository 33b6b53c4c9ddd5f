"""
Physical count lifecycle (``stock_kernel.domain.count_lifecycle``).

Responsibility:
    Declares the count state machine once, as data, and provides the single
    guarded transition check used by every status change -- the implicit
    DRAFT -> IN_PROGRESS move on first item submission included.

Architecture position:
    Kernel > Domain.  ZERO I/O.

Invariants enforced:
    - Forward-only: DRAFT -> IN_PROGRESS -> COMPLETED -> APPROVED.
    - APPROVED is terminal.
    - Only DRAFT counts are deletable.
"""

from datetime import datetime
from uuid import UUID

from stock_kernel.domain.values import CountStatus, CountType
from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.exceptions import InvalidCountTransitionError

HAS_COUNTED_ITEM = Guard(
    name="has_counted_item",
    description="First item submitted, or counter explicitly started the count",
)

APPROVER_HAS_MANAGE = Guard(
    name="approver_has_manage",
    description="Approver holds MANAGE access at the count's location",
)

COUNT_WORKFLOW = Workflow(
    name="inventory_count",
    description="Physical count from draft to approval",
    initial_state=CountStatus.DRAFT.value,
    states=tuple(s.value for s in CountStatus),
    transitions=(
        Transition(
            CountStatus.DRAFT.value,
            CountStatus.IN_PROGRESS.value,
            action="start",
            guard=HAS_COUNTED_ITEM,
        ),
        Transition(
            CountStatus.IN_PROGRESS.value,
            CountStatus.COMPLETED.value,
            action="complete",
        ),
        Transition(
            CountStatus.COMPLETED.value,
            CountStatus.APPROVED.value,
            action="approve",
            guard=APPROVER_HAS_MANAGE,
            requires_approval=True,
        ),
    ),
    terminal_states=(CountStatus.APPROVED.value,),
)


def require_transition(
    count_id: UUID,
    from_status: CountStatus,
    to_status: CountStatus,
) -> Transition:
    """
    Return the workflow transition for from -> to.

    Raises:
        InvalidCountTransitionError: the move is not in COUNT_WORKFLOW.
    """
    transition = COUNT_WORKFLOW.find_transition(
        CountStatus(from_status).value, CountStatus(to_status).value
    )
    if transition is None:
        raise InvalidCountTransitionError(
            str(count_id), CountStatus(from_status).value, CountStatus(to_status).value
        )
    return transition


def is_locked(status: CountStatus) -> bool:
    """APPROVED counts accept no further mutation."""
    return COUNT_WORKFLOW.is_terminal(CountStatus(status).value)


def is_deletable(status: CountStatus) -> bool:
    return CountStatus(status) == CountStatus.DRAFT


def default_count_name(count_type: CountType, when: datetime) -> str:
    """e.g. ``"FULL Count - 2024-01-01"``."""
    return f"{CountType(count_type).value} Count - {when.date().isoformat()}"
