"""Sprint phase and status enums with transition validation.

Pure domain logic with no external dependencies.
"""
from dataclasses import dataclass
from enum import StrEnum


class SprintPhase(StrEnum):
    """Position of a sprint in the fixed workflow sequence."""

    INITIALIZATION = "initialization"
    AGENT_ANALYSIS = "agent_analysis"
    RESEARCH_COLLECTION = "research_collection"
    RESEARCH_ANALYSIS = "research_analysis"
    DECISION_MAKING = "decision_making"
    HYPOTHESIS_GENERATION = "hypothesis_generation"


class SprintStatus(StrEnum):
    """Sprint lifecycle status, orthogonal to phase."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


# Each phase has exactly one successor; nothing moves backward.
PHASE_TRANSITIONS: dict[SprintPhase, tuple[SprintPhase, ...]] = {
    SprintPhase.INITIALIZATION: (SprintPhase.AGENT_ANALYSIS,),
    SprintPhase.AGENT_ANALYSIS: (SprintPhase.RESEARCH_COLLECTION,),
    SprintPhase.RESEARCH_COLLECTION: (SprintPhase.RESEARCH_ANALYSIS,),
    SprintPhase.RESEARCH_ANALYSIS: (SprintPhase.DECISION_MAKING,),
    SprintPhase.DECISION_MAKING: (SprintPhase.HYPOTHESIS_GENERATION,),
    SprintPhase.HYPOTHESIS_GENERATION: (),  # Terminal phase
}

STATUS_TRANSITIONS: dict[SprintStatus, tuple[SprintStatus, ...]] = {
    SprintStatus.RUNNING: (SprintStatus.COMPLETED, SprintStatus.ERROR),
    SprintStatus.COMPLETED: (),
    SprintStatus.ERROR: (),
}

PHASE_ORDER: tuple[SprintPhase, ...] = tuple(SprintPhase)


@dataclass
class TransitionResult:
    """Result of a transition attempt."""

    allowed: bool
    reason: str = ""


def validate_phase_transition(
    current_phase: SprintPhase,
    target_phase: SprintPhase,
    current_status: SprintStatus,
) -> TransitionResult:
    """Validate whether a sprint may move from current_phase to target_phase.

    Pure function -- no side effects.

    Rules:
        - Only running sprints change phase (completed and error are terminal)
        - The target must be the listed successor of the current phase
    """
    if current_status != SprintStatus.RUNNING:
        return TransitionResult(False, f"Sprint is {current_status.value}; phase is frozen")

    if target_phase == current_phase:
        return TransitionResult(False, f"Sprint is already in phase {current_phase.value}")

    if target_phase not in PHASE_TRANSITIONS[current_phase]:
        return TransitionResult(
            False,
            f"Cannot move from {current_phase.value} to {target_phase.value}",
        )

    return TransitionResult(True)


def validate_status_transition(current: SprintStatus, target: SprintStatus) -> TransitionResult:
    """Validate a status change: running -> completed | error, nothing else."""
    if target not in STATUS_TRANSITIONS[current]:
        return TransitionResult(False, f"Cannot change status from {current.value} to {target.value}")
    return TransitionResult(True)


def is_before(phase: SprintPhase, other: SprintPhase) -> bool:
    """True when phase comes strictly earlier than other in the workflow."""
    return PHASE_ORDER.index(phase) < PHASE_ORDER.index(other)
