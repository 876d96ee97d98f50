"""Transition tables for deal pipeline stages, SPAC status and SPAC phase."""
from __future__ import annotations

from typing import Any, Dict, FrozenSet, List

from spac_os.services.vocabulary import (
    SpacPhase,
    SpacStatus,
    TargetStage,
    parse_vocabulary,
    phase_index,
)

PIPELINE_ORDER: List[TargetStage] = [
    TargetStage.sourcing,
    TargetStage.initial_screening,
    TargetStage.deep_evaluation,
    TargetStage.negotiation,
    TargetStage.execution,
    TargetStage.closed,
]


class IllegalTransitionError(ValueError):
    def __init__(self, kind: str, from_state: Any, to_state: Any) -> None:
        from_value = getattr(from_state, "value", from_state)
        to_value = getattr(to_state, "value", to_state)
        super().__init__(f"Cannot move {kind} from {from_value} to {to_value}")
        self.kind = kind
        self.from_state = from_value
        self.to_state = to_value


def _build_stage_transitions() -> Dict[TargetStage, FrozenSet[TargetStage]]:
    table: Dict[TargetStage, FrozenSet[TargetStage]] = {}
    for index, stage in enumerate(PIPELINE_ORDER):
        if stage == TargetStage.closed:
            table[stage] = frozenset()
            continue
        table[stage] = frozenset(PIPELINE_ORDER[index + 1:]) | {TargetStage.passed}
    table[TargetStage.passed] = frozenset()
    return table


TARGET_STAGE_TRANSITIONS: Dict[TargetStage, FrozenSet[TargetStage]] = _build_stage_transitions()

SPAC_STATUS_TRANSITIONS: Dict[SpacStatus, FrozenSet[SpacStatus]] = {
    SpacStatus.draft: frozenset({SpacStatus.active, SpacStatus.liquidated}),
    SpacStatus.active: frozenset({SpacStatus.completed, SpacStatus.liquidated}),
    SpacStatus.completed: frozenset(),
    SpacStatus.liquidated: frozenset(),
}


def allowed_target_transitions(stage: Any) -> List[TargetStage]:
    current = parse_vocabulary(TargetStage, stage)
    return [candidate for candidate in TargetStage if candidate in TARGET_STAGE_TRANSITIONS[current]]


def allowed_status_transitions(status: Any) -> List[SpacStatus]:
    current = parse_vocabulary(SpacStatus, status)
    return [candidate for candidate in SpacStatus if candidate in SPAC_STATUS_TRANSITIONS[current]]


def validate_stage_transition(current: Any, requested: Any) -> TargetStage:
    """Return the requested stage if the move is legal; same-stage moves are no-ops."""
    from_stage = parse_vocabulary(TargetStage, current)
    to_stage = parse_vocabulary(TargetStage, requested)
    if from_stage == to_stage:
        return to_stage
    if to_stage not in TARGET_STAGE_TRANSITIONS[from_stage]:
        raise IllegalTransitionError("target stage", from_stage, to_stage)
    return to_stage


def validate_status_transition(current: Any, requested: Any) -> SpacStatus:
    from_status = parse_vocabulary(SpacStatus, current)
    to_status = parse_vocabulary(SpacStatus, requested)
    if from_status == to_status:
        return to_status
    if to_status not in SPAC_STATUS_TRANSITIONS[from_status]:
        raise IllegalTransitionError("SPAC status", from_status, to_status)
    return to_status


def validate_phase_advance(current: Any, requested: Any) -> SpacPhase:
    """Phases only move forward through the lifecycle order."""
    to_phase = parse_vocabulary(SpacPhase, requested)
    if current is None:
        return to_phase
    if phase_index(to_phase) < phase_index(current):
        raise IllegalTransitionError("SPAC phase", parse_vocabulary(SpacPhase, current), to_phase)
    return to_phase


def is_terminal_stage(stage: Any) -> bool:
    return not TARGET_STAGE_TRANSITIONS[parse_vocabulary(TargetStage, stage)]
