"""
Conversation stage derivation.

The stage is not stored as a cursor that only moves forward: it is derived
again every turn from the intent, the booking-flow flag and the proposal
and confirmation flags on the context, so it may move backward (a rejected
confirmation returns to slot gathering).

Usage:
    stage = derive_stage(StageInputs(intent=IntentType.BOOK, in_booking_flow=True))
    record_stage(context, stage)
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from autobooker.schemas.conversation_schema import (
    ConversationContext,
    ConversationStage,
    IntentType,
)

logger = logging.getLogger(__name__)

BOOKING_FLOW_STAGES = frozenset({
    ConversationStage.SLOT_GATHERING,
    ConversationStage.SLOT_CONFIRMATION,
    ConversationStage.PROPOSAL_GENERATION,
})


@dataclass
class StageInputs:
    """Everything a stage decision depends on."""
    intent: Optional[IntentType] = None
    in_booking_flow: bool = False
    has_proposals: bool = False
    awaiting_confirmation: bool = False
    booking_requested: bool = False
    has_booking: bool = False

    @classmethod
    def from_context(
        cls,
        context: ConversationContext,
        in_booking_flow: bool,
    ) -> "StageInputs":
        return cls(
            intent=context.current_intent.type if context.current_intent else None,
            in_booking_flow=in_booking_flow,
            has_proposals=bool(context.proposed_slots),
            awaiting_confirmation=context.awaiting_confirmation,
            booking_requested=context.booking_requested,
            has_booking=context.booking_event_id is not None,
        )


@dataclass(frozen=True)
class StageRule:
    """A stage and the condition under which it applies."""
    stage: ConversationStage
    applies: Callable[[StageInputs], bool]


# First matching rule wins.
STAGE_RULES: list[StageRule] = [
    StageRule(ConversationStage.BOOKING_CONFIRMATION, lambda s: s.booking_requested),
    StageRule(ConversationStage.SLOT_CONFIRMATION, lambda s: s.awaiting_confirmation),
    StageRule(ConversationStage.PROPOSAL_GENERATION, lambda s: s.has_proposals),
    StageRule(ConversationStage.SLOT_GATHERING, lambda s: s.in_booking_flow),
    StageRule(ConversationStage.COMPLETION, lambda s: s.has_booking),
    StageRule(ConversationStage.GREETING, lambda s: s.intent == IntentType.GREETING),
]


def derive_stage(inputs: StageInputs) -> ConversationStage:
    """Pick the stage for the current turn."""
    for rule in STAGE_RULES:
        if rule.applies(inputs):
            return rule.stage
    return ConversationStage.INTENT_DETECTION


def record_stage(context: ConversationContext, stage: ConversationStage) -> None:
    """Set the context's stage and append it to the trace."""
    if stage != context.conversation_stage:
        logger.debug(
            "Stage %s -> %s", context.conversation_stage.value, stage.value
        )
    context.conversation_stage = stage
    context.stage_trace.append(stage)


def is_in_booking_flow(stage: ConversationStage) -> bool:
    """Whether a follow-up turn at this stage continues an active booking."""
    return stage in BOOKING_FLOW_STAGES
