"""Supply-chain stages, roles and the role-gated transition table.

A batch advances along ``STAGE_ORDER`` one step at a time. ``flagged`` is
not a stage: it is an overlay kept on the batch record so that resolving a
fraud flag leaves the batch exactly where it was.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    FARMER = "farmer"
    AGGREGATOR = "aggregator"
    PROCESSOR = "processor"
    DISTRIBUTOR = "distributor"
    ADMIN = "admin"
    CONSUMER = "consumer"


class Stage(str, Enum):
    UPLOADED = "uploaded"
    COLLECTED = "collected"
    CLEANING = "processing:cleaning"
    DRYING = "processing:drying"
    GRINDING = "processing:grinding"
    PACKAGING = "processing:packaging"
    ASSIGNED = "distribution:assigned"
    PICKED_UP = "distribution:picked-up"
    IN_TRANSIT = "distribution:in-transit"
    DELIVERED = "delivered"


class TransitionType(str, Enum):
    COLLECT = "collect"
    BEGIN_PROCESSING = "begin-processing"
    ADVANCE = "advance"
    COMPLETE = "complete"
    PICKUP = "pickup"
    TRANSIT = "transit"
    DELIVER = "deliver"
    FLAG = "flag"
    RESOLVE = "resolve"
    FALSE_ALARM = "false-alarm"


class MacroStage(str, Enum):
    FARMING = "Farming"
    COLLECTION = "Collection"
    PROCESSING = "Processing"
    DISTRIBUTION = "Distribution"
    RETAIL = "Retail"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)
MACRO_ORDER: tuple[MacroStage, ...] = tuple(MacroStage)
TERMINAL_STAGE = Stage.DELIVERED


@dataclass(frozen=True)
class Rule:
    role: Role
    target: Stage


TRANSITIONS: dict[Stage, dict[TransitionType, Rule]] = {
    Stage.UPLOADED: {TransitionType.COLLECT: Rule(Role.AGGREGATOR, Stage.COLLECTED)},
    Stage.COLLECTED: {TransitionType.BEGIN_PROCESSING: Rule(Role.PROCESSOR, Stage.CLEANING)},
    Stage.CLEANING: {TransitionType.ADVANCE: Rule(Role.PROCESSOR, Stage.DRYING)},
    Stage.DRYING: {TransitionType.ADVANCE: Rule(Role.PROCESSOR, Stage.GRINDING)},
    Stage.GRINDING: {TransitionType.ADVANCE: Rule(Role.PROCESSOR, Stage.PACKAGING)},
    Stage.PACKAGING: {TransitionType.COMPLETE: Rule(Role.PROCESSOR, Stage.ASSIGNED)},
    Stage.ASSIGNED: {TransitionType.PICKUP: Rule(Role.DISTRIBUTOR, Stage.PICKED_UP)},
    Stage.PICKED_UP: {TransitionType.TRANSIT: Rule(Role.DISTRIBUTOR, Stage.IN_TRANSIT)},
    Stage.IN_TRANSIT: {TransitionType.DELIVER: Rule(Role.DISTRIBUTOR, Stage.DELIVERED)},
    Stage.DELIVERED: {},
}

OVERLAY_TRANSITIONS = frozenset(
    {TransitionType.FLAG, TransitionType.RESOLVE, TransitionType.FALSE_ALARM}
)

# Hand-overs between parties, where a payment leg exists.
CUSTODY_TRANSFERS = frozenset(
    {TransitionType.COLLECT, TransitionType.BEGIN_PROCESSING, TransitionType.PICKUP}
)

# Transitions that close out the stage they leave rather than open the next one.
CLOSING_TRANSITIONS = frozenset({TransitionType.COMPLETE})

# Ledger category recorded next to the fine-grained transition.
EVENT_CATEGORY: dict[TransitionType, str] = {
    TransitionType.COLLECT: "collect",
    TransitionType.BEGIN_PROCESSING: "process-step",
    TransitionType.ADVANCE: "process-step",
    TransitionType.COMPLETE: "certify",
    TransitionType.PICKUP: "ship",
    TransitionType.TRANSIT: "ship",
    TransitionType.DELIVER: "deliver",
    TransitionType.FLAG: "flag-fraud",
    TransitionType.RESOLVE: "flag-fraud",
    TransitionType.FALSE_ALARM: "flag-fraud",
}


def role_for(transition: TransitionType) -> Role:
    if transition in OVERLAY_TRANSITIONS:
        return Role.ADMIN
    for rules in TRANSITIONS.values():
        rule = rules.get(transition)
        if rule is not None:
            return rule.role
    raise KeyError(transition)


def first_stage_for(role: Role) -> Stage | None:
    """Earliest stage at which ``role`` is the accountable actor."""
    for stage in STAGE_ORDER:
        if any(rule.role == role for rule in TRANSITIONS[stage].values()):
            return stage
    return None


def source_stage(transition: TransitionType, target: Stage) -> Stage | None:
    for stage, rules in TRANSITIONS.items():
        rule = rules.get(transition)
        if rule is not None and rule.target == target:
            return stage
    return None


def stage_index(stage: Stage) -> int:
    return STAGE_ORDER.index(stage)


def macro_stage_of(stage: Stage) -> MacroStage:
    if stage == Stage.UPLOADED:
        return MacroStage.FARMING
    if stage == Stage.COLLECTED:
        return MacroStage.COLLECTION
    if stage.value.startswith("processing:"):
        return MacroStage.PROCESSING
    if stage.value.startswith("distribution:"):
        return MacroStage.DISTRIBUTION
    return MacroStage.RETAIL
