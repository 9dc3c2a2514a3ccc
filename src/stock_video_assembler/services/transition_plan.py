"""Transition plan construction for merging normalized clips.

A plan is a structured description of how N ordered clips are combined:
- passthrough: a single clip is copied unchanged
- concat: one flat concatenation node over all clips (style ``none``)
- chain: N-1 pairwise transition nodes chained left to right

The plan is plain data. The transcoder turns it into filter syntax.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from ..errors import TransitionPlanError
from ..models import NO_TRANSITION, TRANSITION_KINDS, TRANSITION_STYLES

DEFAULT_TRANSITION_DURATION = 0.5


class PlanKind(Enum):
    """Shape of a transition plan."""
    PASSTHROUGH = "passthrough"
    CONCAT = "concat"
    CHAIN = "chain"


@dataclass(frozen=True)
class ClipInput:
    """Reference to a source clip by its position in the merge order."""
    index: int


@dataclass(frozen=True)
class NodeOutput:
    """Reference to the intermediate result of an earlier transition node."""
    index: int


PlanInput = Union[ClipInput, NodeOutput]


@dataclass(frozen=True)
class TransitionNode:
    """One pairwise transition: ``left`` blends into ``right`` at ``offset``."""
    index: int
    left: PlanInput
    right: ClipInput
    kind: str
    duration: float
    offset: float


@dataclass(frozen=True)
class ConcatNode:
    """Flat concatenation of every clip, video and audio carried through."""
    inputs: Tuple[ClipInput, ...]
    video: bool = True
    audio: bool = True


@dataclass(frozen=True)
class TransitionPlan:
    """Ordered description of how normalized clips become one output."""
    kind: PlanKind
    style: str
    clip_durations: Tuple[float, ...]
    nodes: Tuple[TransitionNode, ...] = ()
    concat: Optional[ConcatNode] = None

    @property
    def clip_count(self) -> int:
        return len(self.clip_durations)

    @property
    def is_passthrough(self) -> bool:
        return self.kind == PlanKind.PASSTHROUGH

    @property
    def terminal(self) -> Optional[TransitionNode]:
        """Get the node whose output is the final video, if the plan is a chain."""
        return self.nodes[-1] if self.nodes else None

    @property
    def output_duration(self) -> float:
        """Expected length of the merged output in seconds."""
        total = sum(self.clip_durations)
        return total - sum(node.duration for node in self.nodes)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and inspection."""
        return {
            "kind": self.kind.value,
            "style": self.style,
            "clips": self.clip_count,
            "nodes": [
                {
                    "left": _describe(node.left),
                    "right": _describe(node.right),
                    "kind": node.kind,
                    "duration": node.duration,
                    "offset": node.offset,
                }
                for node in self.nodes
            ],
        }


def _describe(ref: PlanInput) -> str:
    if isinstance(ref, ClipInput):
        return f"clip{ref.index}"
    return f"r{ref.index}"


def transition_kind(style: str) -> str:
    """Map a transition style to the engine's transition name.

    Raises:
        TransitionPlanError: If the style is unknown or means no transition
    """
    try:
        return TRANSITION_KINDS[style]
    except KeyError:
        raise TransitionPlanError(
            f"Unknown transition style {style!r}; expected one of {', '.join(TRANSITION_STYLES)}"
        ) from None


def build_transition_plan(
    clip_durations: Sequence[float],
    style: str,
    transition_duration: float = DEFAULT_TRANSITION_DURATION,
) -> TransitionPlan:
    """
    Build the clip-chaining plan for ordered clips and a transition style.

    Args:
        clip_durations: Length in seconds of every clip, in timeline order
        style: Transition style (``none``, ``fade``, ``slide``, ``dissolve``, ``wipe``)
        transition_duration: Length of each transition in seconds

    Returns:
        TransitionPlan describing the merge

    Raises:
        TransitionPlanError: For an unknown style, an empty clip list, or a
            clip too short to hold the transition
    """
    durations = tuple(float(d) for d in clip_durations)
    if not durations:
        raise TransitionPlanError("Cannot build a transition plan without clips")
    kind = None if style == NO_TRANSITION else transition_kind(style)

    if len(durations) == 1:
        return TransitionPlan(kind=PlanKind.PASSTHROUGH, style=style, clip_durations=durations)

    if style == NO_TRANSITION:
        concat = ConcatNode(inputs=tuple(ClipInput(i) for i in range(len(durations))))
        return TransitionPlan(kind=PlanKind.CONCAT, style=style, clip_durations=durations, concat=concat)

    if transition_duration <= 0:
        raise TransitionPlanError("Transition duration must be positive")
    too_short = [i for i, d in enumerate(durations) if d <= transition_duration]
    if too_short:
        raise TransitionPlanError(
            f"Clips {too_short} are not longer than the {transition_duration}s transition"
        )

    nodes = []
    # Timeline length accumulated so far; each transition overlaps its two inputs.
    timeline = durations[0]
    for i in range(len(durations) - 1):
        left: PlanInput = ClipInput(0) if i == 0 else NodeOutput(i - 1)
        offset = round(timeline - transition_duration, 3)
        nodes.append(
            TransitionNode(
                index=i,
                left=left,
                right=ClipInput(i + 1),
                kind=kind,
                duration=transition_duration,
                offset=offset,
            )
        )
        timeline = timeline + durations[i + 1] - transition_duration

    return TransitionPlan(kind=PlanKind.CHAIN, style=style, clip_durations=durations, nodes=tuple(nodes))
