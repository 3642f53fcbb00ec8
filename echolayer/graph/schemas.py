"""Schema definitions for the propagation graph.

Nodes are identities (account + platform). Edges are propagation events and
are append-only: once recorded an edge never changes. Nodes and edges refer
to each other by string id only, so cycles in the graph are plain id-to-id
references.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from echolayer.errors import InputValidationError

InteractionType = Literal[
    "share", "repost", "quote", "mention", "link", "embed", "cross_post"
]

VALID_INTERACTION_TYPES = frozenset(
    {"share", "repost", "quote", "mention", "link", "embed", "cross_post"}
)


def make_node_id(account_id: str, platform: str) -> str:
    """Stable node id for an identity on a platform."""
    return f"{platform}:{account_id}"


@dataclass(frozen=True)
class NodeProfile:
    """Seed data from the identity collaborator.

    Attributes:
        influence_weight: Influence of the identity (0.0-1.0).
        reach: Audience size known for the identity.
        engagement_rate: Baseline engagement rate (0.0-1.0).
    """

    influence_weight: float
    reach: int = 0
    engagement_rate: float = 0.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.influence_weight <= 1.0:
            raise ValueError(
                f"influence_weight must be between 0.0 and 1.0, got {self.influence_weight}"
            )
        if self.reach < 0:
            raise ValueError(f"reach must be non-negative, got {self.reach}")
        if not 0.0 <= self.engagement_rate <= 1.0:
            raise ValueError(
                f"engagement_rate must be between 0.0 and 1.0, got {self.engagement_rate}"
            )


@dataclass
class PropagationNode:
    """An identity in the propagation graph.

    Attributes:
        account_id: Account identifier on the platform.
        platform: Platform the account lives on.
        influence_weight: Current influence (0.0-1.0).
        reach: Derived reach: seed reach plus distinct identities reached.
        engagement_rate: Derived engagement rate (0.0-1.0).
        seed: Latest seed profile from the identity collaborator.
        created_at: When the node was first referenced.
        updated_at: When derived metrics were last recomputed.
    """

    account_id: str
    platform: str
    influence_weight: float
    reach: int
    engagement_rate: float
    seed: NodeProfile
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def node_id(self) -> str:
        return make_node_id(self.account_id, self.platform)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PropagationNode):
            return NotImplemented
        return self.node_id == other.node_id

    def __hash__(self) -> int:
        return hash(self.node_id)


@dataclass(frozen=True)
class PropagationEvent:
    """A propagation reported by the platform collaborator.

    Attributes:
        event_id: Unique event identifier.
        content_id: Content item that was propagated.
        source_account: Identity that propagated the content.
        source_platform: Platform the propagation started on.
        target_account: Receiving identity, or None for a broadcast share.
        target_platform: Platform the content landed on.
        interaction_type: Kind of propagation.
        interaction_strength: Explicit strength; None uses the configured
            per-type default.
        timestamp: When the propagation happened.
        source_profile: Optional identity seed for the source.
        target_profile: Optional identity seed for the target.
    """

    event_id: str
    content_id: str
    source_account: str
    source_platform: str
    target_platform: str
    target_account: str | None = None
    interaction_type: InteractionType = "share"
    interaction_strength: float | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    source_profile: NodeProfile | None = None
    target_profile: NodeProfile | None = None

    def __post_init__(self) -> None:
        if self.interaction_type not in VALID_INTERACTION_TYPES:
            raise ValueError(
                f"Invalid interaction_type {self.interaction_type!r}. "
                f"Must be one of: {sorted(VALID_INTERACTION_TYPES)}"
            )
        if self.timestamp.tzinfo is None:
            object.__setattr__(
                self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc)
            )

    @property
    def source_node_id(self) -> str:
        return make_node_id(self.source_account, self.source_platform)

    @property
    def target_node_id(self) -> str | None:
        if self.target_account is None:
            return None
        return make_node_id(self.target_account, self.target_platform)

    @property
    def is_cross_platform(self) -> bool:
        return self.source_platform != self.target_platform


@dataclass(frozen=True)
class PropagationEdge:
    """An immutable, recorded propagation.

    Attributes:
        event_id: Id of the event that produced this edge.
        source: Source node id.
        target: Target node id, or None for a broadcast share.
        content_id: Content item that was propagated.
        source_platform: Platform the propagation started on.
        target_platform: Platform the content landed on.
        interaction_type: Kind of propagation.
        weight: Computed propagation weight (> 0).
        timestamp: When the propagation happened.
    """

    event_id: str
    source: str
    target: str | None
    content_id: str
    source_platform: str
    target_platform: str
    interaction_type: str
    weight: float
    timestamp: datetime

    def __post_init__(self) -> None:
        if self.weight <= 0.0:
            raise ValueError(f"edge weight must be positive, got {self.weight}")

    @property
    def platform_pair(self) -> tuple[str, str]:
        return (self.source_platform, self.target_platform)

    @property
    def is_cross_platform(self) -> bool:
        return self.source_platform != self.target_platform


@dataclass(frozen=True)
class ResonanceState:
    """Latest resonance reading for a content item.

    Attributes:
        content_id: Content item measured.
        loop_strength: Loop strength (0.0-1.0).
        reciprocity: Weight share of edges closing a short cycle.
        convergence: Share of nodes reached by two or more sources.
        freshness: Recency factor of the propagation activity.
        resonant: Whether loop_strength exceeded the threshold.
        period: UTC date the reading applies to.
        weighted_resonance: loop_strength scaled by the latest composite score.
        updated_at: Timestamp of the event that produced this reading.
    """

    content_id: str
    loop_strength: float
    reciprocity: float
    convergence: float
    freshness: float
    resonant: bool
    period: str
    weighted_resonance: float
    updated_at: datetime


@dataclass(frozen=True)
class PropagationOutcome:
    """Result of recording one propagation event."""

    edge: PropagationEdge
    source_node: PropagationNode
    target_node: PropagationNode | None
    resonance: ResonanceState
    newly_resonant: bool


def _parse_profile(payload: dict | None) -> NodeProfile | None:
    if payload is None:
        return None
    return NodeProfile(
        influence_weight=float(payload["influence_weight"]),
        reach=int(payload.get("reach", 0)),
        engagement_rate=float(payload.get("engagement_rate", 0.0)),
    )


def parse_propagation_event(payload: dict) -> PropagationEvent:
    """Build a PropagationEvent from a JSON-style dict.

    Raises:
        InputValidationError: Missing or malformed fields.
    """
    if not isinstance(payload, dict):
        raise InputValidationError(
            f"Propagation event must be an object, got {type(payload).__name__}"
        )
    try:
        timestamp = payload.get("timestamp")
        strength = payload.get("interaction_strength")
        kwargs = {
            "event_id": str(payload["event_id"]),
            "content_id": str(payload["content_id"]),
            "source_account": str(payload["source_account"]),
            "source_platform": str(payload["source_platform"]),
            "target_platform": str(
                payload.get("target_platform", payload["source_platform"])
            ),
            "target_account": payload.get("target_account"),
            "interaction_type": payload.get("interaction_type", "share"),
            "interaction_strength": float(strength) if strength is not None else None,
            "source_profile": _parse_profile(payload.get("source_profile")),
            "target_profile": _parse_profile(payload.get("target_profile")),
        }
        if timestamp is not None:
            kwargs["timestamp"] = (
                timestamp
                if isinstance(timestamp, datetime)
                else datetime.fromisoformat(timestamp)
            )
        return PropagationEvent(**kwargs)
    except (KeyError, TypeError, ValueError) as exc:
        raise InputValidationError(
            f"Invalid propagation event: {exc}",
            event_id=payload.get("event_id"),
        ) from exc
