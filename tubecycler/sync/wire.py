"""
Wire representation of SchedulerState.

Only scheduling metadata crosses the wire: the active lane, the cycle count,
a mutation timestamp, and per lane the ordered slot list. Content bodies are
never included.

Outgoing snapshots always use the canonical camelCase shape. Incoming data
may be in any of the shapes earlier clients persisted; each lane is parsed
into one variant of a tagged union and converted by that variant's own
``to_entries()``:

- ``slots``      canonical list of slot records
- ``positions``  explicit slot map ``{"0": {"stitchId": ...}, ...}``
- ``stitches``   ordered list with an embedded ``position`` field
- ``ids``        bare ordered id list (a JSON list or ``{"stitchIds": [...]}``)

Missing fields default to interval 1 and distractor tier 1.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Union

from loguru import logger
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from tubecycler.scheduling.intervals import normalize_interval
from tubecycler.scheduling.models import Lane, LaneId, SchedulerState, SlotEntry

# =============================================================================
# Field coercion
# =============================================================================


def parse_distractor_tier(value: Any) -> int:
    """Accept 1, "1", or the older "L1".."L3" labels; default tier 1."""
    if value is None or value == "":
        return 1
    if isinstance(value, str):
        text = value.strip().upper()
        if text.startswith("L"):
            text = text[1:]
        try:
            value = int(text)
        except ValueError:
            logger.warning("Unrecognized distractor tier {!r}; using 1", value)
            return 1
    try:
        tier = int(value)
    except (TypeError, ValueError):
        logger.warning("Unrecognized distractor tier {!r}; using 1", value)
        return 1
    return tier if tier >= 1 else 1


def parse_timestamp(value: Any) -> Any:
    """Epoch milliseconds (the older ``last_updated``) become aware datetimes."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)
    return value


def _anchor_at_zero(lane: int, entries: dict[int, SlotEntry]) -> dict[int, SlotEntry]:
    """Shift a layout down so its lowest slot is 0, keeping any gaps."""
    if not entries or 0 in entries:
        return entries
    offset = min(entries)
    logger.warning("Lane {} had no slot 0; shifting {} entries down by {}", lane, len(entries), offset)
    return {n - offset: entry for n, entry in entries.items()}


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# =============================================================================
# Canonical shape
# =============================================================================


class SlotWire(WireModel):
    slot: int = Field(ge=0)
    content_id: str
    repetition_interval: int = 1
    distractor_tier: int = 1
    perfect_completion_count: int = Field(default=0, ge=0)

    @field_validator("repetition_interval", mode="before")
    @classmethod
    def _interval(cls, value: Any) -> int:
        return normalize_interval(1 if value is None else value)

    @field_validator("distractor_tier", mode="before")
    @classmethod
    def _tier(cls, value: Any) -> int:
        return parse_distractor_tier(value)

    def to_entry(self) -> SlotEntry:
        return SlotEntry(
            content_id=self.content_id,
            repetition_interval=self.repetition_interval,
            distractor_tier=self.distractor_tier,
            perfect_completion_count=self.perfect_completion_count,
        )


class CanonicalLaneWire(WireModel):
    SHAPE: ClassVar[str] = "slots"

    active_content_id: str | None = None
    lane_source_id: str | None = None
    slots: list[SlotWire] = Field(default_factory=list)

    def to_entries(self, lane: int) -> dict[int, SlotEntry]:
        entries: dict[int, SlotEntry] = {}
        for record in sorted(self.slots, key=lambda s: s.slot):
            if record.slot in entries:
                logger.warning("Lane {}: duplicate slot {} in snapshot; keeping first", lane, record.slot)
                continue
            entries[record.slot] = record.to_entry()
        return _anchor_at_zero(lane, entries)


# =============================================================================
# Older shapes
# =============================================================================


class LegacyPosition(BaseModel):
    """A position record as the position-map and stitch-list clients wrote it."""

    model_config = ConfigDict(extra="ignore")

    content_id: str = Field(
        validation_alias=AliasChoices(
            "stitchId", "stitch_id", "contentId", "content_id", "id"
        )
    )
    repetition_interval: int = Field(
        default=1,
        validation_alias=AliasChoices(
            "skipNumber", "skip_number", "repetitionInterval", "repetition_interval"
        ),
    )
    distractor_tier: int = Field(
        default=1,
        validation_alias=AliasChoices(
            "distractorLevel", "distractor_level", "distractorTier", "distractor_tier"
        ),
    )
    perfect_completion_count: int = Field(
        default=0,
        validation_alias=AliasChoices("perfectCompletionCount", "perfect_completion_count"),
    )

    @field_validator("repetition_interval", mode="before")
    @classmethod
    def _interval(cls, value: Any) -> int:
        return normalize_interval(1 if value is None else value)

    @field_validator("distractor_tier", mode="before")
    @classmethod
    def _tier(cls, value: Any) -> int:
        return parse_distractor_tier(value)

    def to_entry(self) -> SlotEntry:
        return SlotEntry(
            content_id=self.content_id,
            repetition_interval=self.repetition_interval,
            distractor_tier=self.distractor_tier,
            perfect_completion_count=self.perfect_completion_count,
        )


_SOURCE_ALIASES = AliasChoices("laneSourceId", "lane_source_id", "threadId", "thread_id")


class SlotMapLaneWire(BaseModel):
    SHAPE: ClassVar[str] = "positions"
    model_config = ConfigDict(extra="ignore")

    lane_source_id: str | None = Field(default=None, validation_alias=_SOURCE_ALIASES)
    positions: dict[int, LegacyPosition] = Field(default_factory=dict)

    def to_entries(self, lane: int) -> dict[int, SlotEntry]:
        entries = {n: record.to_entry() for n, record in sorted(self.positions.items()) if n >= 0}
        return _anchor_at_zero(lane, entries)


class PositionedItem(LegacyPosition):
    position: int | None = Field(
        default=None, validation_alias=AliasChoices("position", "order_number", "orderNumber")
    )


class PositionedListLaneWire(BaseModel):
    SHAPE: ClassVar[str] = "stitches"
    model_config = ConfigDict(extra="ignore")

    lane_source_id: str | None = Field(default=None, validation_alias=_SOURCE_ALIASES)
    current_content_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("currentStitchId", "current_stitch_id", "activeContentId"),
    )
    stitches: list[PositionedItem] = Field(default_factory=list)

    def to_entries(self, lane: int) -> dict[int, SlotEntry]:
        """
        Sort by embedded position (missing positions last, input order kept),
        put the current item at slot 0 and number the rest from 1.
        """
        ordered = sorted(
            self.stitches,
            key=lambda item: item.position if item.position is not None else float("inf"),
        )
        if not ordered:
            return {}

        current_index = 0
        if self.current_content_id is not None:
            for index, item in enumerate(ordered):
                if item.content_id == self.current_content_id:
                    current_index = index
                    break
        head = ordered.pop(current_index)
        return {n: item.to_entry() for n, item in enumerate([head, *ordered])}


class BareIdListLaneWire(BaseModel):
    SHAPE: ClassVar[str] = "ids"
    model_config = ConfigDict(extra="ignore")

    lane_source_id: str | None = Field(default=None, validation_alias=_SOURCE_ALIASES)
    content_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("stitchIds", "stitch_ids", "contentIds", "content_ids", "ids"),
    )

    @model_validator(mode="before")
    @classmethod
    def _wrap_list(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"stitchIds": list(data)}
        return data

    def to_entries(self, lane: int) -> dict[int, SlotEntry]:
        return {n: SlotEntry(content_id=content_id) for n, content_id in enumerate(self.content_ids)}


_ID_LIST_KEYS = ("stitchIds", "stitch_ids", "contentIds", "content_ids", "ids")


def lane_shape(value: Any) -> str | None:
    """Discriminator for LaneWire; returns the tag of the matching variant."""
    shape = getattr(value, "SHAPE", None)
    if isinstance(value, BaseModel) and shape is not None:
        return shape
    if isinstance(value, (list, tuple)):
        return "ids"
    if isinstance(value, Mapping):
        if "slots" in value:
            return "slots"
        if "positions" in value:
            return "positions"
        if "stitches" in value:
            return "stitches"
        if any(key in value for key in _ID_LIST_KEYS):
            return "ids"
        return "slots"
    return None


LaneWire = Annotated[
    Union[
        Annotated[CanonicalLaneWire, Tag("slots")],
        Annotated[SlotMapLaneWire, Tag("positions")],
        Annotated[PositionedListLaneWire, Tag("stitches")],
        Annotated[BareIdListLaneWire, Tag("ids")],
    ],
    Discriminator(lane_shape),
]


# =============================================================================
# Whole-state wire
# =============================================================================


class SchedulerStateWire(WireModel):
    active_lane: int = Field(
        default=1,
        validation_alias=AliasChoices("activeLane", "active_lane", "activeTubeNumber", "activeTube"),
    )
    cycle_count: int = Field(default=0, ge=0)
    last_mutated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "lastMutatedAt", "last_mutated_at", "last_updated", "lastUpdated"
        ),
    )
    generation: int = 0
    lanes: dict[int, LaneWire] = Field(
        default_factory=dict, validation_alias=AliasChoices("lanes", "tubes")
    )

    @field_validator("active_lane", mode="before")
    @classmethod
    def _lane(cls, value: Any) -> int:
        return int(LaneId.parse(value))

    @field_validator("last_mutated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @field_validator("last_mutated_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        # Timezone-less stamps are taken as UTC so snapshots stay comparable.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("lanes", mode="before")
    @classmethod
    def _lanes(cls, value: Any) -> Any:
        # The state endpoint once sent lanes as [{"tube_id": 1, "stitches": [...]}, ...]
        if isinstance(value, (list, tuple)):
            keyed: dict[int, Any] = {}
            for index, item in enumerate(value, start=1):
                key = index
                if isinstance(item, Mapping):
                    key = item.get("tube_id", item.get("tubeId", item.get("laneId", index)))
                keyed[int(LaneId.parse(key))] = item
            return keyed
        if isinstance(value, Mapping):
            return {int(LaneId.parse(key)): lane for key, lane in value.items()}
        return value

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Conversions
# =============================================================================


def parse_wire(data: SchedulerStateWire | Mapping[str, Any] | str | bytes) -> SchedulerStateWire:
    """Validate any accepted input shape into a SchedulerStateWire."""
    if isinstance(data, SchedulerStateWire):
        return data
    if isinstance(data, (str, bytes, bytearray)):
        data = json.loads(data)
    return SchedulerStateWire.model_validate(data)


def wire_from_state(state: SchedulerState) -> SchedulerStateWire:
    lanes: dict[int, CanonicalLaneWire] = {}
    for lane_id in LaneId:
        lane = state.lanes[lane_id]
        lanes[int(lane_id)] = CanonicalLaneWire(
            active_content_id=lane.active_content_id,
            lane_source_id=lane.lane_source_id,
            slots=[
                SlotWire(
                    slot=n,
                    content_id=entry.content_id,
                    repetition_interval=entry.repetition_interval,
                    distractor_tier=entry.distractor_tier,
                    perfect_completion_count=entry.perfect_completion_count,
                )
                for n, entry in lane.ordered()
            ],
        )
    return SchedulerStateWire(
        active_lane=int(state.active_lane),
        cycle_count=state.cycle_count,
        last_mutated_at=state.last_mutated_at,
        generation=state.generation,
        lanes=lanes,
    )


def state_from_wire(wire: SchedulerStateWire) -> SchedulerState:
    """Build a fresh SchedulerState in the canonical slot layout."""
    state = SchedulerState(
        active_lane=LaneId(wire.active_lane),
        cycle_count=wire.cycle_count,
        generation=wire.generation,
    )
    if wire.last_mutated_at is not None:
        stamp = wire.last_mutated_at
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        state.last_mutated_at = stamp

    for key, lane_wire in wire.lanes.items():
        lane_id = LaneId.parse(key)
        entries = lane_wire.to_entries(int(lane_id))
        head = entries.get(0)
        declared = getattr(lane_wire, "active_content_id", None)
        if declared is not None and head is not None and declared != head.content_id:
            logger.warning(
                "Lane {}: declared active {} differs from slot 0 {}; using slot 0",
                int(lane_id),
                declared,
                head.content_id,
            )
        state.lanes[lane_id] = Lane(
            lane_id=lane_id,
            slots=entries,
            active_content_id=head.content_id if head is not None else None,
            lane_source_id=lane_wire.lane_source_id,
        )
    return state
