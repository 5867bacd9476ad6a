"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import ClassVar, Final, NoReturn, TypeAlias, TypeVar

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_PROMPT = 32_768
_MAX_COLLECTION = 1024

MAX_RESULT_TEXT: Final[int] = _MAX_PROMPT


class ActionType(StrEnum):
    PREP = "PREP"
    HEAT = "HEAT"
    TRANSFER = "TRANSFER"
    ASSEMBLE = "ASSEMBLE"
    PORTION = "PORTION"
    PLATE = "PLATE"
    FINISH = "FINISH"
    QUALITY_CHECK = "QUALITY_CHECK"


class Phase(StrEnum):
    PRE_COOK = "PRE_COOK"
    COOK = "COOK"
    POST_COOK = "POST_COOK"
    ASSEMBLY = "ASSEMBLY"
    PASS = "PASS"


class TimingMode(StrEnum):
    A_LA_MINUTE = "a_la_minute"
    SANDBAG = "sandbag"
    HOT_HOLD = "hot_hold"


class PrepType(StrEnum):
    PRE_SERVICE = "pre_service"
    ORDER_EXECUTION = "order_execution"


class TimeUnit(StrEnum):
    SEC = "sec"
    MIN = "min"


class TimeActivity(StrEnum):
    ACTIVE = "active"
    PASSIVE = "passive"


class BuildStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class RuleType(StrEnum):
    STRUCTURED = "structured"
    SEMANTIC = "semantic"


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    IN = "in"
    NOT_EMPTY = "notEmpty"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


def utc_now() -> datetime:
    return datetime.now(UTC)


def clip_result_text(text: str, limit: int = MAX_RESULT_TEXT) -> str:
    """Strip ``text`` and shorten it to ``limit`` characters, marking the cut with "...".

    Result text comes from rule conditions and model responses, neither of which
    is bounded, while ``ValidationResult`` rejects anything over ``MAX_RESULT_TEXT``.
    """

    stripped = text.strip()
    if len(stripped) <= limit:
        return stripped
    return stripped[: limit - 3].rstrip() + "..."


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def canonical_json(value: JSONValue) -> str:
    """Compact, key-sorted JSON used for stable rendering and hashing."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_optional_bool(value: object, path: str) -> bool | None:
    if value is None:
        return None
    return _as_bool(value, path)


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_number(value: object, path: str, *, minimum: float | None = None) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        _fail(path, "must be finite")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_optional_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum | None:
    if value is None:
        return None
    return _as_enum(enum_type, value, path)


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_id_tuple(value: object, path: str) -> tuple[str, ...]:
    values = _as_sequence(value, path)
    if len(values) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")
    seen: dict[str, None] = {}
    for index, item in enumerate(values):
        seen.setdefault(_as_str(item, f"{path}[{index}]", max_len=256), None)
    return tuple(seen)


def _as_json_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, (list, tuple)):
        return [_as_json_value(item, f"{path}[{idx}]") for idx, item in enumerate(value)]
    if isinstance(value, Mapping):
        parsed: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, f"object key must be string, got {type(key).__name__}")
            parsed[key] = _as_json_value(item, f"{path}.{key}")
        return parsed
    _fail(path, f"value is not JSON-serializable ({type(value).__name__})")


def _as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    parsed = _as_json_value(value, path)
    if not isinstance(parsed, dict):
        _fail(path, "expected JSON object")
    return parsed


# ---------------------------------------------------------------------------
# Graph model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ItemReference:
    """Target of a work unit: a display name and/or a bill-of-materials id."""

    name: str | None = None
    bom_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_optional_str(self.name, "ItemReference.name"))
        object.__setattr__(self, "bom_id", _as_optional_str(self.bom_id, "ItemReference.bom_id"))
        if self.name is None and self.bom_id is None:
            _fail("ItemReference", "requires a name or a bom_id")

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {}
        if self.name is not None:
            payload["name"] = self.name
        if self.bom_id is not None:
            payload["bomId"] = self.bom_id
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ItemReference:
        parsed = _expect_object(data, "ItemReference", required=set(), optional={"name", "bomId"})
        return cls(name=parsed.get("name"), bom_id=parsed.get("bomId"))  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class Duration:
    value: int | float
    unit: TimeUnit = TimeUnit.MIN
    activity: TimeActivity = TimeActivity.ACTIVE

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _as_number(self.value, "Duration.value", minimum=0))
        object.__setattr__(self, "unit", _as_enum(TimeUnit, self.unit, "Duration.unit"))
        object.__setattr__(
            self, "activity", _as_enum(TimeActivity, self.activity, "Duration.activity")
        )

    @property
    def seconds(self) -> float:
        return float(self.value) * (60.0 if self.unit is TimeUnit.MIN else 1.0)

    def to_dict(self) -> dict[str, JSONValue]:
        return {"value": self.value, "unit": self.unit.value, "type": self.activity.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Duration:
        parsed = _expect_object(data, "Duration", required={"value", "unit"}, optional={"type"})
        return cls(
            value=_as_number(parsed["value"], "Duration.value", minimum=0),
            unit=_as_enum(TimeUnit, parsed["unit"], "Duration.unit"),
            activity=_as_enum(
                TimeActivity, parsed.get("type", TimeActivity.ACTIVE.value), "Duration.type"
            ),
        )


_TAG_FIELDS: frozenset[str] = frozenset(
    {
        "action",
        "target",
        "equipment",
        "time",
        "phase",
        "station",
        "timingMode",
        "requiresOrder",
        "prepType",
        "storageLocation",
        "bulkPrep",
    }
)


@dataclass(frozen=True, slots=True)
class WorkUnit:
    """One executable kitchen step; a node of the build graph.

    Values are immutable: edits go through ``dataclasses.replace`` so shared
    builds are never mutated in place.
    """

    id: str
    action: ActionType
    target: ItemReference
    equipment: str | None = None
    duration: Duration | None = None
    phase: Phase | None = None
    station: str | None = None
    timing_mode: TimingMode | None = None
    prep_type: PrepType | None = None
    storage_location: str | None = None
    requires_order: bool | None = None
    bulk_prep: bool | None = None
    depends_on: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "WorkUnit.id", max_len=256))
        object.__setattr__(self, "action", _as_enum(ActionType, self.action, "WorkUnit.action"))
        if not isinstance(self.target, ItemReference):
            _fail("WorkUnit.target", f"expected ItemReference, got {type(self.target).__name__}")
        object.__setattr__(
            self, "equipment", _as_optional_str(self.equipment, "WorkUnit.equipment")
        )
        if self.duration is not None and not isinstance(self.duration, Duration):
            _fail("WorkUnit.duration", f"expected Duration, got {type(self.duration).__name__}")
        object.__setattr__(self, "phase", _as_optional_enum(Phase, self.phase, "WorkUnit.phase"))
        object.__setattr__(self, "station", _as_optional_str(self.station, "WorkUnit.station"))
        object.__setattr__(
            self,
            "timing_mode",
            _as_optional_enum(TimingMode, self.timing_mode, "WorkUnit.timing_mode"),
        )
        object.__setattr__(
            self, "prep_type", _as_optional_enum(PrepType, self.prep_type, "WorkUnit.prep_type")
        )
        object.__setattr__(
            self,
            "storage_location",
            _as_optional_str(self.storage_location, "WorkUnit.storage_location"),
        )
        object.__setattr__(
            self,
            "requires_order",
            _as_optional_bool(self.requires_order, "WorkUnit.requires_order"),
        )
        object.__setattr__(
            self, "bulk_prep", _as_optional_bool(self.bulk_prep, "WorkUnit.bulk_prep")
        )
        depends_on = _as_id_tuple(self.depends_on, "WorkUnit.depends_on")
        if self.id in depends_on:
            _fail("WorkUnit.depends_on", f"unit {self.id!r} cannot depend on itself")
        object.__setattr__(self, "depends_on", depends_on)

    def tags(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "action": self.action.value,
            "target": self.target.to_dict(),
        }
        if self.equipment is not None:
            payload["equipment"] = self.equipment
        if self.duration is not None:
            payload["time"] = self.duration.to_dict()
        if self.phase is not None:
            payload["phase"] = self.phase.value
        if self.station is not None:
            payload["station"] = self.station
        if self.timing_mode is not None:
            payload["timingMode"] = self.timing_mode.value
        if self.requires_order is not None:
            payload["requiresOrder"] = self.requires_order
        if self.prep_type is not None:
            payload["prepType"] = self.prep_type.value
        if self.storage_location is not None:
            payload["storageLocation"] = self.storage_location
        if self.bulk_prep is not None:
            payload["bulkPrep"] = self.bulk_prep
        return payload

    def to_dict(self) -> dict[str, JSONValue]:
        return {"id": self.id, "tags": self.tags(), "dependsOn": list(self.depends_on)}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WorkUnit:
        parsed = _expect_object(data, "WorkUnit", required={"id", "tags"}, optional={"dependsOn"})
        tags = _expect_object(
            parsed["tags"], "WorkUnit.tags", required={"action", "target"}, optional=_TAG_FIELDS
        )
        raw_time = tags.get("time")
        return cls(
            id=_as_str(parsed["id"], "WorkUnit.id", max_len=256),
            action=_as_enum(ActionType, tags["action"], "WorkUnit.tags.action"),
            target=ItemReference.from_dict(
                _expect_object(
                    tags["target"], "WorkUnit.tags.target", required=set(), optional={"name", "bomId"}
                )
            ),
            equipment=_as_optional_str(tags.get("equipment"), "WorkUnit.tags.equipment"),
            duration=(
                Duration.from_dict(_expect_object(
                    raw_time, "WorkUnit.tags.time", required={"value", "unit"}, optional={"type"}
                ))
                if raw_time is not None
                else None
            ),
            phase=_as_optional_enum(Phase, tags.get("phase"), "WorkUnit.tags.phase"),
            station=_as_optional_str(tags.get("station"), "WorkUnit.tags.station"),
            timing_mode=_as_optional_enum(
                TimingMode, tags.get("timingMode"), "WorkUnit.tags.timingMode"
            ),
            prep_type=_as_optional_enum(PrepType, tags.get("prepType"), "WorkUnit.tags.prepType"),
            storage_location=_as_optional_str(
                tags.get("storageLocation"), "WorkUnit.tags.storageLocation"
            ),
            requires_order=_as_optional_bool(
                tags.get("requiresOrder"), "WorkUnit.tags.requiresOrder"
            ),
            bulk_prep=_as_optional_bool(tags.get("bulkPrep"), "WorkUnit.tags.bulkPrep"),
            depends_on=_as_id_tuple(parsed.get("dependsOn", ()), "WorkUnit.dependsOn"),
        )


@dataclass(frozen=True, slots=True)
class ChangelogEntry:
    """Append-only audit record written by every successful build mutation."""

    id: str
    timestamp: datetime
    actor: str
    action: str
    agent_assisted: bool = False
    details: dict[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "ChangelogEntry.id"))
        object.__setattr__(
            self, "timestamp", _as_datetime(self.timestamp, "ChangelogEntry.timestamp")
        )
        object.__setattr__(self, "actor", _as_str(self.actor, "ChangelogEntry.actor"))
        object.__setattr__(self, "action", _as_str(self.action, "ChangelogEntry.action"))
        object.__setattr__(
            self,
            "agent_assisted",
            _as_bool(self.agent_assisted, "ChangelogEntry.agent_assisted"),
        )
        object.__setattr__(
            self, "details", _as_json_object(self.details, "ChangelogEntry.details")
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "timestamp": datetime_to_iso8601z(self.timestamp),
            "userId": self.actor,
            "agentAssisted": self.agent_assisted,
            "action": self.action,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ChangelogEntry:
        parsed = _expect_object(
            data,
            "ChangelogEntry",
            required={"id", "timestamp", "userId", "action"},
            optional={"agentAssisted", "details"},
        )
        return cls(
            id=_as_str(parsed["id"], "ChangelogEntry.id"),
            timestamp=_as_datetime(parsed["timestamp"], "ChangelogEntry.timestamp"),
            actor=_as_str(parsed["userId"], "ChangelogEntry.userId"),
            action=_as_str(parsed["action"], "ChangelogEntry.action"),
            agent_assisted=_as_bool(
                parsed.get("agentAssisted", False), "ChangelogEntry.agentAssisted"
            ),
            details=_as_json_object(parsed.get("details", {}), "ChangelogEntry.details"),
        )


@dataclass(frozen=True, slots=True)
class LineBuild:
    """Editable container of work units for one catalog item.

    ``work_units`` keeps authoring order, which is not a dependency order.
    Only drafts accept graph mutations; see :mod:`line_build_core.editing`.
    """

    id: str
    menu_item_id: str
    work_units: tuple[WorkUnit, ...] = ()
    menu_item_name: str | None = None
    status: BuildStatus = BuildStatus.DRAFT
    version: int = 1
    author: str | None = None
    changelog: tuple[ChangelogEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "LineBuild.id", max_len=256))
        object.__setattr__(
            self, "menu_item_id", _as_str(self.menu_item_id, "LineBuild.menu_item_id")
        )
        units = tuple(self.work_units)
        seen: set[str] = set()
        for index, unit in enumerate(units):
            if not isinstance(unit, WorkUnit):
                _fail(f"LineBuild.work_units[{index}]", "expected WorkUnit")
            if unit.id in seen:
                _fail("LineBuild.work_units", f"duplicate work unit id {unit.id!r}")
            seen.add(unit.id)
        object.__setattr__(self, "work_units", units)
        object.__setattr__(
            self, "menu_item_name", _as_optional_str(self.menu_item_name, "LineBuild.menu_item_name")
        )
        object.__setattr__(self, "status", _as_enum(BuildStatus, self.status, "LineBuild.status"))
        object.__setattr__(self, "version", _as_int(self.version, "LineBuild.version", minimum=1))
        object.__setattr__(self, "author", _as_optional_str(self.author, "LineBuild.author"))
        entries = tuple(self.changelog)
        for index, entry in enumerate(entries):
            if not isinstance(entry, ChangelogEntry):
                _fail(f"LineBuild.changelog[{index}]", "expected ChangelogEntry")
        object.__setattr__(self, "changelog", entries)

    @property
    def is_draft(self) -> bool:
        return self.status is BuildStatus.DRAFT

    @property
    def unit_ids(self) -> tuple[str, ...]:
        return tuple(unit.id for unit in self.work_units)

    def get_work_unit(self, unit_id: str) -> WorkUnit | None:
        for unit in self.work_units:
            if unit.id == unit_id:
                return unit
        return None

    def index_of(self, unit_id: str) -> int:
        for index, unit in enumerate(self.work_units):
            if unit.id == unit_id:
                return index
        return -1

    def dependents_of(self, unit_id: str) -> tuple[str, ...]:
        """Ids of units that list ``unit_id`` as a direct predecessor, in build order."""

        return tuple(unit.id for unit in self.work_units if unit_id in unit.depends_on)

    def to_dict(self) -> dict[str, JSONValue]:
        metadata: dict[str, JSONValue] = {"version": self.version, "status": self.status.value}
        if self.author is not None:
            metadata["author"] = self.author
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "menuItemId": self.menu_item_id,
            "workUnits": [unit.to_dict() for unit in self.work_units],
            "metadata": metadata,
            "changelog": [entry.to_dict() for entry in self.changelog],
        }
        if self.menu_item_name is not None:
            payload["menuItemName"] = self.menu_item_name
        return payload

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> LineBuild:
        parsed = _expect_object(
            data,
            "LineBuild",
            required={"id", "menuItemId"},
            optional={"menuItemName", "workUnits", "metadata", "changelog"},
        )
        metadata = _expect_object(
            parsed.get("metadata", {}),
            "LineBuild.metadata",
            required=set(),
            optional={"author", "version", "status", "sourceConversations"},
        )
        return cls(
            id=_as_str(parsed["id"], "LineBuild.id", max_len=256),
            menu_item_id=_as_str(parsed["menuItemId"], "LineBuild.menuItemId"),
            menu_item_name=_as_optional_str(parsed.get("menuItemName"), "LineBuild.menuItemName"),
            work_units=tuple(
                WorkUnit.from_dict(_expect_object(
                    item, f"LineBuild.workUnits[{index}]", required={"id", "tags"},
                    optional={"dependsOn"},
                ))
                for index, item in enumerate(
                    _as_sequence(parsed.get("workUnits", []), "LineBuild.workUnits")
                )
            ),
            status=_as_enum(
                BuildStatus, metadata.get("status", BuildStatus.DRAFT.value), "LineBuild.status"
            ),
            version=_as_int(metadata.get("version", 1), "LineBuild.version", minimum=1),
            author=_as_optional_str(metadata.get("author"), "LineBuild.author"),
            changelog=tuple(
                ChangelogEntry.from_dict(_expect_object(
                    item, f"LineBuild.changelog[{index}]",
                    required={"id", "timestamp", "userId", "action"},
                    optional={"agentAssisted", "details"},
                ))
                for index, item in enumerate(
                    _as_sequence(parsed.get("changelog", []), "LineBuild.changelog")
                )
            ),
        )

    @classmethod
    def from_json(cls, raw: str) -> LineBuild:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail("LineBuild", f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail("LineBuild", "JSON root must be an object")
        return cls.from_dict(parsed)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _parse_applies_to(value: object, path: str) -> tuple[ActionType, ...] | None:
    if value is None or value == "all":
        return None
    items = _as_sequence(value, path)
    parsed: dict[ActionType, None] = {}
    for index, item in enumerate(items):
        parsed.setdefault(_as_enum(ActionType, item, f"{path}[{index}]"), None)
    return tuple(parsed)


def _applies_to_payload(applies_to: tuple[ActionType, ...] | None) -> JSONValue:
    if applies_to is None:
        return "all"
    return [action.value for action in applies_to]


@dataclass(frozen=True, slots=True)
class RuleCondition:
    """Field/operator/value condition of a structured rule.

    ``operator`` is kept as raw text so an unknown operator reaches the
    evaluator and fails as a result instead of at load time.
    """

    field: str
    operator: str
    value: JSONValue = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "field", _as_str(self.field, "RuleCondition.field", max_len=512))
        object.__setattr__(
            self, "operator", _as_str(self.operator, "RuleCondition.operator", max_len=64)
        )
        object.__setattr__(self, "value", _as_json_value(self.value, "RuleCondition.value"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {"field": self.field, "operator": self.operator, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> RuleCondition:
        parsed = _expect_object(
            data, "RuleCondition", required={"field", "operator"}, optional={"value"}
        )
        return cls(
            field=_as_str(parsed["field"], "RuleCondition.field", max_len=512),
            operator=_as_str(parsed["operator"], "RuleCondition.operator", max_len=64),
            value=_as_json_value(parsed.get("value"), "RuleCondition.value"),
        )


_RULE_COMMON_FIELDS: frozenset[str] = frozenset(
    {"id", "type", "name", "description", "enabled", "appliesTo"}
)


@dataclass(frozen=True, slots=True)
class StructuredRule:
    """Deterministic rule evaluated locally against a single work unit."""

    kind: ClassVar[RuleType] = RuleType.STRUCTURED

    id: str
    name: str
    condition: RuleCondition
    failure_message: str = ""
    description: str | None = None
    enabled: bool = True
    applies_to: tuple[ActionType, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "StructuredRule.id", max_len=256))
        object.__setattr__(self, "name", _as_str(self.name, "StructuredRule.name"))
        if not isinstance(self.condition, RuleCondition):
            _fail("StructuredRule.condition", "expected RuleCondition")
        object.__setattr__(
            self,
            "failure_message",
            _as_str(self.failure_message, "StructuredRule.failure_message", min_len=0),
        )
        object.__setattr__(
            self, "description", _as_optional_str(self.description, "StructuredRule.description")
        )
        object.__setattr__(self, "enabled", _as_bool(self.enabled, "StructuredRule.enabled"))
        object.__setattr__(
            self,
            "applies_to",
            _parse_applies_to(self.applies_to, "StructuredRule.applies_to"),
        )

    def applies_to_action(self, action: ActionType) -> bool:
        return self.applies_to is None or action in self.applies_to

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "type": self.kind.value,
            "name": self.name,
            "enabled": self.enabled,
            "condition": self.condition.to_dict(),
            "failureMessage": self.failure_message,
            "appliesTo": _applies_to_payload(self.applies_to),
        }
        if self.description is not None:
            payload["description"] = self.description
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> StructuredRule:
        parsed = _expect_object(
            data,
            "StructuredRule",
            required={"id", "name", "condition"},
            optional=set(_RULE_COMMON_FIELDS | {"failureMessage"}),
        )
        return cls(
            id=_as_str(parsed["id"], "StructuredRule.id", max_len=256),
            name=_as_str(parsed["name"], "StructuredRule.name"),
            condition=RuleCondition.from_dict(
                _expect_object(
                    parsed["condition"],
                    "StructuredRule.condition",
                    required={"field", "operator"},
                    optional={"value"},
                )
            ),
            failure_message=_as_str(
                parsed.get("failureMessage", ""), "StructuredRule.failureMessage", min_len=0
            ),
            description=_as_optional_str(parsed.get("description"), "StructuredRule.description"),
            enabled=_as_bool(parsed.get("enabled", True), "StructuredRule.enabled"),
            applies_to=_parse_applies_to(parsed.get("appliesTo"), "StructuredRule.appliesTo"),
        )


@dataclass(frozen=True, slots=True)
class SemanticRule:
    """Natural-language rule evaluated by a reasoning service."""

    kind: ClassVar[RuleType] = RuleType.SEMANTIC

    id: str
    name: str
    prompt: str
    guidance: str | None = None
    description: str | None = None
    enabled: bool = True
    applies_to: tuple[ActionType, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "SemanticRule.id", max_len=256))
        object.__setattr__(self, "name", _as_str(self.name, "SemanticRule.name"))
        object.__setattr__(
            self,
            "prompt",
            _as_str(self.prompt, "SemanticRule.prompt", min_len=0, max_len=_MAX_PROMPT),
        )
        object.__setattr__(
            self,
            "guidance",
            _as_optional_str(self.guidance, "SemanticRule.guidance", max_len=_MAX_PROMPT),
        )
        object.__setattr__(
            self, "description", _as_optional_str(self.description, "SemanticRule.description")
        )
        object.__setattr__(self, "enabled", _as_bool(self.enabled, "SemanticRule.enabled"))
        object.__setattr__(
            self, "applies_to", _parse_applies_to(self.applies_to, "SemanticRule.applies_to")
        )

    def applies_to_action(self, action: ActionType) -> bool:
        return self.applies_to is None or action in self.applies_to

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "type": self.kind.value,
            "name": self.name,
            "enabled": self.enabled,
            "prompt": self.prompt,
            "appliesTo": _applies_to_payload(self.applies_to),
        }
        if self.guidance is not None:
            payload["guidance"] = self.guidance
        if self.description is not None:
            payload["description"] = self.description
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> SemanticRule:
        parsed = _expect_object(
            data,
            "SemanticRule",
            required={"id", "name", "prompt"},
            optional=set(_RULE_COMMON_FIELDS | {"guidance"}),
        )
        return cls(
            id=_as_str(parsed["id"], "SemanticRule.id", max_len=256),
            name=_as_str(parsed["name"], "SemanticRule.name"),
            prompt=_as_str(parsed["prompt"], "SemanticRule.prompt", min_len=0, max_len=_MAX_PROMPT),
            guidance=_as_optional_str(
                parsed.get("guidance"), "SemanticRule.guidance", max_len=_MAX_PROMPT
            ),
            description=_as_optional_str(parsed.get("description"), "SemanticRule.description"),
            enabled=_as_bool(parsed.get("enabled", True), "SemanticRule.enabled"),
            applies_to=_parse_applies_to(parsed.get("appliesTo"), "SemanticRule.appliesTo"),
        )


ValidationRule: TypeAlias = StructuredRule | SemanticRule


def rule_from_dict(data: Mapping[str, object]) -> ValidationRule:
    """Parse either rule variant, dispatching on the ``type`` tag."""

    if not isinstance(data, Mapping):
        _fail("ValidationRule", f"expected object, got {type(data).__name__}")
    rule_type = _as_enum(RuleType, data.get("type"), "ValidationRule.type")
    if rule_type is RuleType.STRUCTURED:
        return StructuredRule.from_dict(data)
    return SemanticRule.from_dict(data)


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of one rule against one work unit; ``failures`` is empty iff passed."""

    rule_id: str
    rule_name: str
    rule_type: RuleType
    work_unit_id: str
    passed: bool
    failures: tuple[str, ...] = ()
    reasoning: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rule_id", _as_str(self.rule_id, "ValidationResult.rule_id"))
        object.__setattr__(
            self, "rule_name", _as_str(self.rule_name, "ValidationResult.rule_name")
        )
        object.__setattr__(
            self, "rule_type", _as_enum(RuleType, self.rule_type, "ValidationResult.rule_type")
        )
        object.__setattr__(
            self, "work_unit_id", _as_str(self.work_unit_id, "ValidationResult.work_unit_id")
        )
        object.__setattr__(self, "passed", _as_bool(self.passed, "ValidationResult.passed"))
        failures = tuple(
            _as_str(item, f"ValidationResult.failures[{index}]", max_len=_MAX_PROMPT)
            for index, item in enumerate(_as_sequence(self.failures, "ValidationResult.failures"))
        )
        if self.passed and failures:
            _fail("ValidationResult.failures", "must be empty when the result passed")
        if not self.passed and not failures:
            _fail("ValidationResult.failures", "must not be empty when the result failed")
        object.__setattr__(self, "failures", failures)
        if self.reasoning is not None and not isinstance(self.reasoning, str):
            _fail("ValidationResult.reasoning", "expected string")
        object.__setattr__(
            self, "timestamp", _as_datetime(self.timestamp, "ValidationResult.timestamp")
        )

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "ruleType": self.rule_type.value,
            "workUnitId": self.work_unit_id,
            "pass": self.passed,
            "failures": list(self.failures),
            "timestamp": datetime_to_iso8601z(self.timestamp),
        }
        if self.reasoning is not None:
            payload["reasoning"] = self.reasoning
        return payload


@dataclass(frozen=True, slots=True)
class BuildValidationStatus:
    """Build-level verdict that gates the draft to active transition."""

    build_id: str
    is_draft: bool
    has_structured_failures: bool
    has_semantic_failures: bool
    failure_count: int
    last_checked: datetime
    results: tuple[ValidationResult, ...] = ()
    item_id: str | None = None

    @property
    def can_promote(self) -> bool:
        return self.is_draft and not (self.has_structured_failures or self.has_semantic_failures)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "buildId": self.build_id,
            "isDraft": self.is_draft,
            "hasStructuredFailures": self.has_structured_failures,
            "hasSemanticFailures": self.has_semantic_failures,
            "failureCount": self.failure_count,
            "lastChecked": datetime_to_iso8601z(self.last_checked),
            "results": [result.to_dict() for result in self.results],
        }
        if self.item_id is not None:
            payload["itemId"] = self.item_id
        return payload


__all__ = [
    "MAX_RESULT_TEXT",
    "ActionType",
    "BuildStatus",
    "BuildValidationStatus",
    "ChangelogEntry",
    "ConditionOperator",
    "Duration",
    "ItemReference",
    "JSONValue",
    "LineBuild",
    "Phase",
    "PrepType",
    "RuleCondition",
    "RuleType",
    "SemanticRule",
    "StructuredRule",
    "TimeActivity",
    "TimeUnit",
    "TimingMode",
    "ValidationResult",
    "ValidationRule",
    "WorkUnit",
    "canonical_json",
    "datetime_to_iso8601z",
    "rule_from_dict",
    "clip_result_text",
    "utc_now",
]
