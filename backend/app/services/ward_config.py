"""
ward_config.py — Per-ward scoring configuration.

A ward is either an IPD ward (fixed HN/RN/TN/NA headcount fields) or a ward
of the OPD family (OPD, ER, LR) whose workload is scored from a dynamic,
admin-defined list of weighted counters:

    {"groups": [{"name": "Triage", "fields": [{"key": "level_1",
                                               "label": "Level 1",
                                               "multiplier": 3.2}]}],
     "shifts": ["morning", "afternoon", "night"]}

The schema is a tagged union (``FixedIpdSchema`` | ``DynamicFieldSchema``)
selected by department type, never by which columns happen to be filled in.
An OPD ward without groups carries ``schema=None``: workload scoring is
unavailable for it, which is not an error.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SHIFTS: Tuple[str, ...] = ("morning", "afternoon", "night")
SHIFT_ALIASES: Dict[str, str] = {"midnight": "night"}

DEPT_IPD = "IPD"
DEPT_OPD = "OPD"
OPD_FAMILY: Tuple[str, ...] = ("OPD", "ER", "LR")
DEPT_TYPES: Tuple[str, ...] = (DEPT_IPD,) + OPD_FAMILY

IPD_COUNTERS: Tuple[str, ...] = ("hn_count", "rn_count", "tn_count", "na_count")

# Thai consonants through Thai digits are kept in derived keys
_KEY_STRIP = re.compile(r"[^a-z0-9ก-๙]+")


class WardConfigError(ValueError):
    """Raised when a ward configuration document violates an invariant."""


# ---------------------------------------------------------------------------
# Schema types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldConfig:
    key: str
    label: str
    multiplier: float = 1.0


@dataclass(frozen=True)
class FieldGroup:
    name: str
    fields: Tuple[FieldConfig, ...] = ()


@dataclass(frozen=True)
class FixedIpdSchema:
    """IPD wards: four fixed headcount columns, scored at the daily level."""
    kind: str = "ipd_fixed"
    counters: Tuple[str, ...] = IPD_COUNTERS


@dataclass(frozen=True)
class DynamicFieldSchema:
    """OPD-family wards: weighted counters grouped for display."""
    groups: Tuple[FieldGroup, ...] = ()
    kind: str = "dynamic"

    @property
    def fields(self) -> List[FieldConfig]:
        return [f for g in self.groups for f in g.fields]

    @property
    def keys(self) -> List[str]:
        return [f.key for f in self.fields]


ScoringSchema = Union[FixedIpdSchema, DynamicFieldSchema]


# Wards never migrated to a dynamic schema enter triage counters directly.
LEGACY_TRIAGE_SCHEMA = DynamicFieldSchema(groups=(
    FieldGroup(name="Triage", fields=(
        FieldConfig("triage1", "Level 1", 3.2),
        FieldConfig("triage2", "Level 2", 2.5),
        FieldConfig("triage3", "Level 3", 1.0),
        FieldConfig("triage4", "Level 4", 0.5),
        FieldConfig("triage5", "Level 5", 0.25),
        FieldConfig("ivp", "IVP", 2.0),
        FieldConfig("ems", "EMS", 1.5),
        FieldConfig("lr", "LR", 3.5),
    )),
))
LEGACY_TRIAGE_KEYS: Tuple[str, ...] = tuple(LEGACY_TRIAGE_SCHEMA.keys)


@dataclass(frozen=True)
class WardConfig:
    id: int
    code: str
    name: str
    dept_type: str
    is_active: bool = True
    active_shifts: Tuple[str, ...] = SHIFTS
    schema: Optional[ScoringSchema] = None
    his_link_keys: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_ipd(self) -> bool:
        return self.dept_type == DEPT_IPD

    @property
    def is_configured(self) -> bool:
        """False for an OPD ward that has no field groups yet."""
        return self.schema is not None

    @property
    def field_groups(self) -> Tuple[FieldGroup, ...]:
        if isinstance(self.schema, DynamicFieldSchema):
            return self.schema.groups
        return ()

    @property
    def has_his_mapping(self) -> bool:
        return len(self.his_link_keys) > 0


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------

def normalize_dept_type(dept_type: str) -> str:
    value = str(dept_type or "").strip().upper()
    if value not in DEPT_TYPES:
        raise WardConfigError(f"Unknown department type '{dept_type}'")
    return value


def normalize_shift(shift: str) -> str:
    value = str(shift or "").strip().lower()
    value = SHIFT_ALIASES.get(value, value)
    if value not in SHIFTS:
        raise WardConfigError(f"Unknown shift '{shift}'")
    return value


def order_shifts(shifts: Iterable[str]) -> Tuple[str, ...]:
    """Canonical morning → afternoon → night order, duplicates removed."""
    wanted = {normalize_shift(s) for s in shifts}
    return tuple(s for s in SHIFTS if s in wanted)


def derive_field_key(label: str) -> str:
    """
    Derive a storage key from a display label.

    Lowercases, collapses every run of characters outside a-z, 0-9 and the
    Thai block into one underscore and trims underscores at the ends.
    """
    key = _KEY_STRIP.sub("_", str(label or "").strip().lower()).strip("_")
    return key or "field"


def _disambiguate(key: str, taken: set) -> str:
    if key not in taken:
        return key
    n = 2
    while f"{key}_{n}" in taken:
        n += 1
    return f"{key}_{n}"


def assign_field_keys(groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Return a copy of raw group dicts where every field has a unique key.

    Fields that arrive with a key keep it unless an earlier field already
    claimed it; keyless fields get one derived from their label. Collisions
    are resolved by suffixing ``_2``, ``_3``, ... in document order.
    """
    taken: set = set()
    result: List[Dict[str, Any]] = []
    for group in groups or []:
        fields_out = []
        for raw in group.get("fields") or []:
            base = raw.get("key") or derive_field_key(raw.get("label", ""))
            key = _disambiguate(base, taken)
            taken.add(key)
            fields_out.append({**raw, "key": key})
        result.append({**group, "fields": fields_out})
    return result


# ---------------------------------------------------------------------------
# Document ↔ dataclass conversion
# ---------------------------------------------------------------------------

def parse_field_groups(raw_groups: Optional[List[Dict[str, Any]]]) -> Tuple[FieldGroup, ...]:
    """Validate raw group dicts into ``FieldGroup`` tuples (keys must be unique)."""
    groups: List[FieldGroup] = []
    seen: set = set()
    for gi, group in enumerate(raw_groups or []):
        fields: List[FieldConfig] = []
        for raw in group.get("fields") or []:
            key = str(raw.get("key") or "").strip()
            if not key:
                raise WardConfigError(f"Field without key in group {gi}")
            if key in seen:
                raise WardConfigError(f"Duplicate field key '{key}'")
            seen.add(key)
            try:
                multiplier = float(raw.get("multiplier", 1.0))
            except (TypeError, ValueError):
                raise WardConfigError(f"Multiplier for '{key}' is not a number")
            if multiplier < 0:
                raise WardConfigError(f"Multiplier for '{key}' must be non-negative")
            fields.append(FieldConfig(key=key, label=str(raw.get("label") or key), multiplier=multiplier))
        groups.append(FieldGroup(name=str(group.get("name") or ""), fields=tuple(fields)))
    return tuple(groups)


def build_ward_config(
    *,
    id: int,
    code: str,
    name: str,
    dept_type: str,
    is_active: bool = True,
    fields_config: Optional[Dict[str, Any]] = None,
    his_ward_keys: Optional[Iterable[int]] = None,
) -> WardConfig:
    """Assemble a ``WardConfig``, dispatching the schema on department type."""
    dept = normalize_dept_type(dept_type)
    his_keys = tuple(int(k) for k in (his_ward_keys or []))

    if dept == DEPT_IPD:
        # Stray OPD config on an IPD ward is ignored, not scored
        return WardConfig(
            id=id, code=code, name=name, dept_type=dept, is_active=is_active,
            active_shifts=SHIFTS, schema=FixedIpdSchema(), his_link_keys=his_keys,
        )

    fields_config = fields_config or {}
    groups = parse_field_groups(fields_config.get("groups"))
    raw_shifts = fields_config.get("shifts")
    active_shifts = order_shifts(raw_shifts) if raw_shifts else SHIFTS
    if not active_shifts:
        raise WardConfigError("activeShifts must not be empty")

    schema = DynamicFieldSchema(groups=groups) if any(g.fields for g in groups) else None
    return WardConfig(
        id=id, code=code, name=name, dept_type=dept, is_active=is_active,
        active_shifts=active_shifts, schema=schema, his_link_keys=his_keys,
    )


def ward_config_from_row(ward) -> WardConfig:
    """Build a ``WardConfig`` from a ``NursingWard`` ORM row."""
    return build_ward_config(
        id=ward.id,
        code=ward.code,
        name=ward.name,
        dept_type=ward.dept_type,
        is_active=bool(ward.is_active) if ward.is_active is not None else True,
        fields_config=ward.opd_fields_config,
        his_ward_keys=ward.his_ward_keys,
    )


def validate_fields_document(dept_type: str, document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Validate a full replacement config document before it is stored.

    Keyless fields get derived, collision-safe keys. IPD wards may not carry
    field groups. Returns the normalised document (or None to clear it).
    """
    dept = normalize_dept_type(dept_type)
    if document is None:
        return None
    groups = document.get("groups") or []
    if dept == DEPT_IPD and any(g.get("fields") for g in groups):
        raise WardConfigError("IPD wards use fixed HN/RN/TN/NA fields; field groups are not allowed")

    keyed = assign_field_keys(groups)
    parsed = parse_field_groups(keyed)
    shifts = order_shifts(document.get("shifts") or SHIFTS)
    if not shifts:
        raise WardConfigError("activeShifts must not be empty")

    return {
        "groups": [
            {
                "name": g.name,
                "fields": [{"key": f.key, "label": f.label, "multiplier": f.multiplier} for f in g.fields],
            }
            for g in parsed
        ],
        "shifts": list(shifts),
    }
