"""
Request payload models shared by the shift-entry routes.

The entry screens post camelCase JSON; every model accepts camelCase aliases
as well as snake_case field names. Natural-key fields are optional here so a
missing one is reported by the repository as a 400 naming the field, the
same way for single rows and batches.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt
from pydantic.alias_generators import to_camel

from app.services.ward_config import LEGACY_TRIAGE_KEYS


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IpdShiftIn(CamelModel):
    ward_id: Optional[int] = None
    record_date: Optional[date] = None
    shift: Optional[str] = None
    hn_count: Optional[NonNegativeInt] = None
    rn_count: Optional[NonNegativeInt] = None
    tn_count: Optional[NonNegativeInt] = None
    na_count: Optional[NonNegativeInt] = None

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump()


class IpdSummaryIn(CamelModel):
    ward_id: Optional[int] = None
    record_date: Optional[date] = None
    total_staff_day: Optional[NonNegativeInt] = None
    patient_day: Optional[NonNegativeInt] = None
    discharge_count: Optional[NonNegativeInt] = None
    new_admission: Optional[NonNegativeInt] = None
    cmi: Optional[float] = Field(None, ge=0)
    cap_status: Optional[str] = None
    # Recomputed server-side; accepted so older clients can keep sending them
    hppd: Optional[float] = None
    productivity: Optional[float] = None

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"hppd", "productivity"})


class IpdSaveAllIn(CamelModel):
    shifts: Optional[List[IpdShiftIn]] = None
    summary: Optional[IpdSummaryIn] = None


class OpdShiftIn(CamelModel):
    ward_id: Optional[int] = None
    record_date: Optional[date] = None
    shift: Optional[str] = None
    rn_count: Optional[NonNegativeInt] = None
    non_rn_count: Optional[NonNegativeInt] = None
    patient_total: Optional[NonNegativeInt] = None
    category_data: Optional[Dict[str, NonNegativeInt]] = None

    # Legacy triage entry (wards never given a field configuration)
    triage1: Optional[NonNegativeInt] = None
    triage2: Optional[NonNegativeInt] = None
    triage3: Optional[NonNegativeInt] = None
    triage4: Optional[NonNegativeInt] = None
    triage5: Optional[NonNegativeInt] = None
    ivp_count: Optional[NonNegativeInt] = None
    ems_count: Optional[NonNegativeInt] = None
    lr_count: Optional[NonNegativeInt] = None

    def legacy_counts(self) -> Dict[str, int]:
        values = {
            "triage1": self.triage1,
            "triage2": self.triage2,
            "triage3": self.triage3,
            "triage4": self.triage4,
            "triage5": self.triage5,
            "ivp": self.ivp_count,
            "ems": self.ems_count,
            "lr": self.lr_count,
        }
        return {k: v for k, v in values.items() if k in LEGACY_TRIAGE_KEYS and v is not None}

    def to_row(self) -> Dict[str, Any]:
        # Legacy counters fill keys the category map does not already carry
        category_data = {**self.legacy_counts(), **(self.category_data or {})}
        return {
            "ward_id": self.ward_id,
            "record_date": self.record_date,
            "shift": self.shift,
            "rn_count": self.rn_count,
            "non_rn_count": self.non_rn_count,
            "patient_total": self.patient_total,
            "category_data": category_data,
        }


class FieldIn(CamelModel):
    key: Optional[str] = None
    label: str
    multiplier: float = Field(1.0, ge=0)


class FieldGroupIn(CamelModel):
    name: str = ""
    fields: List[FieldIn] = []


class FieldsConfigIn(CamelModel):
    groups: List[FieldGroupIn] = []
    shifts: Optional[List[str]] = None

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "groups": [
                {"name": g.name, "fields": [f.model_dump(exclude_none=True) for f in g.fields]}
                for g in self.groups
            ],
        }
        if self.shifts is not None:
            doc["shifts"] = self.shifts
        return doc


class WardIn(CamelModel):
    code: Optional[str] = None
    name: Optional[str] = None
    dept_type: Optional[str] = None
    is_active: Optional[bool] = None
    opd_fields_config: Optional[FieldsConfigIn] = None
    his_ward_keys: Optional[List[int]] = None
