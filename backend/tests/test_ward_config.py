"""
test_ward_config.py — Ward configuration model.

Tests cover:
  - Department-type dispatch (IPD fixed schema, OPD-family dynamic schema)
  - The unconfigured OPD state
  - Field-key derivation from labels and collision disambiguation
  - Validation of replacement config documents
  - Shift normalisation and ordering
"""

import pytest

from app.services.ward_config import (
    DynamicFieldSchema,
    FixedIpdSchema,
    SHIFTS,
    WardConfigError,
    assign_field_keys,
    build_ward_config,
    derive_field_key,
    normalize_dept_type,
    normalize_shift,
    order_shifts,
    parse_field_groups,
    validate_fields_document,
)


class TestDeptDispatch:

    def test_ipd_ward_gets_fixed_schema(self, ipd_ward):
        assert isinstance(ipd_ward.schema, FixedIpdSchema)
        assert ipd_ward.is_ipd
        assert ipd_ward.field_groups == ()
        assert ipd_ward.active_shifts == SHIFTS

    def test_ipd_ignores_stray_opd_config(self):
        """A leftover OPD document on an IPD ward never turns into a dynamic schema."""
        cfg = build_ward_config(
            id=2, code="SUR1", name="Surgery", dept_type="IPD",
            fields_config={"groups": [{"name": "x", "fields": [{"key": "a", "label": "A", "multiplier": 1}]}]},
        )
        assert isinstance(cfg.schema, FixedIpdSchema)

    def test_er_is_opd_family_with_dynamic_schema(self, er_ward):
        assert isinstance(er_ward.schema, DynamicFieldSchema)
        assert not er_ward.is_ipd
        assert len(er_ward.schema.fields) == 8
        assert er_ward.schema.keys[:2] == ["triage1", "triage2"]

    def test_unconfigured_opd_ward(self, unconfigured_opd_ward):
        assert unconfigured_opd_ward.schema is None
        assert not unconfigured_opd_ward.is_configured
        assert unconfigured_opd_ward.field_groups == ()

    def test_groups_without_fields_are_unconfigured(self):
        cfg = build_ward_config(
            id=3, code="OPD2", name="Eye", dept_type="OPD",
            fields_config={"groups": [{"name": "Empty", "fields": []}]},
        )
        assert not cfg.is_configured

    def test_active_shifts_subset_is_ordered(self):
        cfg = build_ward_config(
            id=4, code="OPD3", name="Skin", dept_type="OPD",
            fields_config={"groups": [], "shifts": ["afternoon", "morning"]},
        )
        assert cfg.active_shifts == ("morning", "afternoon")

    def test_his_keys_become_int_tuple(self):
        cfg = build_ward_config(id=5, code="MED2", name="Medicine 2", dept_type="ipd", his_ward_keys=["3", 7])
        assert cfg.his_link_keys == (3, 7)
        assert cfg.has_his_mapping
        assert cfg.dept_type == "IPD"

    def test_unknown_dept_type_rejected(self):
        with pytest.raises(WardConfigError):
            normalize_dept_type("ICU")


class TestFieldKeys:

    def test_label_is_lowercased_and_underscored(self):
        assert derive_field_key("Level 1 (Resus)") == "level_1_resus"

    def test_thai_label_is_kept(self):
        assert derive_field_key("ผู้ป่วยใหม่") == "ผู้ป่วยใหม่"

    def test_mixed_thai_and_ascii(self):
        assert derive_field_key("ทำแผล - Dressing") == "ทำแผล_dressing"

    def test_symbols_only_falls_back(self):
        assert derive_field_key("***") == "field"

    def test_collisions_get_numbered_suffixes(self):
        groups = [{"name": "g", "fields": [
            {"label": "Visit"}, {"label": "visit"}, {"label": "VISIT!"},
        ]}]
        keys = [f["key"] for f in assign_field_keys(groups)[0]["fields"]]
        assert keys == ["visit", "visit_2", "visit_3"]

    def test_explicit_key_is_kept_and_later_derived_key_disambiguated(self):
        groups = [
            {"name": "a", "fields": [{"key": "visit", "label": "Other"}]},
            {"name": "b", "fields": [{"label": "Visit"}]},
        ]
        result = assign_field_keys(groups)
        assert result[0]["fields"][0]["key"] == "visit"
        assert result[1]["fields"][0]["key"] == "visit_2"

    def test_duplicate_keys_rejected_when_parsing(self):
        with pytest.raises(WardConfigError):
            parse_field_groups([
                {"name": "a", "fields": [{"key": "x", "label": "X"}]},
                {"name": "b", "fields": [{"key": "x", "label": "X again"}]},
            ])

    def test_negative_multiplier_rejected(self):
        with pytest.raises(WardConfigError):
            parse_field_groups([{"name": "a", "fields": [{"key": "x", "label": "X", "multiplier": -1}]}])


class TestValidateDocument:

    def test_opd_document_normalised(self):
        doc = validate_fields_document("OPD", {
            "groups": [{"name": "Visits", "fields": [{"label": "New Case", "multiplier": "1.5"}]}],
            "shifts": ["midnight", "morning"],
        })
        assert doc["groups"][0]["fields"][0] == {"key": "new_case", "label": "New Case", "multiplier": 1.5}
        assert doc["shifts"] == ["morning", "night"]

    def test_default_shifts_when_missing(self):
        doc = validate_fields_document("LR", {"groups": []})
        assert doc["shifts"] == list(SHIFTS)

    def test_ipd_with_field_groups_rejected(self):
        with pytest.raises(WardConfigError):
            validate_fields_document("IPD", {"groups": [{"name": "x", "fields": [{"label": "A"}]}]})

    def test_none_clears_config(self):
        assert validate_fields_document("OPD", None) is None


class TestShifts:

    def test_midnight_alias(self):
        assert normalize_shift("Midnight") == "night"

    def test_unknown_shift_rejected(self):
        with pytest.raises(WardConfigError):
            normalize_shift("evening")

    def test_order_removes_duplicates(self):
        assert order_shifts(["night", "morning", "night"]) == ("morning", "night")
