"""
test_aggregation_engine.py — Dashboard snapshots and period reports.

Tests cover:
  - CAP keyword classification (bilingual, ordered table)
  - IPD day aggregation: canonical RN, productivity/CMI averaging, ranking
  - OPD day aggregation: ratio of sums, sub-type filter, unscored shifts
  - Period report grouping ward → date → shift
"""

from datetime import date

import pytest

from app.services.aggregation_engine import (
    CAP_IMPROVE,
    CAP_KEYWORDS,
    CAP_SHORTAGE,
    CAP_SUITABLE,
    aggregate_ipd_day,
    aggregate_opd_day,
    build_period_report,
    classify_cap_status,
    date_range,
    skill_mix_ratio,
)
from app.services.shift_records import DailySummaryRecord, IpdShiftRecord, OpdShiftRecord

DAY = date(2026, 3, 1)


def _summary(ward_id, name, productivity, cmi=0.0, cap="", staff=0, patient_day=0, day=DAY):
    return DailySummaryRecord(
        ward_id=ward_id, record_date=day, total_staff_day=staff, patient_day=patient_day,
        productivity=productivity, cmi=cmi, cap_status=cap, ward_name=name,
    )


def _opd(ward_id, shift, rn, non_rn, workload, dept="OPD", name="", patients=0):
    return OpdShiftRecord(
        ward_id=ward_id, record_date=DAY, shift=shift, rn_count=rn, non_rn_count=non_rn,
        patient_total=patients, workload_score=workload, ward_name=name, ward_dept_type=dept,
    )


# ---------------------------------------------------------------------------
# CAP classification
# ---------------------------------------------------------------------------

class TestCapClassification:

    @pytest.mark.parametrize("status", ["Suitable", "เหมาะสม", "SUITABLE ", "staffing suitable today"])
    def test_suitable_variants(self, status):
        assert classify_cap_status(status) == CAP_SUITABLE

    @pytest.mark.parametrize("status,expected", [
        ("Needs improvement", CAP_IMPROVE),
        ("ควรปรับปรุง", CAP_IMPROVE),
        ("shortage", CAP_SHORTAGE),
        ("ขาดแคลน", CAP_SHORTAGE),
    ])
    def test_other_categories(self, status, expected):
        assert classify_cap_status(status) == expected

    @pytest.mark.parametrize("status", ["unknown", "", None, "   "])
    def test_unmatched(self, status):
        assert classify_cap_status(status) is None

    def test_table_order_decides(self):
        """Both keywords present: 'suitable' sits earlier in the table."""
        assert CAP_KEYWORDS[0][1] == CAP_SUITABLE
        assert classify_cap_status("suitable, improve later") == CAP_SUITABLE

    def test_unmatched_status_not_counted(self):
        snap = aggregate_ipd_day(DAY, [], [
            _summary(1, "A", 90.0, cap="Suitable"),
            _summary(2, "B", 80.0, cap="unknown"),
            _summary(3, "C", 70.0, cap=""),
        ])
        assert snap.cap_status == {"suitable": 1, "improve": 0, "shortage": 0}


# ---------------------------------------------------------------------------
# IPD day
# ---------------------------------------------------------------------------

class TestIpdDay:

    def test_canonical_rn_includes_head_nurse(self):
        shifts = [
            IpdShiftRecord(1, DAY, "morning", hn_count=1, rn_count=4, tn_count=2, na_count=3),
            IpdShiftRecord(1, DAY, "night", hn_count=0, rn_count=3, tn_count=1, na_count=1),
        ]
        snap = aggregate_ipd_day(DAY, shifts, [])
        assert snap.shifts["morning"]["rn"] == 5
        assert snap.shifts["morning"]["nonRn"] == 5
        assert snap.shifts["afternoon"]["rn"] == 0
        assert snap.workforce["rn"] == 8
        assert snap.workforce["rnOnly"] == 7
        assert snap.skill_mix["ratio"] == "1:1"

    def test_productivity_and_cmi_average_over_active_wards(self):
        """
        Wards with productivity 90 and 110 (CMI 1.2 and 1.6); a third ward at 0
        is left out: productivity (90 + 110) ÷ 2 = 100, CMI (1.2 + 1.6) ÷ 2 = 1.4.
        """
        snap = aggregate_ipd_day(DAY, [], [
            _summary(1, "A", 90.0, cmi=1.2, staff=10, patient_day=20),
            _summary(2, "B", 110.0, cmi=1.6, staff=12, patient_day=30),
            _summary(3, "C", 0.0, cmi=9.9, staff=0, patient_day=0),
        ])
        assert snap.productivity == pytest.approx(100.0)
        assert snap.cmi == pytest.approx(1.4)
        assert snap.total_workforce == 22
        assert snap.patient_visit == 50

    def test_empty_day(self):
        snap = aggregate_ipd_day(DAY, [], [])
        assert snap.productivity == 0.0
        assert snap.cmi == 0.0
        assert snap.skill_mix["ratio"] == "-"
        assert snap.ward_data == []

    def test_ranking_descending_and_stable(self):
        snap = aggregate_ipd_day(DAY, [], [
            _summary(1, "A", 80.0),
            _summary(2, "B", 95.0),
            _summary(3, "C", 80.0),
        ])
        assert [w.name for w in snap.ward_data] == ["B", "A", "C"]

    def test_to_dict_has_no_opd_keys(self):
        out = aggregate_ipd_day(DAY, [], []).to_dict()
        assert out["deptType"] == "IPD"
        assert "workloadScore" not in out


# ---------------------------------------------------------------------------
# OPD day
# ---------------------------------------------------------------------------

class TestOpdDay:

    def test_ratio_of_sums_not_average(self, workload_engine):
        """
        Ward 1 morning: workload 70, staff 2 → 500 %
        Ward 1 night:   workload 0,  staff 8 → 0 %
        Average of shift ratios = 250 %; engine must give (70 ÷ 7) ÷ 10 × 100 = 100 %.
        """
        snap = aggregate_opd_day(DAY, "OPD", [
            _opd(1, "morning", 1, 1, 70.0, name="Clinic"),
            _opd(1, "night", 4, 4, 0.0, name="Clinic"),
        ], workload_engine)
        assert snap.productivity == pytest.approx(100.0)
        assert snap.shifts["morning"]["productivity"] == pytest.approx(500.0)
        assert snap.shifts["night"]["productivity"] == 0.0
        assert snap.ward_data[0].productivity == pytest.approx(100.0)

    def test_subtype_filter(self, workload_engine):
        shifts = [
            _opd(1, "morning", 2, 0, 14.0, dept="OPD", name="Clinic"),
            _opd(2, "morning", 1, 0, 28.0, dept="ER", name="Emergency"),
        ]
        er = aggregate_opd_day(DAY, "ER", shifts, workload_engine)
        assert er.total_workforce == 1
        assert er.workload_score == pytest.approx(28.0)
        assert [w.name for w in er.ward_data] == ["Emergency"]

        everything = aggregate_opd_day(DAY, "OPD", shifts, workload_engine)
        assert everything.total_workforce == 3
        assert everything.workload_score == pytest.approx(42.0)

    def test_unscored_shift_adds_staff_only(self, workload_engine):
        """Scored: 35 workload / 5 staff. Unscored adds 5 staff: (35 ÷ 7) ÷ 10 = 50 %."""
        snap = aggregate_opd_day(DAY, "OPD", [
            _opd(1, "morning", 3, 2, 35.0),
            _opd(2, "morning", 3, 2, None),
        ], workload_engine)
        assert snap.unscored_shifts == 1
        assert snap.productivity == pytest.approx(50.0)
        out = snap.to_dict()
        assert out["unscoredShifts"] == 1
        assert out["capStatus"] == {"suitable": 0, "improve": 0, "shortage": 0}

    def test_shift_enrichment(self, workload_engine):
        """Afternoon: workload 21 → expect 3.0, actual 4 → 75 %."""
        snap = aggregate_opd_day(DAY, "OPD", [_opd(1, "afternoon", 2, 2, 21.0, patients=30)], workload_engine)
        row = snap.shifts["afternoon"]
        assert row["actual"] == 4
        assert row["expect"] == 3.0
        assert row["productivity"] == 75.0
        assert snap.patient_visit == 30


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:

    @pytest.mark.parametrize("rn,non_rn,expected", [
        (10, 5, "1:2"),
        (6, 4, "1:2"),
        (4, 0, "-"),
        (0, 0, "-"),
    ])
    def test_skill_mix(self, rn, non_rn, expected):
        assert skill_mix_ratio(rn, non_rn) == expected

    def test_date_range_inclusive(self):
        days = date_range(date(2026, 2, 27), date(2026, 3, 2))
        assert days[0] == date(2026, 2, 27)
        assert days[-1] == date(2026, 3, 2)
        assert len(days) == 4

    def test_date_range_inverted(self):
        with pytest.raises(ValueError):
            date_range(date(2026, 3, 2), date(2026, 3, 1))


# ---------------------------------------------------------------------------
# Period report
# ---------------------------------------------------------------------------

class TestPeriodReport:

    def test_ipd_grouping_fills_missing_shifts(self, ipd_ward):
        shifts = [IpdShiftRecord(1, DAY, "morning", hn_count=1, rn_count=3, tn_count=1, na_count=1)]
        summaries = [_summary(1, "Medicine 1", 92.5, cmi=1.1, cap="เหมาะสม", staff=6, patient_day=7)]
        report = build_period_report("IPD", [ipd_ward], shifts, summaries, DAY, date(2026, 3, 2))

        assert len(report.wards) == 1
        days = report.wards[0].days
        assert [d.day_number for d in days] == [1, 2]
        first = days[0]
        assert [r["shift"] for r in first.shifts] == ["morning", "afternoon", "night"]
        assert first.shifts[0]["total"] == 6
        assert first.shifts[1]["recorded"] is False
        assert first.summary["capCategory"] == "suitable"
        assert first.totals["totalStaff"] == 6
        assert days[1].summary is None

    def test_opd_rows_scored_with_current_config(self, workload_engine, clinic_ward):
        """general 20 × 0.5 + dressing 4 × 1.0 = 14 → expect 2.0; 2 staff → 100 %."""
        rec = OpdShiftRecord(
            ward_id=20, record_date=DAY, shift="morning", rn_count=1, non_rn_count=1,
            category_data={"general": 20, "dressing": 4},
        )
        report = build_period_report("OPD", [clinic_ward], [rec], [], DAY, DAY, workload_engine)
        ward = report.wards[0]
        assert ward.group_names == ["Visits"]
        assert [f["key"] for f in ward.fields] == ["general", "dressing"]

        row = ward.days[0].shifts[0]
        assert row["counts"] == {"general": 20, "dressing": 4}
        assert row["workloadScore"] == 14.0
        assert row["expectedStaff"] == 2.0
        assert row["productivity"] == 100.0
        # clinic only runs the morning shift
        assert len(ward.days[0].shifts) == 1
        assert ward.days[0].totals == {"nursingNeed": 14.0, "actualStaff": 2, "productivity": 100.0}

    def test_opd_unconfigured_ward_reports_unavailable(self, workload_engine, unconfigured_opd_ward):
        report = build_period_report("OPD", [unconfigured_opd_ward], [], [], DAY, DAY, workload_engine)
        ward = report.wards[0]
        assert ward.workload_available is False
        assert all(r["workloadScore"] is None for r in ward.days[0].shifts)
        assert len(ward.days[0].shifts) == 3

    def test_subtype_label_kept(self, workload_engine, er_ward):
        report = build_period_report("ER", [er_ward], [], [], DAY, DAY, workload_engine)
        out = report.to_dict()
        assert out["deptType"] == "ER"
        assert out["wards"][0]["days"][0]["date"] == "2026-03-01"
