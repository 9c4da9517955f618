from datetime import date
from decimal import Decimal
from io import StringIO
from unittest import mock
import uuid

import requests
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.test import APITestCase

from payroll.calculation import (
    AttendanceBreakdown,
    DeductionPolicy,
    FixedCompensation,
    IncentiveDetail,
    build_salary,
    count_working_days,
)
from payroll.exceptions import ConflictError, NotFoundError, UpstreamUnavailable
from payroll.models import DeductionSettings, SalaryRecord
from payroll.services import (
    OUTCOME_NOT_FOUND,
    OUTCOME_UPDATED,
    bulk_update_status,
    carry_forward_inputs,
    create_salary_record,
    generate_salaries,
    get_deduction_settings,
    recalculate_salary,
    salary_stats,
    update_deduction_settings,
    update_salary_record,
    update_salary_status,
)
from payroll.sources import (
    EmployeeProfile,
    HttpAttendanceSource,
    HttpEmployeeDirectory,
    HttpIncentiveSource,
    PayrollSources,
    load_payroll_sources,
)


class FakeDirectory:
    def __init__(self, employees):
        self.employees = list(employees)

    def list_employees(self):
        return list(self.employees)


class FakeAttendance:
    def __init__(self, breakdowns=None, default=None, failing=()):
        self.breakdowns = breakdowns or {}
        self.default = default or AttendanceBreakdown(total_working_days=22, days_present=22)
        self.failing = set(failing)
        self.calls = []

    def get_breakdown(self, employee_id, month, year):
        self.calls.append(employee_id)
        if employee_id in self.failing:
            raise UpstreamUnavailable("attendance timed out", source="attendance")
        return self.breakdowns.get(employee_id, self.default)


class FakeIncentives:
    def __init__(self, incentives=None):
        self.incentives = incentives or {}

    def get_incentives(self, employee_id, month, year):
        return list(self.incentives.get(employee_id, []))


def make_sources(employees=(), attendance=None, incentives=None):
    return PayrollSources(
        employees=FakeDirectory(employees),
        attendance=attendance or FakeAttendance(),
        incentives=incentives or FakeIncentives(),
    )


def make_employee(employee_id, name=None):
    return EmployeeProfile(
        id=employee_id,
        full_name=name or f"Employee {employee_id}",
        email=f"{employee_id.lower()}@example.com",
        department="Engineering",
        designation="Developer",
    )


def make_record(employee_id, month=3, year=2026, **fields):
    fields.setdefault("employee_name", f"Employee {employee_id}")
    return SalaryRecord.objects.create(employee_id=employee_id, month=month, year=year, **fields)


def assert_record_invariants(test, record):
    test.assertEqual(
        record.gross_earnings,
        record.basic_salary + record.hra + record.allowances + record.bonus + record.overtime + record.other_earnings,
    )
    test.assertEqual(
        record.total_deductions,
        record.tax + record.provident_fund + record.insurance + record.loan_deduction + record.other_deductions,
    )
    test.assertEqual(
        record.net_salary,
        record.gross_earnings + record.incentive_amount - record.total_deductions - record.attendance_deduction,
    )


class SalaryBuilderTests(SimpleTestCase):
    def test_reference_scenario(self):
        fixed = FixedCompensation(
            basic_salary="3000",
            hra="500",
            allowances="200",
            tax="300",
            insurance="100",
        )
        attendance = AttendanceBreakdown(
            total_working_days=22,
            days_present=18,
            paid_leave_days=1,
            half_day_count=2,
            late_count=3,
            absent_days=0,
        )
        policy = DeductionPolicy(paid_leave_percent=0, half_day_percent=50, late_percent=10, absent_percent=100)

        result = build_salary(fixed, attendance, [], policy)

        self.assertEqual(result.gross_earnings, Decimal("3700.00"))
        self.assertEqual(result.total_deductions, Decimal("400.00"))
        self.assertEqual(result.per_day_salary, Decimal("136.36"))
        self.assertEqual(result.paid_leave_deduction, Decimal("0.00"))
        self.assertEqual(result.half_day_deduction, Decimal("136.36"))
        self.assertEqual(result.late_deduction, Decimal("40.91"))
        self.assertEqual(result.absent_deduction, Decimal("0.00"))
        self.assertEqual(result.attendance_deduction, Decimal("177.27"))
        self.assertEqual(result.net_salary, Decimal("3122.73"))

    def test_zero_percent_yields_zero_component(self):
        fixed = FixedCompensation(basic_salary="2200")
        attendance = AttendanceBreakdown(total_working_days=22, paid_leave_days=3, late_count=5)
        policy = DeductionPolicy(paid_leave_percent=0, half_day_percent=50, late_percent=0, absent_percent=100)

        result = build_salary(fixed, attendance, [], policy)

        self.assertEqual(result.paid_leave_deduction, Decimal("0.00"))
        self.assertEqual(result.late_deduction, Decimal("0.00"))
        self.assertEqual(result.net_salary, Decimal("2200.00"))

    def test_full_percent_deducts_full_day_per_occurrence(self):
        fixed = FixedCompensation(basic_salary="2200")
        attendance = AttendanceBreakdown(total_working_days=22, absent_days=2)

        result = build_salary(fixed, attendance, [], DeductionPolicy())

        self.assertEqual(result.per_day_salary, Decimal("100.00"))
        self.assertEqual(result.absent_deduction, Decimal("200.00"))
        self.assertEqual(result.attendance_deduction, Decimal("200.00"))
        self.assertEqual(result.net_salary, Decimal("2000.00"))

    def test_no_working_days_means_no_attendance_deduction(self):
        fixed = FixedCompensation(basic_salary="1000")
        attendance = AttendanceBreakdown(total_working_days=0, absent_days=4, half_day_count=2)

        result = build_salary(fixed, attendance, [], DeductionPolicy())

        self.assertEqual(result.per_day_salary, Decimal("0.00"))
        self.assertEqual(result.attendance_deduction, Decimal("0.00"))
        self.assertEqual(result.net_salary, Decimal("1000.00"))

    def test_incentives_are_summed_and_kept_in_order(self):
        incentives = [
            IncentiveDetail(title="Sales target", incentive_type="performance", amount="150.555"),
            IncentiveDetail(title="Referral", incentive_type="referral", amount="100"),
        ]
        result = build_salary(
            FixedCompensation(basic_salary="1000"),
            AttendanceBreakdown(total_working_days=20),
            incentives,
            DeductionPolicy(),
        )

        self.assertEqual(result.incentive_amount, Decimal("250.56"))
        self.assertEqual([item.title for item in result.incentive_details], ["Sales target", "Referral"])
        self.assertEqual(result.net_salary, Decimal("1250.56"))

    def test_negative_inputs_are_rejected(self):
        with self.assertRaises(ValidationError):
            FixedCompensation(basic_salary="-1")
        with self.assertRaises(ValidationError):
            AttendanceBreakdown(total_working_days=22, late_count=-1)

    def test_policy_percentages_are_bounded(self):
        with self.assertRaises(ValidationError):
            DeductionPolicy(half_day_percent="100.01")
        with self.assertRaises(ValidationError):
            DeductionPolicy(late_percent=-5)
        with self.assertRaises(ValidationError):
            DeductionPolicy(absent_percent="abc")

    def test_non_finite_inputs_are_rejected(self):
        with self.assertRaises(ValidationError):
            FixedCompensation(basic_salary="Infinity")
        with self.assertRaises(ValidationError):
            AttendanceBreakdown(total_working_days=22, absent_days="NaN")
        with self.assertRaises(ValidationError):
            IncentiveDetail(title="Bonus", incentive_type="performance", amount="Infinity")
        with self.assertRaises(ValidationError):
            DeductionPolicy(late_percent="NaN")

    def test_attendance_total_is_rounded_from_unrounded_components(self):
        fixed = FixedCompensation(basic_salary="1000")
        attendance = AttendanceBreakdown(total_working_days=3, half_day_count=1, late_count=1)
        policy = DeductionPolicy(paid_leave_percent=0, half_day_percent=50, late_percent=50, absent_percent=100)

        result = build_salary(fixed, attendance, [], policy)

        self.assertEqual(result.half_day_deduction, Decimal("166.67"))
        self.assertEqual(result.late_deduction, Decimal("166.67"))
        # Components round up individually; the total rounds down from 333.333...
        self.assertEqual(result.attendance_deduction, Decimal("333.33"))
        self.assertEqual(
            result.paid_leave_deduction + result.half_day_deduction + result.late_deduction + result.absent_deduction,
            Decimal("333.34"),
        )
        self.assertEqual(result.net_salary, Decimal("666.67"))

    def test_working_days_count_configured_weekdays(self):
        self.assertEqual(count_working_days(2026, 3, range(5)), 22)
        self.assertEqual(count_working_days(2026, 2, range(7)), 28)


class DeductionSettingsTests(TestCase):
    def test_defaults_are_created_on_first_read(self):
        self.assertEqual(DeductionSettings.objects.count(), 0)

        config = get_deduction_settings()

        self.assertEqual(DeductionSettings.objects.count(), 1)
        self.assertEqual(config.paid_leave_percent, Decimal("0.00"))
        self.assertEqual(config.half_day_percent, Decimal("50.00"))
        self.assertEqual(config.late_percent, Decimal("0.00"))
        self.assertEqual(config.absent_percent, Decimal("100.00"))
        self.assertEqual(get_deduction_settings().pk, config.pk)

    def test_partial_update_keeps_other_values(self):
        update_deduction_settings(late_percent=Decimal("10"))

        config = get_deduction_settings()
        self.assertEqual(config.late_percent, Decimal("10.00"))
        self.assertEqual(config.half_day_percent, Decimal("50.00"))

    def test_out_of_range_update_is_not_persisted(self):
        with self.assertRaises(ValidationError):
            update_deduction_settings(half_day_percent=Decimal("150"))

        self.assertEqual(get_deduction_settings().half_day_percent, Decimal("50.00"))

    def test_unknown_setting_is_rejected(self):
        with self.assertRaises(ValidationError):
            update_deduction_settings(overtime_percent=Decimal("5"))


@override_settings(PAYROLL_UPSTREAM_BACKOFF=0, PAYROLL_UPSTREAM_RETRIES=2)
class SalaryGenerationTests(TestCase):
    month = 3
    year = 2026

    def test_generates_only_missing_records(self):
        employees = [make_employee(f"E{index}") for index in range(1, 11)]
        for employee in employees[:7]:
            make_record(employee.id, month=self.month, year=self.year)

        result = generate_salaries(self.month, self.year, sources=make_sources(employees))

        self.assertEqual(result.generated_count, 3)
        self.assertEqual(sorted(record.employee_id for record in result.generated), ["E10", "E8", "E9"])
        self.assertEqual(sorted(result.skipped_employee_ids), sorted(f"E{index}" for index in range(1, 8)))
        self.assertTrue(all(item.reason == "already exists" for item in result.skipped))
        self.assertEqual(SalaryRecord.objects.filter(month=self.month, year=self.year).count(), 10)

    def test_second_run_generates_nothing(self):
        sources = make_sources([make_employee("E1"), make_employee("E2")])

        first = generate_salaries(self.month, self.year, sources=sources)
        second = generate_salaries(self.month, self.year, sources=sources)

        self.assertEqual(first.generated_count, 2)
        self.assertEqual(second.generated_count, 0)
        self.assertEqual(sorted(second.skipped_employee_ids), ["E1", "E2"])
        self.assertEqual(SalaryRecord.objects.count(), 2)

    def test_duplicate_roster_entries_produce_one_record(self):
        sources = make_sources([make_employee("E1"), make_employee("E1")])

        result = generate_salaries(self.month, self.year, sources=sources)

        self.assertEqual(result.generated_count, 1)
        self.assertEqual(SalaryRecord.objects.filter(employee_id="E1").count(), 1)

    def test_generated_records_are_pending_and_consistent(self):
        attendance = FakeAttendance(
            default=AttendanceBreakdown(total_working_days=22, days_present=20, half_day_count=1, absent_days=1)
        )
        incentives = FakeIncentives({"E1": [IncentiveDetail("Quarterly bonus", "performance", "75.50")]})
        make_record("E1", month=2, year=self.year, basic_salary=Decimal("2200"), tax=Decimal("100"))

        result = generate_salaries(
            self.month,
            self.year,
            sources=make_sources([make_employee("E1")], attendance=attendance, incentives=incentives),
        )

        record = SalaryRecord.objects.get(pk=result.generated[0].pk)
        self.assertEqual(record.status, SalaryRecord.STATUS_PENDING)
        self.assertEqual(record.half_day_deduction, Decimal("50.00"))
        self.assertEqual(record.absent_deduction, Decimal("100.00"))
        self.assertEqual(record.attendance_deduction, Decimal("150.00"))
        self.assertEqual(record.incentive_amount, Decimal("75.50"))
        self.assertEqual(record.net_salary, Decimal("2025.50"))
        self.assertEqual(list(record.incentive_details.values_list("title", flat=True)), ["Quarterly bonus"])
        assert_record_invariants(self, record)

    def test_upstream_failure_skips_employee_after_retries(self):
        attendance = FakeAttendance(failing={"E2"})
        sources = make_sources([make_employee("E1"), make_employee("E2"), make_employee("E3")], attendance=attendance)

        result = generate_salaries(self.month, self.year, sources=sources)

        self.assertEqual(sorted(record.employee_id for record in result.generated), ["E1", "E3"])
        self.assertEqual(result.skipped_employee_ids, ["E2"])
        self.assertTrue(result.skipped[0].reason.startswith("upstream unavailable"))
        self.assertEqual(attendance.calls.count("E2"), 3)
        self.assertFalse(SalaryRecord.objects.filter(employee_id="E2").exists())

    @override_settings(PAYROLL_GENERATION_WORKERS=1)
    def test_record_inserted_during_run_is_reported_as_existing(self):
        class InsertingAttendance(FakeAttendance):
            def get_breakdown(self, employee_id, month, year):
                if employee_id == "E2":
                    make_record("E2", month=month, year=year)
                return super().get_breakdown(employee_id, month, year)

        sources = make_sources(
            [make_employee("E1"), make_employee("E2"), make_employee("E3")],
            attendance=InsertingAttendance(),
        )

        result = generate_salaries(self.month, self.year, sources=sources)

        self.assertEqual(sorted(record.employee_id for record in result.generated), ["E1", "E3"])
        self.assertEqual(len(result.skipped), 1)
        self.assertEqual(result.skipped[0].employee_id, "E2")
        self.assertEqual(result.skipped[0].reason, "already exists")
        self.assertEqual(SalaryRecord.objects.filter(employee_id="E2", month=self.month, year=self.year).count(), 1)

    @override_settings(PAYROLL_GENERATION_WORKERS=1)
    def test_malformed_incentive_payload_skips_only_that_employee(self):
        bad_payloads = [
            {"incentives": ["not-a-row"]},
            {"incentives": [{"title": "Bonus", "amount": "Infinity"}]},
            {"incentives": [{"title": "Bonus", "amount": "12,50"}]},
        ]
        employees = [make_employee("E1"), make_employee("E2"), make_employee("E3")]

        for month, bad_payload in enumerate(bad_payloads, start=1):
            with self.subTest(payload=bad_payload):

                def respond(url, **kwargs):
                    response = mock.Mock(status_code=200)
                    if "/employees/E2/" in url:
                        response.json.return_value = bad_payload
                    else:
                        response.json.return_value = {"incentives": [{"title": "Bonus", "amount": "10"}]}
                    return response

                session = mock.Mock()
                session.get.side_effect = respond
                sources = make_sources(
                    employees,
                    incentives=HttpIncentiveSource("http://incentives.local", session=session),
                )

                result = generate_salaries(month, self.year, sources=sources)

                self.assertEqual(sorted(record.employee_id for record in result.generated), ["E1", "E3"])
                self.assertEqual(result.skipped_employee_ids, ["E2"])
                self.assertTrue(result.skipped[0].reason.startswith("upstream unavailable"))
                self.assertTrue(all(record.incentive_amount == Decimal("10.00") for record in result.generated))

    def test_fixed_inputs_carry_forward_from_latest_prior_record(self):
        make_record(
            "E1",
            month=1,
            year=self.year,
            basic_salary=Decimal("2500"),
        )
        make_record(
            "E1",
            month=2,
            year=self.year,
            basic_salary=Decimal("3000"),
            hra=Decimal("500"),
            bonus=Decimal("100"),
            overtime=Decimal("80"),
            tax=Decimal("300"),
            loan_deduction=Decimal("50"),
            other_deductions=Decimal("25"),
            currency="EUR",
            payment_method="cheque",
        )
        # Later periods are never used as the carry-forward source.
        make_record("E1", month=5, year=self.year, basic_salary=Decimal("9999"))

        result = generate_salaries(self.month, self.year, sources=make_sources([make_employee("E1")]))

        record = result.generated[0]
        self.assertEqual(record.basic_salary, Decimal("3000.00"))
        self.assertEqual(record.hra, Decimal("500.00"))
        self.assertEqual(record.tax, Decimal("300.00"))
        self.assertEqual(record.loan_deduction, Decimal("50.00"))
        self.assertEqual(record.bonus, Decimal("0.00"))
        self.assertEqual(record.overtime, Decimal("0.00"))
        self.assertEqual(record.other_deductions, Decimal("0.00"))
        self.assertEqual(record.currency, "EUR")
        self.assertEqual(record.payment_method, "cheque")

    def test_employee_without_history_starts_from_zero(self):
        result = generate_salaries(
            self.month,
            self.year,
            sources=make_sources([make_employee("E1")]),
            currency="GBP",
        )

        record = result.generated[0]
        self.assertEqual(record.basic_salary, Decimal("0.00"))
        self.assertEqual(record.net_salary, Decimal("0.00"))
        self.assertEqual(record.currency, "GBP")
        self.assertEqual(record.pay_period, SalaryRecord.PAY_PERIOD_MONTHLY)

    def test_carry_forward_without_prior_record(self):
        fixed, admin = carry_forward_inputs(None)

        self.assertEqual(fixed, FixedCompensation())
        self.assertEqual(admin, {})

    def test_missing_working_days_use_configured_weekdays(self):
        attendance = FakeAttendance(default=AttendanceBreakdown(total_working_days=0, absent_days=1))
        make_record("E1", month=2, year=self.year, basic_salary=Decimal("2200"))

        result = generate_salaries(
            self.month,
            self.year,
            sources=make_sources([make_employee("E1")], attendance=attendance),
        )

        record = result.generated[0]
        self.assertEqual(record.total_working_days, 22)
        self.assertEqual(record.absent_deduction, Decimal("100.00"))

    def test_invalid_period_is_rejected(self):
        with self.assertRaises(ValidationError):
            generate_salaries(13, self.year, sources=make_sources())

    @override_settings(PAYROLL_GENERATION_WORKERS=1)
    def test_serial_generation_matches_parallel(self):
        employees = [make_employee(f"E{index}") for index in range(1, 4)]

        result = generate_salaries(self.month, self.year, sources=make_sources(employees))

        self.assertEqual(result.generated_count, 3)


class SalaryRecordStoreTests(TestCase):
    def test_period_is_unique_per_employee(self):
        make_record("E1")

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                make_record("E1")

    def test_save_recomputes_totals(self):
        record = make_record(
            "E1",
            basic_salary=Decimal("1000"),
            bonus=Decimal("50"),
            tax=Decimal("100"),
            attendance_deduction=Decimal("20"),
            incentive_amount=Decimal("30"),
        )

        self.assertEqual(record.gross_earnings, Decimal("1050.00"))
        self.assertEqual(record.total_deductions, Decimal("100.00"))
        self.assertEqual(record.net_salary, Decimal("960.00"))


@override_settings(PAYROLL_UPSTREAM_BACKOFF=0)
class SalaryRecordOperationTests(TestCase):
    def setUp(self):
        self.attendance = FakeAttendance(
            default=AttendanceBreakdown(total_working_days=20, days_present=19, absent_days=1)
        )
        self.incentives = FakeIncentives({"E1": [IncentiveDetail("Spot award", "recognition", "40")]})
        self.sources = make_sources([make_employee("E1")], attendance=self.attendance, incentives=self.incentives)

    def _create(self, **overrides):
        data = {
            "employee_id": "E1",
            "employee_name": "Jane Doe",
            "basic_salary": Decimal("2000"),
            "hra": Decimal("300"),
            "tax": Decimal("150"),
            "month": 3,
            "year": 2026,
        }
        data.update(overrides)
        return create_salary_record(data, sources=self.sources)

    def test_create_builds_attendance_and_incentives(self):
        record = self._create()

        self.assertEqual(record.per_day_salary, Decimal("100.00"))
        self.assertEqual(record.absent_deduction, Decimal("100.00"))
        self.assertEqual(record.incentive_amount, Decimal("40.00"))
        self.assertEqual(record.net_salary, Decimal("2090.00"))
        assert_record_invariants(self, record)

    def test_create_can_skip_attendance(self):
        record = create_salary_record(
            {"employee_id": "E1", "employee_name": "Jane Doe", "basic_salary": "2200", "month": 3, "year": 2026},
            sources=self.sources,
            skip_attendance=True,
        )

        self.assertEqual(self.attendance.calls, [])
        self.assertEqual(record.total_working_days, 22)
        self.assertEqual(record.attendance_deduction, Decimal("0.00"))

    def test_create_requires_core_fields(self):
        with self.assertRaises(ValidationError) as exc:
            create_salary_record({"employee_id": "E1", "month": 3, "year": 2026}, sources=self.sources)

        self.assertIn("employee_name", exc.exception.detail)
        self.assertIn("basic_salary", exc.exception.detail)

    def test_create_conflicts_with_existing_period(self):
        self._create()

        with self.assertRaises(ConflictError):
            self._create()
        self.assertEqual(SalaryRecord.objects.count(), 1)

    def test_create_paid_record_is_stamped(self):
        record = self._create(status=SalaryRecord.STATUS_PAID)

        self.assertEqual(record.payment_date, timezone.localdate())

    def test_manual_edit_keeps_net_consistent(self):
        record = self._create()
        attendance_before = record.attendance_deduction

        record = update_salary_record(record, {"bonus": Decimal("250"), "notes": "Quarter close"})
        record.refresh_from_db()

        self.assertEqual(record.bonus, Decimal("250.00"))
        self.assertEqual(record.gross_earnings, Decimal("2550.00"))
        self.assertEqual(record.attendance_deduction, attendance_before)
        self.assertEqual(record.notes, "Quarter close")
        assert_record_invariants(self, record)

    def test_manual_edit_into_taken_period_conflicts(self):
        self._create(month=3)
        other = self._create(month=4)

        with self.assertRaises(ConflictError):
            update_salary_record(other, {"month": 3})

    def test_recalculate_refreshes_only_derived_fields(self):
        record = self._create()
        update_salary_status(record.pk, SalaryRecord.STATUS_ON_HOLD)
        update_deduction_settings(absent_percent=Decimal("50"))
        self.incentives.incentives["E1"] = [
            IncentiveDetail("Spot award", "recognition", "40"),
            IncentiveDetail("Team award", "recognition", "10"),
        ]

        record = recalculate_salary(record.pk, sources=self.sources)
        record.refresh_from_db()

        self.assertEqual(record.status, SalaryRecord.STATUS_ON_HOLD)
        self.assertEqual(record.basic_salary, Decimal("2000.00"))
        self.assertEqual(record.absent_deduction, Decimal("50.00"))
        self.assertEqual(record.incentive_amount, Decimal("50.00"))
        self.assertEqual(record.incentive_details.count(), 2)
        assert_record_invariants(self, record)

    def test_recalculate_is_idempotent(self):
        record = self._create()

        first = recalculate_salary(record.pk, sources=self.sources)
        first.refresh_from_db()
        second = recalculate_salary(record.pk, sources=self.sources)
        second.refresh_from_db()

        for name in ("attendance_deduction", "incentive_amount", "net_salary", "per_day_salary"):
            self.assertEqual(getattr(first, name), getattr(second, name))
        self.assertEqual(second.incentive_details.count(), 1)

    def test_recalculate_unknown_record(self):
        with self.assertRaises(NotFoundError):
            recalculate_salary(uuid.uuid4(), sources=self.sources)

    @override_settings(PAYROLL_UPSTREAM_RETRIES=0)
    def test_recalculate_surfaces_upstream_failure(self):
        record = self._create()
        self.attendance.failing.add("E1")

        with self.assertRaises(UpstreamUnavailable):
            recalculate_salary(record.pk, sources=self.sources)

    def test_status_paid_stamps_payment_date_once(self):
        record = make_record("E2", payment_date=date(2026, 3, 28))

        record = update_salary_status(record.pk, SalaryRecord.STATUS_PAID)

        self.assertEqual(record.status, SalaryRecord.STATUS_PAID)
        self.assertEqual(record.payment_date, date(2026, 3, 28))

    def test_any_status_transition_is_allowed(self):
        record = make_record("E2", status=SalaryRecord.STATUS_PAID)

        record = update_salary_status(record.pk, SalaryRecord.STATUS_PENDING)

        self.assertEqual(record.status, SalaryRecord.STATUS_PENDING)

    def test_bulk_status_reports_each_record(self):
        first = make_record("E2")
        second = make_record("E3")
        missing = uuid.uuid4()

        outcomes = bulk_update_status([first.pk, missing, second.pk], SalaryRecord.STATUS_PAID)

        self.assertEqual(
            [item.outcome for item in outcomes],
            [OUTCOME_UPDATED, OUTCOME_NOT_FOUND, OUTCOME_UPDATED],
        )
        self.assertEqual(outcomes[1].id, str(missing))
        self.assertEqual(SalaryRecord.objects.filter(status=SalaryRecord.STATUS_PAID).count(), 2)

    def test_bulk_status_rejects_invalid_status(self):
        record = make_record("E2")

        with self.assertRaises(ValidationError):
            bulk_update_status([record.pk], "archived")
        record.refresh_from_db()
        self.assertEqual(record.status, SalaryRecord.STATUS_PENDING)

    def test_stats_for_period(self):
        make_record("E2", basic_salary=Decimal("1000"), status=SalaryRecord.STATUS_PAID)
        make_record("E3", basic_salary=Decimal("500"), tax=Decimal("50"))
        make_record("E4", month=4, basic_salary=Decimal("700"))

        stats = salary_stats(3, 2026)

        self.assertEqual(stats["total_employees"], 2)
        self.assertEqual(stats["total_gross"], Decimal("1500.00"))
        self.assertEqual(stats["total_deductions"], Decimal("50.00"))
        self.assertEqual(stats["total_net"], Decimal("1450.00"))
        self.assertEqual(stats["paid_count"], 1)
        self.assertEqual(stats["pending_count"], 1)

    def test_stats_for_empty_period(self):
        stats = salary_stats(1, 2020)

        self.assertEqual(stats["total_employees"], 0)
        self.assertEqual(stats["total_net"], Decimal("0.00"))

    def test_stats_reject_zero_period(self):
        with self.assertRaises(ValidationError):
            salary_stats(0, 2026)
        with self.assertRaises(ValidationError):
            salary_stats(3, 0)


class HttpSourceTests(SimpleTestCase):
    def _response(self, payload, status_code=200):
        response = mock.Mock(status_code=status_code)
        response.json.return_value = payload
        return response

    def test_attendance_accepts_camel_case_payload(self):
        session = mock.Mock()
        session.get.return_value = self._response(
            {
                "success": True,
                "data": {
                    "totalWorkingDays": 22,
                    "daysPresent": 18,
                    "paidLeaveDays": 1,
                    "halfDayCount": 2,
                    "lateCount": 3,
                    "absentDays": 0,
                },
            }
        )
        source = HttpAttendanceSource("http://attendance.local/", timeout=3, session=session)

        breakdown = source.get_breakdown("E1", 3, 2026)

        self.assertEqual(breakdown.total_working_days, 22)
        self.assertEqual(breakdown.half_day_count, 2)
        self.assertEqual(breakdown.paid_leave_days, Decimal("1"))
        session.get.assert_called_once_with(
            "http://attendance.local/employees/E1/breakdown",
            params={"month": 3, "year": 2026},
            headers={"Accept": "application/json"},
            timeout=3,
        )

    def test_incentives_and_directory_parse_rows(self):
        session = mock.Mock()
        session.get.side_effect = [
            self._response({"incentives": [{"_id": "inc-1", "title": "Sales", "type": "commission", "amount": 120}]}),
            self._response([{"_id": "E1", "fullName": "Jane Doe", "email": "jane@example.com"}, {"name": "no id"}]),
        ]

        incentives = HttpIncentiveSource("http://incentives.local", session=session).get_incentives("E1", 3, 2026)
        employees = HttpEmployeeDirectory("http://directory.local", session=session).list_employees()

        self.assertEqual(incentives[0].incentive_id, "inc-1")
        self.assertEqual(incentives[0].amount, Decimal("120.00"))
        self.assertEqual(len(employees), 1)
        self.assertEqual(employees[0].full_name, "Jane Doe")

    def test_timeout_is_reported_as_unavailable(self):
        session = mock.Mock()
        session.get.side_effect = requests.Timeout("read timed out")

        with self.assertRaises(UpstreamUnavailable):
            HttpAttendanceSource("http://attendance.local", session=session).get_breakdown("E1", 3, 2026)

    def test_error_status_is_reported_as_unavailable(self):
        session = mock.Mock()
        session.get.return_value = self._response({"message": "boom"}, status_code=502)

        with self.assertRaises(UpstreamUnavailable):
            HttpIncentiveSource("http://incentives.local", session=session).get_incentives("E1", 3, 2026)

    def test_malformed_incentive_rows_are_reported_as_unavailable(self):
        for payload in (
            {"incentives": ["not-a-row"]},
            {"incentives": [{"title": "Bonus", "amount": "Infinity"}]},
            {"incentives": [{"title": "Bonus", "amount": "12,50"}]},
            {"incentives": [{"title": "Bonus", "amount": True}]},
        ):
            with self.subTest(payload=payload):
                session = mock.Mock()
                session.get.return_value = self._response(payload)

                with self.assertRaises(UpstreamUnavailable):
                    HttpIncentiveSource("http://incentives.local", session=session).get_incentives("E1", 3, 2026)

    def test_malformed_breakdown_is_reported_as_unavailable(self):
        for payload in (
            {"totalWorkingDays": 22, "absentDays": "two"},
            {"totalWorkingDays": 22, "paidLeaveDays": "NaN"},
            {"totalWorkingDays": "many"},
            {"breakdown": ["not", "a", "dict"]},
        ):
            with self.subTest(payload=payload):
                session = mock.Mock()
                session.get.return_value = self._response(payload)

                with self.assertRaises(UpstreamUnavailable):
                    HttpAttendanceSource("http://attendance.local", session=session).get_breakdown("E1", 3, 2026)

    def test_missing_incentive_amount_counts_as_zero(self):
        session = mock.Mock()
        session.get.return_value = self._response({"incentives": [{"title": "Pending review"}]})

        incentives = HttpIncentiveSource("http://incentives.local", session=session).get_incentives("E1", 3, 2026)

        self.assertEqual(incentives[0].amount, Decimal("0.00"))

    def test_missing_base_url_is_reported_as_unavailable(self):
        with self.assertRaises(UpstreamUnavailable):
            HttpEmployeeDirectory("", session=mock.Mock()).list_employees()

    @override_settings(
        PAYROLL_SOURCES={
            "attendance": {"BASE_URL": "http://attendance.local"},
            "incentives": {"BACKEND": "payroll.sources.HttpIncentiveSource", "OPTIONS": {"timeout": 2}},
        }
    )
    def test_sources_are_built_from_settings(self):
        sources = load_payroll_sources()

        self.assertIsInstance(sources.attendance, HttpAttendanceSource)
        self.assertEqual(sources.attendance.base_url, "http://attendance.local")
        self.assertEqual(sources.incentives.timeout, 2)
        self.assertIsInstance(sources.employees, HttpEmployeeDirectory)


@override_settings(PAYROLL_UPSTREAM_BACKOFF=0)
class PayrollApiTests(APITestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="payroll-admin", password="pass")
        self.sources = make_sources([make_employee("E1"), make_employee("E2")])
        patcher = mock.patch("payroll.views.load_payroll_sources", return_value=self.sources)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_requires_authentication(self):
        resp = self.client.get(reverse("payroll-records"))
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_settings_read_and_update(self):
        self.client.force_authenticate(self.user)
        url = reverse("payroll-settings")

        resp = self.client.get(url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["half_day_percent"], "50.00")

        resp = self.client.put(url, {"late_percent": "12.5"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["late_percent"], "12.50")

    def test_settings_update_out_of_range(self):
        self.client.force_authenticate(self.user)

        resp = self.client.put(reverse("payroll-settings"), {"absent_percent": "101"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(resp.data["success"])
        self.assertIn("absent_percent", resp.data["errors"])
        self.assertEqual(get_deduction_settings().absent_percent, Decimal("100.00"))

    def test_generate_endpoint(self):
        self.client.force_authenticate(self.user)
        make_record("E1")

        resp = self.client.post(reverse("payroll-generate"), {"month": 3, "year": 2026}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        data = resp.data["data"]
        self.assertEqual(data["generated"], 1)
        self.assertEqual(data["skipped"], [{"employee_id": "E1", "reason": "already exists"}])
        self.assertEqual(data["records"][0]["employee_id"], "E2")
        self.assertEqual(SalaryRecord.objects.get(employee_id="E2").created_by_id, self.user.pk)

    def test_generate_endpoint_validates_month(self):
        self.client.force_authenticate(self.user)

        resp = self.client.post(reverse("payroll-generate"), {"month": 0, "year": 2026}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("month", resp.data["errors"])

    def test_create_and_list_records(self):
        self.client.force_authenticate(self.user)
        payload = {
            "employee_id": "E1",
            "employee_name": "Jane Doe",
            "department": "Finance",
            "basic_salary": "2200.00",
            "tax": "200.00",
            "month": 3,
            "year": 2026,
        }

        resp = self.client.post(reverse("payroll-records"), payload, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["data"]["net_salary"], "2000.00")
        self.assertEqual(resp.data["data"]["attendance_breakdown"]["total_working_days"], 22)

        resp = self.client.post(reverse("payroll-records"), payload, format="json")
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)

        make_record("E2", status=SalaryRecord.STATUS_PAID)
        resp = self.client.get(reverse("payroll-records"), {"month": 3, "year": 2026, "search": "fin"})
        self.assertEqual(resp.data["data"]["count"], 1)
        resp = self.client.get(reverse("payroll-records"), {"status": "all"})
        self.assertEqual(resp.data["data"]["count"], 2)
        resp = self.client.get(reverse("payroll-records"), {"status": SalaryRecord.STATUS_PAID})
        self.assertEqual(resp.data["data"]["results"][0]["employee_id"], "E2")

    def test_create_rejects_negative_amount(self):
        self.client.force_authenticate(self.user)
        payload = {"employee_id": "E1", "employee_name": "Jane", "basic_salary": "-5", "month": 3, "year": 2026}

        resp = self.client.post(reverse("payroll-records"), payload, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(SalaryRecord.objects.exists())

    def test_record_detail_update_and_delete(self):
        self.client.force_authenticate(self.user)
        record = make_record("E1", basic_salary=Decimal("1000"))
        url = reverse("payroll-record-detail", args=[record.pk])

        resp = self.client.put(url, {"overtime": "120.00", "payment_method": "cash"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["gross_earnings"], "1120.00")
        self.assertEqual(resp.data["data"]["net_salary"], "1120.00")

        resp = self.client.delete(url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertFalse(SalaryRecord.objects.filter(pk=record.pk).exists())

        resp = self.client.get(url)
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(resp.data["success"])

    def test_recalculate_and_status_endpoints(self):
        self.client.force_authenticate(self.user)
        record = make_record("E1", basic_salary=Decimal("2200"))
        self.sources.attendance.default = AttendanceBreakdown(total_working_days=22, half_day_count=2)

        resp = self.client.post(reverse("payroll-record-recalculate", args=[record.pk]))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["attendance_deduction"], "100.00")
        self.assertEqual(resp.data["data"]["net_salary"], "2100.00")

        resp = self.client.patch(
            reverse("payroll-record-status", args=[record.pk]),
            {"status": SalaryRecord.STATUS_PAID},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["status"], SalaryRecord.STATUS_PAID)
        self.assertIsNotNone(resp.data["data"]["payment_date"])

    def test_bulk_status_endpoint(self):
        self.client.force_authenticate(self.user)
        record = make_record("E1")
        missing = uuid.uuid4()

        resp = self.client.post(
            reverse("payroll-bulk-status"),
            {"ids": [str(record.pk), str(missing)], "status": SalaryRecord.STATUS_ON_HOLD},
            format="json",
        )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["updated"], 1)
        self.assertEqual(resp.data["data"]["results"][1]["outcome"], OUTCOME_NOT_FOUND)

    def test_stats_endpoint(self):
        self.client.force_authenticate(self.user)
        make_record("E1", basic_salary=Decimal("1000"), status=SalaryRecord.STATUS_PAID)

        resp = self.client.get(reverse("payroll-stats"), {"month": 3, "year": 2026})

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["total_employees"], 1)
        self.assertEqual(resp.data["data"]["total_net"], "1000.00")
        self.assertEqual(resp.data["data"]["paid_count"], 1)

    def test_employee_roster_and_history(self):
        self.client.force_authenticate(self.user)
        make_record("E1", month=1)
        make_record("E1", month=2)
        make_record("E2", month=2)

        resp = self.client.get(reverse("payroll-employees"))
        self.assertEqual([row["id"] for row in resp.data["data"]["results"]], ["E1", "E2"])

        resp = self.client.get(reverse("payroll-employee-records", args=["E1"]))
        self.assertEqual([row["month"] for row in resp.data["data"]["results"]], [2, 1])

    @override_settings(PAYROLL_UPSTREAM_RETRIES=0)
    def test_upstream_failure_returns_service_unavailable(self):
        self.client.force_authenticate(self.user)
        record = make_record("E1")
        self.sources.attendance.failing.add("E1")

        resp = self.client.post(reverse("payroll-record-recalculate", args=[record.pk]))

        self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(resp.data["success"])


@override_settings(PAYROLL_UPSTREAM_BACKOFF=0)
class GenerateSalariesCommandTests(TestCase):
    def test_command_generates_and_reports(self):
        make_record("E1")
        sources = make_sources([make_employee("E1"), make_employee("E2")])
        out = StringIO()

        with mock.patch("payroll.management.commands.generate_salaries.load_payroll_sources", return_value=sources):
            call_command("generate_salaries", month=3, year=2026, currency="INR", stdout=out)

        self.assertIn("Generated: 1, skipped: 1", out.getvalue())
        self.assertEqual(SalaryRecord.objects.get(employee_id="E2").currency, "INR")
