import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from .calculation import (
    FIXED_FIELDS,
    AttendanceBreakdown,
    DeductionPolicy,
    FixedCompensation,
    IncentiveDetail,
    SalaryComputation,
    build_salary,
    count_working_days,
)
from .exceptions import ConflictError, NotFoundError, UpstreamUnavailable, ValidationError
from .models import DeductionSettings, SalaryIncentive, SalaryRecord
from .sources import EmployeeProfile, PayrollSources

logger = logging.getLogger(__name__)

PERCENT_FIELDS = ("paid_leave_percent", "half_day_percent", "late_percent", "absent_percent")

# Fixed inputs copied from the most recent prior record during generation.
CARRY_FORWARD_FIELDS = (
    "basic_salary",
    "hra",
    "allowances",
    "tax",
    "provident_fund",
    "insurance",
    "loan_deduction",
)
CARRY_FORWARD_ADMIN_FIELDS = ("currency", "pay_period", "payment_method")

SNAPSHOT_FIELDS = ("employee_name", "employee_email", "designation", "department")
ADMIN_FIELDS = ("currency", "pay_period", "payment_method", "payment_date", "status", "notes")

OUTCOME_GENERATED = "generated"
OUTCOME_SKIPPED = "skipped"
OUTCOME_UPDATED = "updated"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_FAILED = "failed"

REASON_ALREADY_EXISTS = "already exists"


def validate_period(month, year) -> Tuple[int, int]:
    try:
        month = int(month)
        year = int(year)
    except (TypeError, ValueError):
        raise ValidationError({"detail": "Month and year are required."})
    if month < 1 or month > 12:
        raise ValidationError({"month": "Month must be between 1 and 12."})
    if year < 1:
        raise ValidationError({"year": "Year must be a positive number."})
    return month, year


# --- Deduction policy -------------------------------------------------------


def get_deduction_settings() -> DeductionSettings:
    """Fetch the deduction settings row, creating it with defaults when missing."""
    config = DeductionSettings.objects.order_by("pk").first()
    if config is None:
        config, _ = DeductionSettings.objects.get_or_create(pk=1)
    return config


def update_deduction_settings(**values) -> DeductionSettings:
    unknown = set(values) - set(PERCENT_FIELDS)
    if unknown:
        raise ValidationError({name: "Unknown deduction setting." for name in sorted(unknown)})

    current = get_deduction_settings()
    merged = {name: values.get(name, getattr(current, name)) for name in PERCENT_FIELDS}
    policy = DeductionPolicy(**merged)

    with transaction.atomic():
        config = DeductionSettings.objects.select_for_update().get(pk=current.pk)
        for name in PERCENT_FIELDS:
            setattr(config, name, getattr(policy, name))
        config.save(update_fields=[*PERCENT_FIELDS, "updated_at"])

    logger.info("Deduction settings updated: %s", config)
    return config


def current_policy() -> DeductionPolicy:
    return DeductionPolicy.from_settings(get_deduction_settings())


# --- Upstream lookups ---------------------------------------------------------


def _call_with_retry(fn: Callable, *args):
    retries = int(getattr(settings, "PAYROLL_UPSTREAM_RETRIES", 2))
    backoff = float(getattr(settings, "PAYROLL_UPSTREAM_BACKOFF", 0.5))
    attempt = 0
    while True:
        try:
            return fn(*args)
        except UpstreamUnavailable as exc:
            if attempt >= retries:
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.debug("Retrying %s after upstream failure (%s), attempt %s", fn, exc, attempt)
            if delay:
                time.sleep(delay)


def working_days_in_month(month: int, year: int) -> int:
    weekdays = getattr(settings, "PAYROLL_WORKING_WEEKDAYS", (0, 1, 2, 3, 4))
    return count_working_days(year, month, weekdays)


def fetch_attendance(sources: PayrollSources, employee_id: str, month: int, year: int) -> AttendanceBreakdown:
    breakdown = _call_with_retry(sources.attendance.get_breakdown, employee_id, month, year)
    if not breakdown.total_working_days:
        breakdown = breakdown.with_working_days(working_days_in_month(month, year))
    return breakdown


def fetch_incentives(sources: PayrollSources, employee_id: str, month: int, year: int) -> List[IncentiveDetail]:
    return list(_call_with_retry(sources.incentives.get_incentives, employee_id, month, year))


def fetch_employees(sources: PayrollSources) -> List[EmployeeProfile]:
    return list(_call_with_retry(sources.employees.list_employees))


# --- Persistence helpers ------------------------------------------------------


def _apply_computation(record: SalaryRecord, computation: SalaryComputation):
    for name, value in computation.derived_fields().items():
        setattr(record, name, value)


def _replace_incentive_lines(record: SalaryRecord, details: Iterable[IncentiveDetail]):
    SalaryIncentive.objects.filter(salary=record).delete()
    SalaryIncentive.objects.bulk_create(
        [
            SalaryIncentive(
                salary=record,
                position=position,
                title=detail.title,
                incentive_type=detail.incentive_type,
                amount=detail.amount,
                incentive_id=detail.incentive_id,
            )
            for position, detail in enumerate(details)
        ]
    )


def _insert_salary_record(record: SalaryRecord, computation: SalaryComputation) -> SalaryRecord:
    """Insert if absent: the unique constraint decides, not a prior lookup."""
    _apply_computation(record, computation)
    try:
        with transaction.atomic():
            record.save(force_insert=True)
            _replace_incentive_lines(record, computation.incentive_details)
    except IntegrityError as exc:
        raise ConflictError(
            f"Salary record already exists for employee {record.employee_id} "
            f"for {record.month:02d}/{record.year}."
        ) from exc
    return record


def carry_forward_inputs(prior: Optional[SalaryRecord]) -> Tuple[FixedCompensation, Dict[str, str]]:
    """Map the most recent prior record to the fixed inputs of a new record."""
    if prior is None:
        return FixedCompensation(), {}
    fixed = FixedCompensation.from_source(prior, CARRY_FORWARD_FIELDS)
    admin = {name: getattr(prior, name) for name in CARRY_FORWARD_ADMIN_FIELDS}
    return fixed, admin


def _latest_prior_records(employee_ids: Iterable[str], month: int, year: int) -> Dict[str, SalaryRecord]:
    prior_qs = (
        SalaryRecord.objects.filter(employee_id__in=list(employee_ids))
        .filter(Q(year__lt=year) | Q(year=year, month__lt=month))
        .order_by("employee_id", "-year", "-month")
    )
    latest: Dict[str, SalaryRecord] = {}
    for record in prior_qs:
        latest.setdefault(record.employee_id, record)
    return latest


# --- Generation ---------------------------------------------------------------


@dataclass
class SkippedEmployee:
    employee_id: str
    reason: str


@dataclass
class GenerationResult:
    month: int
    year: int
    generated: List[SalaryRecord] = field(default_factory=list)
    skipped: List[SkippedEmployee] = field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.generated)

    @property
    def skipped_employee_ids(self) -> List[str]:
        return [item.employee_id for item in self.skipped]


@dataclass
class _PreparedSalary:
    employee: EmployeeProfile
    computation: Optional[SalaryComputation] = None
    error: Optional[Exception] = None


def _prepare_salary(
    sources: PayrollSources,
    employee: EmployeeProfile,
    fixed: FixedCompensation,
    policy: DeductionPolicy,
    month: int,
    year: int,
) -> _PreparedSalary:
    try:
        attendance = fetch_attendance(sources, employee.id, month, year)
        incentives = fetch_incentives(sources, employee.id, month, year)
        computation = build_salary(fixed, attendance, incentives, policy)
    except (UpstreamUnavailable, ValidationError) as exc:
        return _PreparedSalary(employee=employee, error=exc)
    return _PreparedSalary(employee=employee, computation=computation)


def _error_reason(exc: Exception) -> str:
    detail = getattr(exc, "detail", None)
    if isinstance(exc, UpstreamUnavailable):
        return f"upstream unavailable: {detail or exc}"
    return f"invalid data: {detail or exc}"


def generate_salaries(
    month,
    year,
    *,
    sources: PayrollSources,
    currency: Optional[str] = None,
    pay_period: Optional[str] = None,
    created_by_id: Optional[int] = None,
) -> GenerationResult:
    month, year = validate_period(month, year)
    result = GenerationResult(month=month, year=year)

    employees = fetch_employees(sources)
    existing_ids = set(
        SalaryRecord.objects.filter(year=year, month=month).values_list("employee_id", flat=True)
    )

    pending: List[EmployeeProfile] = []
    seen = set()
    for employee in employees:
        if employee.id in seen:
            continue
        seen.add(employee.id)
        if employee.id in existing_ids:
            result.skipped.append(SkippedEmployee(employee.id, REASON_ALREADY_EXISTS))
        else:
            pending.append(employee)

    if not pending:
        logger.info("Salary generation %02d/%s: nothing to generate", month, year)
        return result

    policy = current_policy()
    prior_records = _latest_prior_records([employee.id for employee in pending], month, year)
    carried = {employee.id: carry_forward_inputs(prior_records.get(employee.id)) for employee in pending}
    default_currency = getattr(settings, "PAYROLL_DEFAULT_CURRENCY", "USD")

    def prepare(employee: EmployeeProfile) -> _PreparedSalary:
        return _prepare_salary(sources, employee, carried[employee.id][0], policy, month, year)

    workers = max(1, int(getattr(settings, "PAYROLL_GENERATION_WORKERS", 4)))
    if workers == 1 or len(pending) == 1:
        prepared = [prepare(employee) for employee in pending]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(pending))) as executor:
            prepared = list(executor.map(prepare, pending))

    for item in prepared:
        employee = item.employee
        if item.error is not None:
            reason = _error_reason(item.error)
            logger.warning("Salary generation skipped employee %s: %s", employee.id, reason)
            result.skipped.append(SkippedEmployee(employee.id, reason))
            continue

        admin = carried[employee.id][1]
        record = SalaryRecord(
            employee_id=employee.id,
            employee_name=employee.full_name,
            employee_email=employee.email,
            designation=employee.designation,
            department=employee.department,
            month=month,
            year=year,
            currency=currency or admin.get("currency") or default_currency,
            pay_period=pay_period or admin.get("pay_period") or SalaryRecord.PAY_PERIOD_MONTHLY,
            payment_method=admin.get("payment_method") or SalaryRecord.PAYMENT_BANK_TRANSFER,
            status=SalaryRecord.STATUS_PENDING,
            created_by_id=created_by_id,
        )
        for name in FIXED_FIELDS:
            setattr(record, name, getattr(item.computation.fixed, name))
        try:
            _insert_salary_record(record, item.computation)
        except ConflictError:
            result.skipped.append(SkippedEmployee(employee.id, REASON_ALREADY_EXISTS))
            continue
        result.generated.append(record)

    logger.info(
        "Salary generation %02d/%s: generated=%s skipped=%s",
        month,
        year,
        result.generated_count,
        len(result.skipped),
    )
    return result


# --- Single record operations -------------------------------------------------


def get_salary_record(record_id) -> SalaryRecord:
    record = SalaryRecord.objects.filter(pk=record_id).first()
    if record is None:
        raise NotFoundError()
    return record


def recalculate_salary(record_id, *, sources: PayrollSources) -> SalaryRecord:
    record = get_salary_record(record_id)
    attendance = fetch_attendance(sources, record.employee_id, record.month, record.year)
    incentives = fetch_incentives(sources, record.employee_id, record.month, record.year)
    policy = current_policy()

    with transaction.atomic():
        record = SalaryRecord.objects.select_for_update().filter(pk=record_id).first()
        if record is None:
            raise NotFoundError()
        computation = build_salary(record.fixed_compensation, attendance, incentives, policy)
        _apply_computation(record, computation)
        record.save(update_fields=[*computation.derived_fields().keys(), "updated_at"])
        _replace_incentive_lines(record, computation.incentive_details)

    logger.info("Salary record %s recalculated", record.pk)
    return record


def create_salary_record(
    data: Dict,
    *,
    sources: PayrollSources,
    skip_attendance: bool = False,
    created_by_id: Optional[int] = None,
) -> SalaryRecord:
    missing = [
        name
        for name in ("employee_id", "employee_name", "basic_salary", "month", "year")
        if data.get(name) in (None, "")
    ]
    if missing:
        raise ValidationError({name: "This field is required." for name in missing})
    month, year = validate_period(data["month"], data["year"])
    employee_id = str(data["employee_id"])

    fixed = FixedCompensation.from_source(data)
    incentives = fetch_incentives(sources, employee_id, month, year)
    if skip_attendance:
        attendance = AttendanceBreakdown(total_working_days=working_days_in_month(month, year))
    else:
        attendance = fetch_attendance(sources, employee_id, month, year)
    computation = build_salary(fixed, attendance, incentives, current_policy())

    record = SalaryRecord(
        employee_id=employee_id,
        month=month,
        year=year,
        currency=getattr(settings, "PAYROLL_DEFAULT_CURRENCY", "USD"),
        created_by_id=created_by_id,
    )
    for name in SNAPSHOT_FIELDS + ADMIN_FIELDS:
        if data.get(name) is not None:
            setattr(record, name, data[name])
    for name in FIXED_FIELDS:
        setattr(record, name, getattr(fixed, name))
    if record.status == SalaryRecord.STATUS_PAID and not record.payment_date:
        record.payment_date = timezone.localdate()
    return _insert_salary_record(record, computation)


def update_salary_record(record: SalaryRecord, data: Dict) -> SalaryRecord:
    """
    Apply a manual edit. Totals and net are recomputed on save; attendance and
    incentive figures stay as last computed until the record is recalculated.
    """
    fixed = FixedCompensation.from_source({name: data.get(name, getattr(record, name)) for name in FIXED_FIELDS})
    for name in FIXED_FIELDS:
        setattr(record, name, getattr(fixed, name))
    for name in SNAPSHOT_FIELDS + ADMIN_FIELDS:
        if name in data:
            setattr(record, name, data[name])
    if "month" in data or "year" in data:
        record.month, record.year = validate_period(data.get("month", record.month), data.get("year", record.year))
    if record.status == SalaryRecord.STATUS_PAID and not record.payment_date:
        record.payment_date = timezone.localdate()

    try:
        with transaction.atomic():
            record.save()
    except IntegrityError as exc:
        raise ConflictError(
            f"Salary record already exists for employee {record.employee_id} "
            f"for {record.month:02d}/{record.year}."
        ) from exc
    return record


def _validate_status(status: str) -> str:
    valid = {value for value, _ in SalaryRecord.STATUS_CHOICES}
    if status not in valid:
        raise ValidationError({"status": f"Invalid status. Expected one of: {', '.join(sorted(valid))}."})
    return status


def update_salary_status(record_id, status: str) -> SalaryRecord:
    status = _validate_status(status)
    with transaction.atomic():
        record = SalaryRecord.objects.select_for_update().filter(pk=record_id).first()
        if record is None:
            raise NotFoundError()
        record.status = status
        update_fields = ["status", "updated_at"]
        if status == SalaryRecord.STATUS_PAID and not record.payment_date:
            record.payment_date = timezone.localdate()
            update_fields.append("payment_date")
        record.save(update_fields=update_fields)
    return record


@dataclass
class StatusOutcome:
    id: str
    outcome: str
    reason: str = ""


def bulk_update_status(ids: Iterable, status: str) -> List[StatusOutcome]:
    status = _validate_status(status)
    outcomes: List[StatusOutcome] = []
    for record_id in ids:
        try:
            update_salary_status(record_id, status)
        except NotFoundError:
            outcomes.append(StatusOutcome(str(record_id), OUTCOME_NOT_FOUND, "Salary record not found."))
        except (ValidationError, IntegrityError) as exc:
            logger.warning("Bulk status update failed for %s: %s", record_id, exc)
            outcomes.append(StatusOutcome(str(record_id), OUTCOME_FAILED, str(exc)))
        else:
            outcomes.append(StatusOutcome(str(record_id), OUTCOME_UPDATED))
    return outcomes


# --- Reporting ----------------------------------------------------------------


def salary_stats(month=None, year=None) -> Dict:
    today = timezone.localdate()
    month, year = validate_period(
        today.month if month is None else month,
        today.year if year is None else year,
    )
    totals = SalaryRecord.objects.filter(month=month, year=year).aggregate(
        total_employees=Count("id"),
        total_gross=Sum("gross_earnings"),
        total_net=Sum("net_salary"),
        total_deductions=Sum("total_deductions"),
        total_attendance_deductions=Sum("attendance_deduction"),
        total_incentives=Sum("incentive_amount"),
        paid_count=Count("id", filter=Q(status=SalaryRecord.STATUS_PAID)),
        pending_count=Count("id", filter=Q(status=SalaryRecord.STATUS_PENDING)),
    )
    for key in (
        "total_gross",
        "total_net",
        "total_deductions",
        "total_attendance_deductions",
        "total_incentives",
    ):
        totals[key] = totals[key] if totals[key] is not None else Decimal("0.00")
    totals["month"] = month
    totals["year"] = year
    return totals
