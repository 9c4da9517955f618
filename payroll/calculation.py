"""
Pure salary computation.

Nothing in this module touches the database or the network: the builder takes
fixed compensation, an attendance breakdown, incentive lines and the deduction
policy, and returns every derived figure of a salary record.
"""
import calendar
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence, Tuple

from .exceptions import ValidationError

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

EARNING_FIELDS = ("basic_salary", "hra", "allowances", "bonus", "overtime", "other_earnings")
DEDUCTION_FIELDS = ("tax", "provident_fund", "insurance", "loan_deduction", "other_deductions")
FIXED_FIELDS = EARNING_FIELDS + DEDUCTION_FIELDS


def _to_decimal(value, default=ZERO) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_decimal(value, default=ZERO) -> Decimal:
    """Strict parse for values received from other services; raises ValueError."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a number: {value!r}")
    if not number.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return number


def round_money(value: Optional[Decimal]) -> Decimal:
    if value is None:
        return ZERO
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    return round_money(_to_decimal(value))


def count_working_days(year: int, month: int, weekdays: Iterable[int]) -> int:
    """Number of days in the month whose weekday (Mon=0) is a working weekday."""
    working = set(weekdays)
    last_day = calendar.monthrange(year, month)[1]
    return sum(1 for day in range(1, last_day + 1) if calendar.weekday(year, month, day) in working)


@dataclass(frozen=True)
class FixedCompensation:
    basic_salary: Decimal = ZERO
    hra: Decimal = ZERO
    allowances: Decimal = ZERO
    bonus: Decimal = ZERO
    overtime: Decimal = ZERO
    other_earnings: Decimal = ZERO
    tax: Decimal = ZERO
    provident_fund: Decimal = ZERO
    insurance: Decimal = ZERO
    loan_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO

    def __post_init__(self):
        errors = {}
        for name in FIXED_FIELDS:
            amount = _to_decimal(getattr(self, name))
            if not amount.is_finite():
                errors[name] = "Amount must be a finite number."
                continue
            amount = round_money(amount)
            if amount < 0:
                errors[name] = "Amount must be zero or positive."
            object.__setattr__(self, name, amount)
        if errors:
            raise ValidationError(errors)

    @classmethod
    def from_source(cls, source, fields: Sequence[str] = FIXED_FIELDS) -> "FixedCompensation":
        """Read fixed inputs from a mapping or an object (e.g. a SalaryRecord)."""
        if isinstance(source, dict):
            values = {name: source.get(name) for name in fields}
        else:
            values = {name: getattr(source, name, None) for name in fields}
        return cls(**{name: _to_decimal(value) for name, value in values.items()})

    @property
    def gross_earnings(self) -> Decimal:
        return round_money(sum((getattr(self, name) for name in EARNING_FIELDS), ZERO))

    @property
    def total_deductions(self) -> Decimal:
        return round_money(sum((getattr(self, name) for name in DEDUCTION_FIELDS), ZERO))


@dataclass(frozen=True)
class AttendanceBreakdown:
    total_working_days: int
    days_present: int = 0
    paid_leave_days: Decimal = ZERO
    half_day_count: int = 0
    late_count: int = 0
    absent_days: Decimal = ZERO

    def __post_init__(self):
        for name in ("paid_leave_days", "absent_days"):
            value = _to_decimal(getattr(self, name))
            if not value.is_finite():
                raise ValidationError({name: "Attendance counts must be finite numbers."})
            object.__setattr__(self, name, value)
        negative = [
            name
            for name in (
                "total_working_days",
                "days_present",
                "paid_leave_days",
                "half_day_count",
                "late_count",
                "absent_days",
            )
            if getattr(self, name) < 0
        ]
        if negative:
            raise ValidationError({name: "Attendance counts cannot be negative." for name in negative})

    def with_working_days(self, total_working_days: int) -> "AttendanceBreakdown":
        return AttendanceBreakdown(
            total_working_days=total_working_days,
            days_present=self.days_present,
            paid_leave_days=self.paid_leave_days,
            half_day_count=self.half_day_count,
            late_count=self.late_count,
            absent_days=self.absent_days,
        )


@dataclass(frozen=True)
class IncentiveDetail:
    title: str
    incentive_type: str
    amount: Decimal
    incentive_id: str = ""

    def __post_init__(self):
        amount = _to_decimal(self.amount)
        if not amount.is_finite():
            raise ValidationError({"amount": "Incentive amount must be a finite number."})
        object.__setattr__(self, "amount", round_money(amount))


@dataclass(frozen=True)
class DeductionPolicy:
    """Percent of one day's salary deducted per occurrence of each category."""

    paid_leave_percent: Decimal = ZERO
    half_day_percent: Decimal = Decimal("50")
    late_percent: Decimal = ZERO
    absent_percent: Decimal = HUNDRED

    def __post_init__(self):
        errors = {}
        for name in ("paid_leave_percent", "half_day_percent", "late_percent", "absent_percent"):
            value = _to_decimal(getattr(self, name), default=None)
            if value is None or not value.is_finite() or value < 0 or value > HUNDRED:
                errors[name] = "Percentage must be between 0 and 100."
            object.__setattr__(self, name, value)
        if errors:
            raise ValidationError(errors)

    @classmethod
    def from_settings(cls, settings_row) -> "DeductionPolicy":
        return cls(
            paid_leave_percent=settings_row.paid_leave_percent,
            half_day_percent=settings_row.half_day_percent,
            late_percent=settings_row.late_percent,
            absent_percent=settings_row.absent_percent,
        )


@dataclass(frozen=True)
class SalaryComputation:
    fixed: FixedCompensation
    attendance: AttendanceBreakdown
    gross_earnings: Decimal
    total_deductions: Decimal
    per_day_salary: Decimal
    paid_leave_deduction: Decimal
    half_day_deduction: Decimal
    late_deduction: Decimal
    absent_deduction: Decimal
    attendance_deduction: Decimal
    incentive_amount: Decimal
    net_salary: Decimal
    incentive_details: Tuple[IncentiveDetail, ...] = field(default_factory=tuple)

    def derived_fields(self) -> dict:
        """Column values the builder owns on a stored salary record."""
        return {
            "gross_earnings": self.gross_earnings,
            "total_deductions": self.total_deductions,
            "total_working_days": self.attendance.total_working_days,
            "days_present": self.attendance.days_present,
            "paid_leave_days": self.attendance.paid_leave_days,
            "half_day_count": self.attendance.half_day_count,
            "late_count": self.attendance.late_count,
            "absent_days": self.attendance.absent_days,
            "per_day_salary": self.per_day_salary,
            "paid_leave_deduction": self.paid_leave_deduction,
            "half_day_deduction": self.half_day_deduction,
            "late_deduction": self.late_deduction,
            "absent_deduction": self.absent_deduction,
            "attendance_deduction": self.attendance_deduction,
            "incentive_amount": self.incentive_amount,
            "net_salary": self.net_salary,
        }


def compute_net_salary(
    gross_earnings: Decimal,
    incentive_amount: Decimal,
    total_deductions: Decimal,
    attendance_deduction: Decimal,
) -> Decimal:
    # All terms are already whole minor units, so the sum is exact.
    return gross_earnings + incentive_amount - total_deductions - attendance_deduction


def build_salary(
    fixed: FixedCompensation,
    attendance: AttendanceBreakdown,
    incentives: Iterable[IncentiveDetail],
    policy: DeductionPolicy,
) -> SalaryComputation:
    incentives = tuple(incentives)

    if attendance.total_working_days > 0:
        per_day = fixed.basic_salary / Decimal(attendance.total_working_days)
    else:
        per_day = ZERO

    paid_leave = per_day * policy.paid_leave_percent / HUNDRED * attendance.paid_leave_days
    half_day = per_day * policy.half_day_percent / HUNDRED * Decimal(attendance.half_day_count)
    late = per_day * policy.late_percent / HUNDRED * Decimal(attendance.late_count)
    absent = per_day * policy.absent_percent / HUNDRED * attendance.absent_days

    gross = fixed.gross_earnings
    deductions = fixed.total_deductions
    attendance_deduction = round_money(paid_leave + half_day + late + absent)
    incentive_amount = round_money(sum((item.amount for item in incentives), ZERO))

    return SalaryComputation(
        fixed=fixed,
        attendance=attendance,
        gross_earnings=gross,
        total_deductions=deductions,
        per_day_salary=round_money(per_day),
        paid_leave_deduction=round_money(paid_leave),
        half_day_deduction=round_money(half_day),
        late_deduction=round_money(late),
        absent_deduction=round_money(absent),
        attendance_deduction=attendance_deduction,
        incentive_amount=incentive_amount,
        net_salary=compute_net_salary(gross, incentive_amount, deductions, attendance_deduction),
        incentive_details=incentives,
    )
