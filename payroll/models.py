import uuid
from decimal import Decimal

from django.db import models

from .calculation import (
    DEDUCTION_FIELDS,
    EARNING_FIELDS,
    FixedCompensation,
    compute_net_salary,
)


class DeductionSettings(models.Model):
    DEFAULT_PAID_LEAVE_PERCENT = Decimal("0.00")
    DEFAULT_HALF_DAY_PERCENT = Decimal("50.00")
    DEFAULT_LATE_PERCENT = Decimal("0.00")
    DEFAULT_ABSENT_PERCENT = Decimal("100.00")

    paid_leave_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=DEFAULT_PAID_LEAVE_PERCENT,
        help_text="Percent of one day's salary deducted per paid leave day.",
    )
    half_day_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=DEFAULT_HALF_DAY_PERCENT,
        help_text="Percent of one day's salary deducted per half day.",
    )
    late_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=DEFAULT_LATE_PERCENT,
        help_text="Percent of one day's salary deducted per late arrival.",
    )
    absent_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=DEFAULT_ABSENT_PERCENT,
        help_text="Percent of one day's salary deducted per absent day.",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payroll_deduction_settings"
        verbose_name = "Deduction Settings"
        verbose_name_plural = "Deduction Settings"

    def __str__(self):
        return (
            f"Deductions (leave {self.paid_leave_percent}%, half-day {self.half_day_percent}%, "
            f"late {self.late_percent}%, absent {self.absent_percent}%)"
        )


class SalaryRecord(models.Model):
    STATUS_PENDING = "pending"
    STATUS_PAID = "paid"
    STATUS_ON_HOLD = "on-hold"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PAID, "Paid"),
        (STATUS_ON_HOLD, "On hold"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    CURRENCY_CHOICES = [
        ("USD", "USD"),
        ("EUR", "EUR"),
        ("GBP", "GBP"),
        ("INR", "INR"),
        ("AUD", "AUD"),
        ("CAD", "CAD"),
    ]

    PAY_PERIOD_MONTHLY = "monthly"
    PAY_PERIOD_CHOICES = [
        (PAY_PERIOD_MONTHLY, "Monthly"),
        ("bi-weekly", "Bi-weekly"),
        ("weekly", "Weekly"),
    ]

    PAYMENT_BANK_TRANSFER = "bank-transfer"
    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_BANK_TRANSFER, "Bank transfer"),
        ("cheque", "Cheque"),
        ("cash", "Cash"),
        ("upi", "UPI"),
        ("other", "Other"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    employee_id = models.CharField(max_length=64, db_index=True)
    employee_name = models.CharField(max_length=255)
    employee_email = models.EmailField(max_length=255, blank=True, default="")
    designation = models.CharField(max_length=255, blank=True, default="")
    department = models.CharField(max_length=255, blank=True, default="")
    year = models.IntegerField()
    month = models.IntegerField()

    basic_salary = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    hra = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    allowances = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    bonus = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    overtime = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    other_earnings = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    tax = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    provident_fund = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    insurance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    loan_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    other_deductions = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    gross_earnings = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    total_deductions = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))

    total_working_days = models.PositiveIntegerField(default=0)
    days_present = models.PositiveIntegerField(default=0)
    paid_leave_days = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("0.00"))
    half_day_count = models.PositiveIntegerField(default=0)
    late_count = models.PositiveIntegerField(default=0)
    absent_days = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("0.00"))

    per_day_salary = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    paid_leave_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    half_day_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    late_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    absent_deduction = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    attendance_deduction = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))

    incentive_amount = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    net_salary = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))

    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default="USD")
    pay_period = models.CharField(max_length=10, choices=PAY_PERIOD_CHOICES, default=PAY_PERIOD_MONTHLY)
    payment_method = models.CharField(
        max_length=20,
        choices=PAYMENT_METHOD_CHOICES,
        default=PAYMENT_BANK_TRANSFER,
    )
    payment_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True, default="")

    created_by_id = models.IntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payroll_salary_records"
        verbose_name = "Salary Record"
        verbose_name_plural = "Salary Records"
        constraints = [
            models.UniqueConstraint(
                fields=["employee_id", "year", "month"],
                name="uniq_salary_record_per_employee_period",
            )
        ]
        indexes = [
            models.Index(fields=["year", "month"], name="payroll_sal_year_2f6c1e_idx"),
            models.Index(fields=["status"], name="payroll_sal_status_8a4b0d_idx"),
        ]

    def __str__(self):
        return f"Salary {self.employee_id} {self.month:02d}/{self.year}"

    @property
    def fixed_compensation(self) -> FixedCompensation:
        return FixedCompensation.from_source(self, EARNING_FIELDS + DEDUCTION_FIELDS)

    def refresh_totals(self):
        fixed = self.fixed_compensation
        self.gross_earnings = fixed.gross_earnings
        self.total_deductions = fixed.total_deductions
        self.net_salary = compute_net_salary(
            self.gross_earnings,
            Decimal(str(self.incentive_amount or 0)),
            self.total_deductions,
            Decimal(str(self.attendance_deduction or 0)),
        )

    def save(self, *args, **kwargs):
        self.refresh_totals()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = set(update_fields) | {"gross_earnings", "total_deductions", "net_salary"}
        super().save(*args, **kwargs)


class SalaryIncentive(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    salary = models.ForeignKey(
        SalaryRecord,
        on_delete=models.CASCADE,
        related_name="incentive_details",
    )
    position = models.PositiveIntegerField(default=0)
    title = models.CharField(max_length=255)
    incentive_type = models.CharField(max_length=100, blank=True, default="")
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    incentive_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        db_table = "payroll_salary_incentives"
        verbose_name = "Salary Incentive"
        verbose_name_plural = "Salary Incentives"
        ordering = ["position"]
        indexes = [
            models.Index(fields=["salary", "position"], name="payroll_sal_salary__5d7e2a_idx"),
        ]

    def __str__(self):
        return f"{self.title} {self.amount}"
