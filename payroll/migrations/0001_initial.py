import uuid
from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion


def _money(max_digits=14):
    return models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=max_digits)


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DeductionSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("paid_leave_percent", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Percent of one day's salary deducted per paid leave day.", max_digits=5)),
                ("half_day_percent", models.DecimalField(decimal_places=2, default=Decimal("50.00"), help_text="Percent of one day's salary deducted per half day.", max_digits=5)),
                ("late_percent", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Percent of one day's salary deducted per late arrival.", max_digits=5)),
                ("absent_percent", models.DecimalField(decimal_places=2, default=Decimal("100.00"), help_text="Percent of one day's salary deducted per absent day.", max_digits=5)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Deduction Settings",
                "verbose_name_plural": "Deduction Settings",
                "db_table": "payroll_deduction_settings",
            },
        ),
        migrations.CreateModel(
            name="SalaryRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("employee_id", models.CharField(db_index=True, max_length=64)),
                ("employee_name", models.CharField(max_length=255)),
                ("employee_email", models.EmailField(blank=True, default="", max_length=255)),
                ("designation", models.CharField(blank=True, default="", max_length=255)),
                ("department", models.CharField(blank=True, default="", max_length=255)),
                ("year", models.IntegerField()),
                ("month", models.IntegerField()),
                ("basic_salary", _money()),
                ("hra", _money()),
                ("allowances", _money()),
                ("bonus", _money()),
                ("overtime", _money()),
                ("other_earnings", _money()),
                ("tax", _money()),
                ("provident_fund", _money()),
                ("insurance", _money()),
                ("loan_deduction", _money()),
                ("other_deductions", _money()),
                ("gross_earnings", _money(16)),
                ("total_deductions", _money(16)),
                ("total_working_days", models.PositiveIntegerField(default=0)),
                ("days_present", models.PositiveIntegerField(default=0)),
                ("paid_leave_days", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=6)),
                ("half_day_count", models.PositiveIntegerField(default=0)),
                ("late_count", models.PositiveIntegerField(default=0)),
                ("absent_days", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=6)),
                ("per_day_salary", _money()),
                ("paid_leave_deduction", _money()),
                ("half_day_deduction", _money()),
                ("late_deduction", _money()),
                ("absent_deduction", _money()),
                ("attendance_deduction", _money(16)),
                ("incentive_amount", _money(16)),
                ("net_salary", _money(16)),
                ("currency", models.CharField(choices=[("USD", "USD"), ("EUR", "EUR"), ("GBP", "GBP"), ("INR", "INR"), ("AUD", "AUD"), ("CAD", "CAD")], default="USD", max_length=3)),
                ("pay_period", models.CharField(choices=[("monthly", "Monthly"), ("bi-weekly", "Bi-weekly"), ("weekly", "Weekly")], default="monthly", max_length=10)),
                ("payment_method", models.CharField(choices=[("bank-transfer", "Bank transfer"), ("cheque", "Cheque"), ("cash", "Cash"), ("upi", "UPI"), ("other", "Other")], default="bank-transfer", max_length=20)),
                ("payment_date", models.DateField(blank=True, null=True)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("on-hold", "On hold"), ("cancelled", "Cancelled")], default="pending", max_length=10)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_by_id", models.IntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Salary Record",
                "verbose_name_plural": "Salary Records",
                "db_table": "payroll_salary_records",
                "indexes": [
                    models.Index(fields=["year", "month"], name="payroll_sal_year_2f6c1e_idx"),
                    models.Index(fields=["status"], name="payroll_sal_status_8a4b0d_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("employee_id", "year", "month"), name="uniq_salary_record_per_employee_period"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SalaryIncentive",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField(default=0)),
                ("title", models.CharField(max_length=255)),
                ("incentive_type", models.CharField(blank=True, default="", max_length=100)),
                ("amount", _money()),
                ("incentive_id", models.CharField(blank=True, default="", max_length=64)),
                ("salary", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="incentive_details", to="payroll.salaryrecord")),
            ],
            options={
                "verbose_name": "Salary Incentive",
                "verbose_name_plural": "Salary Incentives",
                "db_table": "payroll_salary_incentives",
                "ordering": ["position"],
                "indexes": [
                    models.Index(fields=["salary", "position"], name="payroll_sal_salary__5d7e2a_idx"),
                ],
            },
        ),
    ]
