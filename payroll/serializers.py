from decimal import Decimal

from rest_framework import serializers

from .models import DeductionSettings, SalaryIncentive, SalaryRecord


def _money_field(**kwargs):
    kwargs.setdefault("required", False)
    return serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal("0"), **kwargs)


class DeductionSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeductionSettings
        fields = ["paid_leave_percent", "half_day_percent", "late_percent", "absent_percent", "updated_at"]
        read_only_fields = ["updated_at"]
        extra_kwargs = {
            name: {"min_value": Decimal("0"), "max_value": Decimal("100"), "required": False}
            for name in ["paid_leave_percent", "half_day_percent", "late_percent", "absent_percent"]
        }


class SalaryIncentiveSerializer(serializers.ModelSerializer):
    class Meta:
        model = SalaryIncentive
        fields = ["title", "incentive_type", "amount", "incentive_id"]
        read_only_fields = fields


class SalaryRecordSerializer(serializers.ModelSerializer):
    attendance_breakdown = serializers.SerializerMethodField()
    incentive_details = SalaryIncentiveSerializer(many=True, read_only=True)

    class Meta:
        model = SalaryRecord
        fields = [
            "id",
            "employee_id",
            "employee_name",
            "employee_email",
            "designation",
            "department",
            "month",
            "year",
            "basic_salary",
            "hra",
            "allowances",
            "bonus",
            "overtime",
            "other_earnings",
            "tax",
            "provident_fund",
            "insurance",
            "loan_deduction",
            "other_deductions",
            "gross_earnings",
            "total_deductions",
            "attendance_breakdown",
            "attendance_deduction",
            "incentive_amount",
            "incentive_details",
            "net_salary",
            "currency",
            "pay_period",
            "payment_method",
            "payment_date",
            "status",
            "notes",
            "created_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_attendance_breakdown(self, obj):
        money = serializers.DecimalField(max_digits=14, decimal_places=2)
        return {
            "total_working_days": obj.total_working_days,
            "days_present": obj.days_present,
            "paid_leave_days": money.to_representation(obj.paid_leave_days),
            "half_day_count": obj.half_day_count,
            "late_count": obj.late_count,
            "absent_days": money.to_representation(obj.absent_days),
            "per_day_salary": money.to_representation(obj.per_day_salary),
            "paid_leave_deduction": money.to_representation(obj.paid_leave_deduction),
            "half_day_deduction": money.to_representation(obj.half_day_deduction),
            "late_deduction": money.to_representation(obj.late_deduction),
            "absent_deduction": money.to_representation(obj.absent_deduction),
        }


class SalaryRecordWriteSerializer(serializers.Serializer):
    employee_id = serializers.CharField(max_length=64)
    employee_name = serializers.CharField(max_length=255)
    employee_email = serializers.EmailField(required=False, allow_blank=True)
    designation = serializers.CharField(max_length=255, required=False, allow_blank=True)
    department = serializers.CharField(max_length=255, required=False, allow_blank=True)
    month = serializers.IntegerField(min_value=1, max_value=12)
    year = serializers.IntegerField(min_value=1)

    basic_salary = _money_field(required=True)
    hra = _money_field()
    allowances = _money_field()
    bonus = _money_field()
    overtime = _money_field()
    other_earnings = _money_field()
    tax = _money_field()
    provident_fund = _money_field()
    insurance = _money_field()
    loan_deduction = _money_field()
    other_deductions = _money_field()

    currency = serializers.ChoiceField(choices=SalaryRecord.CURRENCY_CHOICES, required=False)
    pay_period = serializers.ChoiceField(choices=SalaryRecord.PAY_PERIOD_CHOICES, required=False)
    payment_method = serializers.ChoiceField(choices=SalaryRecord.PAYMENT_METHOD_CHOICES, required=False)
    payment_date = serializers.DateField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=SalaryRecord.STATUS_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    skip_attendance = serializers.BooleanField(required=False, default=False)


class SalaryStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SalaryRecord.STATUS_CHOICES)


class SalaryBulkStatusSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    status = serializers.ChoiceField(choices=SalaryRecord.STATUS_CHOICES)


class SalaryGenerateSerializer(serializers.Serializer):
    month = serializers.IntegerField(min_value=1, max_value=12)
    year = serializers.IntegerField(min_value=1)
    currency = serializers.ChoiceField(choices=SalaryRecord.CURRENCY_CHOICES, required=False)
    pay_period = serializers.ChoiceField(choices=SalaryRecord.PAY_PERIOD_CHOICES, required=False)


class SkippedEmployeeSerializer(serializers.Serializer):
    employee_id = serializers.CharField()
    reason = serializers.CharField()


class StatusOutcomeSerializer(serializers.Serializer):
    id = serializers.CharField()
    outcome = serializers.CharField()
    reason = serializers.CharField(allow_blank=True)


class SalaryStatsSerializer(serializers.Serializer):
    total_employees = serializers.IntegerField()
    total_gross = serializers.DecimalField(max_digits=18, decimal_places=2)
    total_net = serializers.DecimalField(max_digits=18, decimal_places=2)
    total_deductions = serializers.DecimalField(max_digits=18, decimal_places=2)
    total_attendance_deductions = serializers.DecimalField(max_digits=18, decimal_places=2)
    total_incentives = serializers.DecimalField(max_digits=18, decimal_places=2)
    paid_count = serializers.IntegerField()
    pending_count = serializers.IntegerField()
    month = serializers.IntegerField()
    year = serializers.IntegerField()


class EmployeeProfileSerializer(serializers.Serializer):
    id = serializers.CharField()
    full_name = serializers.CharField()
    email = serializers.CharField(allow_blank=True)
    department = serializers.CharField(allow_blank=True)
    designation = serializers.CharField(allow_blank=True)
