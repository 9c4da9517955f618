from django.db.models import Q
from rest_framework import permissions
from rest_framework.views import APIView

from .exceptions import ValidationError
from .models import SalaryRecord
from .serializers import (
    DeductionSettingsSerializer,
    EmployeeProfileSerializer,
    SalaryBulkStatusSerializer,
    SalaryGenerateSerializer,
    SalaryRecordSerializer,
    SalaryRecordWriteSerializer,
    SalaryStatsSerializer,
    SalaryStatusSerializer,
    SkippedEmployeeSerializer,
    StatusOutcomeSerializer,
)
from .services import (
    OUTCOME_UPDATED,
    bulk_update_status,
    create_salary_record,
    fetch_employees,
    generate_salaries,
    get_deduction_settings,
    get_salary_record,
    recalculate_salary,
    salary_stats,
    update_deduction_settings,
    update_salary_record,
    update_salary_status,
)
from .sources import load_payroll_sources
from .utils import api_response


def _int_param(request, name):
    value = request.query_params.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be an integer."})


def _records_queryset():
    return SalaryRecord.objects.prefetch_related("incentive_details")


class DeductionSettingsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        serializer = DeductionSettingsSerializer(get_deduction_settings())
        return api_response(success=True, message="Deduction settings retrieved.", data=serializer.data)

    def put(self, request):
        serializer = DeductionSettingsSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        config = update_deduction_settings(**serializer.validated_data)
        return api_response(
            success=True,
            message="Deduction settings updated.",
            data=DeductionSettingsSerializer(config).data,
        )


class SalaryRecordListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        qs = _records_queryset()
        month = _int_param(request, "month")
        year = _int_param(request, "year")
        status = request.query_params.get("status")
        employee_id = request.query_params.get("employee_id")
        search = (request.query_params.get("search") or "").strip()

        if month:
            qs = qs.filter(month=month)
        if year:
            qs = qs.filter(year=year)
        if status and status != "all":
            qs = qs.filter(status=status)
        if employee_id:
            qs = qs.filter(employee_id=employee_id)
        if search:
            qs = qs.filter(
                Q(employee_name__icontains=search)
                | Q(employee_email__icontains=search)
                | Q(department__icontains=search)
            )

        serializer = SalaryRecordSerializer(qs.order_by("-year", "-month", "employee_name"), many=True)
        return api_response(
            success=True,
            message="Salary records retrieved.",
            data={"results": serializer.data, "count": len(serializer.data)},
        )

    def post(self, request):
        serializer = SalaryRecordWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        skip_attendance = data.pop("skip_attendance", False)

        record = create_salary_record(
            data,
            sources=load_payroll_sources(),
            skip_attendance=skip_attendance,
            created_by_id=request.user.pk,
        )
        return api_response(
            success=True,
            message="Salary record created.",
            data=SalaryRecordSerializer(record).data,
            status=201,
        )


class SalaryRecordDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, record_id):
        record = get_salary_record(record_id)
        return api_response(success=True, message="Salary record retrieved.", data=SalaryRecordSerializer(record).data)

    def put(self, request, record_id):
        record = get_salary_record(record_id)
        serializer = SalaryRecordWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data.pop("skip_attendance", None)
        # The employee reference is fixed once a record exists.
        data.pop("employee_id", None)

        record = update_salary_record(record, data)
        return api_response(success=True, message="Salary record updated.", data=SalaryRecordSerializer(record).data)

    def delete(self, request, record_id):
        record = get_salary_record(record_id)
        record.delete()
        return api_response(success=True, message="Salary record deleted.")


class SalaryRecordRecalculateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, record_id):
        record = recalculate_salary(record_id, sources=load_payroll_sources())
        return api_response(
            success=True,
            message="Salary recalculated.",
            data=SalaryRecordSerializer(record).data,
        )


class SalaryRecordStatusView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, record_id):
        serializer = SalaryStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = update_salary_status(record_id, serializer.validated_data["status"])
        return api_response(
            success=True,
            message=f"Salary marked as {record.status}.",
            data=SalaryRecordSerializer(record).data,
        )


class SalaryBulkStatusView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = SalaryBulkStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcomes = bulk_update_status(serializer.validated_data["ids"], serializer.validated_data["status"])
        updated = sum(1 for item in outcomes if item.outcome == OUTCOME_UPDATED)
        return api_response(
            success=True,
            message=f"{updated} of {len(outcomes)} salary records updated.",
            data={
                "results": StatusOutcomeSerializer(outcomes, many=True).data,
                "updated": updated,
                "count": len(outcomes),
            },
        )


class SalaryGenerateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = SalaryGenerateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = generate_salaries(
            data["month"],
            data["year"],
            sources=load_payroll_sources(),
            currency=data.get("currency"),
            pay_period=data.get("pay_period"),
            created_by_id=request.user.pk,
        )
        return api_response(
            success=True,
            message=f"Generated {result.generated_count} salary records.",
            data={
                "month": result.month,
                "year": result.year,
                "generated": result.generated_count,
                "skipped": SkippedEmployeeSerializer(result.skipped, many=True).data,
                "records": SalaryRecordSerializer(result.generated, many=True).data,
            },
            status=201 if result.generated_count else 200,
        )


class SalaryStatsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        stats = salary_stats(_int_param(request, "month"), _int_param(request, "year"))
        return api_response(success=True, message="Salary statistics retrieved.", data=SalaryStatsSerializer(stats).data)


class PayrollEmployeeListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        employees = fetch_employees(load_payroll_sources())
        serializer = EmployeeProfileSerializer(employees, many=True)
        return api_response(
            success=True,
            message="Employees retrieved.",
            data={"results": serializer.data, "count": len(serializer.data)},
        )


class EmployeeSalaryHistoryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, employee_id):
        qs = _records_queryset().filter(employee_id=employee_id).order_by("-year", "-month")
        serializer = SalaryRecordSerializer(qs, many=True)
        return api_response(
            success=True,
            message="Salary history retrieved.",
            data={"results": serializer.data, "count": len(serializer.data)},
        )
