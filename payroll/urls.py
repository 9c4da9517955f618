from django.urls import path

from .views import (
    DeductionSettingsView,
    EmployeeSalaryHistoryView,
    PayrollEmployeeListView,
    SalaryBulkStatusView,
    SalaryGenerateView,
    SalaryRecordDetailView,
    SalaryRecordListView,
    SalaryRecordRecalculateView,
    SalaryRecordStatusView,
    SalaryStatsView,
)

urlpatterns = [
    path("settings/", DeductionSettingsView.as_view(), name="payroll-settings"),
    path("records/", SalaryRecordListView.as_view(), name="payroll-records"),
    path("records/<uuid:record_id>/", SalaryRecordDetailView.as_view(), name="payroll-record-detail"),
    path(
        "records/<uuid:record_id>/recalculate/",
        SalaryRecordRecalculateView.as_view(),
        name="payroll-record-recalculate",
    ),
    path("records/<uuid:record_id>/status/", SalaryRecordStatusView.as_view(), name="payroll-record-status"),
    path("bulk-status/", SalaryBulkStatusView.as_view(), name="payroll-bulk-status"),
    path("generate/", SalaryGenerateView.as_view(), name="payroll-generate"),
    path("stats/", SalaryStatsView.as_view(), name="payroll-stats"),
    path("employees/", PayrollEmployeeListView.as_view(), name="payroll-employees"),
    path(
        "employees/<str:employee_id>/records/",
        EmployeeSalaryHistoryView.as_view(),
        name="payroll-employee-records",
    ),
]
