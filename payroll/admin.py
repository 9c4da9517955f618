from django.contrib import admin

from .models import DeductionSettings, SalaryIncentive, SalaryRecord


class SalaryIncentiveInline(admin.TabularInline):
    model = SalaryIncentive
    extra = 0


@admin.register(SalaryRecord)
class SalaryRecordAdmin(admin.ModelAdmin):
    list_display = ("employee_name", "employee_id", "month", "year", "gross_earnings", "net_salary", "status")
    list_filter = ("status", "year", "month")
    search_fields = ("employee_name", "employee_email", "department")
    inlines = [SalaryIncentiveInline]


admin.site.register(DeductionSettings)
