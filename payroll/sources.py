"""
Clients for the collaborators the salary engine reads from: the employee
directory, the attendance aggregator and the incentive resolver.

Backends are selected through ``settings.PAYROLL_SOURCES`` so deployments (and
tests) can swap the HTTP clients for other implementations.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.utils.module_loading import import_string

import requests

from .calculation import AttendanceBreakdown, IncentiveDetail, parse_decimal
from .exceptions import UpstreamUnavailable, ValidationError

# Raised while turning an upstream payload into domain values.
MALFORMED_PAYLOAD_ERRORS = (AttributeError, TypeError, ValueError, ValidationError)

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = {
    "employees": {"BACKEND": "payroll.sources.HttpEmployeeDirectory", "BASE_URL": ""},
    "attendance": {"BACKEND": "payroll.sources.HttpAttendanceSource", "BASE_URL": ""},
    "incentives": {"BACKEND": "payroll.sources.HttpIncentiveSource", "BASE_URL": ""},
}


@dataclass(frozen=True)
class EmployeeProfile:
    id: str
    full_name: str
    email: str = ""
    department: str = ""
    designation: str = ""


def _pick(payload: Dict[str, Any], *keys, default=None):
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return default


def _unwrap(payload: Any, *keys) -> Any:
    if isinstance(payload, dict):
        for key in keys:
            if key in payload:
                return payload[key]
        if "data" in payload:
            return _unwrap(payload["data"], *keys)
    return payload


class HttpPayrollSource:
    name = "source"

    def __init__(self, base_url: str = "", *, timeout: Optional[float] = None, headers=None, session=None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout or getattr(settings, "PAYROLL_UPSTREAM_TIMEOUT", 10)
        self.headers = {"Accept": "application/json"}
        if headers:
            self.headers.update(headers)
        self.session = session or requests.Session()

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self.base_url:
            raise UpstreamUnavailable(f"No base URL configured for the {self.name} source.", source=self.name)
        url = self._build_url(path)
        try:
            response = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"{self.name} request failed: {exc}", source=self.name) from exc

        if response.status_code >= 400:
            raise UpstreamUnavailable(
                f"{self.name} request failed with status {response.status_code}.",
                source=self.name,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"{self.name} returned a non-JSON payload.", source=self.name) from exc


class HttpEmployeeDirectory(HttpPayrollSource):
    name = "employees"

    def list_employees(self) -> List[EmployeeProfile]:
        payload = _unwrap(self._get("/employees"), "employees", "results") or []
        if not isinstance(payload, list):
            raise UpstreamUnavailable("employees returned a malformed roster.", source=self.name)
        employees = []
        for row in payload:
            if not isinstance(row, dict):
                logger.warning("Skipping malformed directory row: %r", row)
                continue
            employee_id = _pick(row, "id", "_id", "employee_id", "employeeId")
            if employee_id is None:
                logger.warning("Skipping directory row without an id: %s", row)
                continue
            employees.append(
                EmployeeProfile(
                    id=str(employee_id),
                    full_name=_pick(row, "full_name", "fullName", "name", default=""),
                    email=_pick(row, "email", default=""),
                    department=_pick(row, "department", default=""),
                    designation=_pick(row, "designation", "jobTitle", "job_title", default=""),
                )
            )
        return employees


class HttpAttendanceSource(HttpPayrollSource):
    name = "attendance"

    def get_breakdown(self, employee_id: str, month: int, year: int) -> AttendanceBreakdown:
        payload = _unwrap(
            self._get(f"/employees/{employee_id}/breakdown", params={"month": month, "year": year}),
            "breakdown",
            "attendance",
        ) or {}
        try:
            return AttendanceBreakdown(
                total_working_days=int(_pick(payload, "total_working_days", "totalWorkingDays", default=0)),
                days_present=int(_pick(payload, "days_present", "daysPresent", default=0)),
                paid_leave_days=parse_decimal(_pick(payload, "paid_leave_days", "paidLeaveDays")),
                half_day_count=int(_pick(payload, "half_day_count", "halfDayCount", default=0)),
                late_count=int(_pick(payload, "late_count", "lateCount", default=0)),
                absent_days=parse_decimal(_pick(payload, "absent_days", "absentDays")),
            )
        except MALFORMED_PAYLOAD_ERRORS as exc:
            raise UpstreamUnavailable(f"attendance returned a malformed breakdown: {exc}", source=self.name) from exc


class HttpIncentiveSource(HttpPayrollSource):
    name = "incentives"

    def get_incentives(self, employee_id: str, month: int, year: int) -> List[IncentiveDetail]:
        payload = _unwrap(
            self._get(f"/employees/{employee_id}/incentives", params={"month": month, "year": year}),
            "incentives",
            "results",
        )
        try:
            return [
                IncentiveDetail(
                    title=_pick(row, "title", default=""),
                    incentive_type=_pick(row, "type", "incentive_type", default=""),
                    amount=parse_decimal(_pick(row, "amount")),
                    incentive_id=str(_pick(row, "incentive_id", "incentiveId", "id", "_id", default="")),
                )
                for row in payload or []
            ]
        except MALFORMED_PAYLOAD_ERRORS as exc:
            raise UpstreamUnavailable(f"incentives returned a malformed row: {exc}", source=self.name) from exc


@dataclass
class PayrollSources:
    employees: Any
    attendance: Any
    incentives: Any


def _build_source(key: str):
    config = dict(DEFAULT_SOURCES[key])
    config.update(getattr(settings, "PAYROLL_SOURCES", {}).get(key, {}))
    backend = import_string(config.pop("BACKEND"))
    options = dict(config.pop("OPTIONS", {}))
    if "BASE_URL" in config:
        options.setdefault("base_url", config.pop("BASE_URL"))
    return backend(**options)


def load_payroll_sources() -> PayrollSources:
    return PayrollSources(
        employees=_build_source("employees"),
        attendance=_build_source("attendance"),
        incentives=_build_source("incentives"),
    )
