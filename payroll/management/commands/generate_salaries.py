from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from payroll.exceptions import UpstreamUnavailable, ValidationError
from payroll.models import SalaryRecord
from payroll.services import generate_salaries
from payroll.sources import load_payroll_sources


class Command(BaseCommand):
    help = "Generate pending salary records for every employee without one in the given month."

    def add_arguments(self, parser):
        today = timezone.localdate()
        parser.add_argument("--month", type=int, default=today.month)
        parser.add_argument("--year", type=int, default=today.year)
        parser.add_argument(
            "--currency",
            choices=[value for value, _ in SalaryRecord.CURRENCY_CHOICES],
            default=None,
        )
        parser.add_argument(
            "--pay-period",
            dest="pay_period",
            choices=[value for value, _ in SalaryRecord.PAY_PERIOD_CHOICES],
            default=None,
        )

    def handle(self, *args, **options):
        month, year = options["month"], options["year"]
        self.stdout.write(f"Generating salaries for {month:02d}/{year}...")

        try:
            result = generate_salaries(
                month,
                year,
                sources=load_payroll_sources(),
                currency=options["currency"],
                pay_period=options["pay_period"],
            )
        except (UpstreamUnavailable, ValidationError) as e:
            raise CommandError(str(getattr(e, "detail", e)))

        for record in result.generated:
            self.stdout.write(self.style.SUCCESS(f"Generated salary for {record.employee_id} ({record.net_salary})"))
        for item in result.skipped:
            self.stdout.write(self.style.WARNING(f"Skipped {item.employee_id}: {item.reason}"))

        self.stdout.write(
            self.style.SUCCESS(
                f"Salary generation complete. Generated: {result.generated_count}, skipped: {len(result.skipped)}"
            )
        )
