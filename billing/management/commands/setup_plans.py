"""
Management command to set up the default Core314 plans.
"""

from django.core.management.base import BaseCommand

from billing.models import Plan
from billing.services import DEFAULT_PLANS


class Command(BaseCommand):
    help = 'Create or update the Starter, Professional and Enterprise plans'

    def handle(self, *args, **options):
        created_count = 0
        updated_count = 0

        for plan_data in DEFAULT_PLANS:
            plan_data = dict(plan_data)
            plan, created = Plan.objects.update_or_create(
                slug=plan_data.pop('slug'),
                defaults=plan_data
            )

            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f"Created plan: {plan.name}"))
            else:
                updated_count += 1
                self.stdout.write(f"Updated plan: {plan.name}")

        self.stdout.write(self.style.SUCCESS(
            f"\nDone! Created {created_count}, updated {updated_count} plans."
        ))
