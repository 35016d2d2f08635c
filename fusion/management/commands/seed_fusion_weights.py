"""
Management command to seed the default Fusion Score metric weights.
"""

from django.core.management.base import BaseCommand

from fusion.engines.scoring import seed_default_weights


class Command(BaseCommand):
    help = 'Create the default Fusion Score metric weights for every provider'

    def add_arguments(self, parser):
        parser.add_argument(
            '--overwrite',
            action='store_true',
            help='Reset existing weights to their default values',
        )

    def handle(self, *args, **options):
        result = seed_default_weights(overwrite=options['overwrite'])

        self.stdout.write(self.style.SUCCESS(
            f"\nDone! Created {result['created']}, updated {result['updated']} metric weights."
        ))
