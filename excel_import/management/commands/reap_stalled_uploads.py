from django.core.management.base import BaseCommand

from excel_import.utils.stalled_session_reaper import StalledSessionReaper


class Command(BaseCommand):
    help = 'Mark upload sessions stuck in progress as failed'

    def add_arguments(self, parser):
        parser.add_argument('--minutes', type=int, default=None,
                            help='Sessions not updated for this many minutes are stalled (default: UPLOAD_STALL_MINUTES)')
        parser.add_argument('--dry-run', action='store_true',
                            help='List the stalled sessions without changing them')
        parser.add_argument('--specific', type=str, default=None, metavar='UPLOAD_ID',
                            help='Fail this in-progress session regardless of its age')

    def handle(self, *args, **options):
        report = StalledSessionReaper().reap(
            minutes=options['minutes'], dry_run=options['dry_run'], upload_id=options['specific'])

        if not report.matched:
            self.stdout.write(self.style.SUCCESS('No stalled upload sessions found.'))
            return

        for session in report.matched:
            summary = session.summary or {}
            self.stdout.write(
                f"{session.upload_id}  {session.file_name}  last updated {session.updated_at:%Y-%m-%d %H:%M:%S}  "
                f"batches: {summary.get('successful_batches', 0)} succeeded, "
                f"{summary.get('failed_batches', 0)} failed, {summary.get('pending_batches', 0)} pending")

        if report.dry_run:
            self.stdout.write(self.style.WARNING(
                f"Dry run: {len(report.matched)} stalled session(s) would be marked failed."))
        else:
            self.stdout.write(self.style.SUCCESS(f"Marked {report.fixed} stalled session(s) as failed."))
