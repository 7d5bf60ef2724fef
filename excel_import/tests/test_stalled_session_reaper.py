from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from excel_import.models import UploadSession
from excel_import.tests.fixtures import create_project, create_user
from excel_import.utils import batch_plan
from excel_import.utils.stalled_session_reaper import STALLED_BATCH_MESSAGE, StalledSessionReaper


class TestStalledSessionReaper(TestCase):
    def setUp(self):
        self.user = create_user()
        self.project = create_project()
        self.stalled = self._session(minutes_ago=90)
        self.fresh = self._session(minutes_ago=5)

    def _session(self, minutes_ago, status=batch_plan.IN_PROGRESS):
        session = UploadSession.objects.create_session(
            project=self.project, user=self.user, file_name='elements.xlsx', file_path='/tmp/elements.xlsx',
            total_rows=100, batch_size=50)
        session.update_batch_status(1, batch_plan.SUCCESS, elements_created=[1, 2])
        session.save()
        # update() bypasses auto_now so the session looks idle
        UploadSession.objects.filter(pk=session.pk).update(
            status=status, updated_at=timezone.now() - timedelta(minutes=minutes_ago))
        return UploadSession.objects.get(pk=session.pk)

    def test_stalled_session_is_failed(self):
        report = StalledSessionReaper().reap(minutes=60)

        self.assertEqual([s.pk for s in report.matched], [self.stalled.pk])
        self.assertEqual(report.fixed, 1)
        stalled = UploadSession.objects.get(pk=self.stalled.pk)
        self.assertEqual(stalled.status, batch_plan.SESSION_FAILED)
        self.assertIsNotNone(stalled.completed_at)
        # Committed batches are left alone
        self.assertEqual(stalled.get_batch(1)['status'], batch_plan.SUCCESS)
        self.assertEqual(stalled.summary['total_elements_created'], 2)
        # The batch the worker never reached is failed so it can be retried
        self.assertEqual(stalled.get_batch(2)['status'], batch_plan.FAILED)
        self.assertEqual(stalled.get_batch(2)['error_message'], STALLED_BATCH_MESSAGE)
        self.assertEqual(stalled.summary['pending_batches'], 0)
        self.assertEqual(stalled.summary['failed_batches'], 1)
        self.assertEqual(UploadSession.objects.get(pk=self.fresh.pk).status, batch_plan.IN_PROGRESS)

    def test_dry_run_changes_nothing(self):
        report = StalledSessionReaper().reap(minutes=60, dry_run=True)

        self.assertEqual(len(report.matched), 1)
        self.assertEqual(report.fixed, 0)
        self.assertTrue(report.to_json_object()['dry_run'])
        self.assertEqual(UploadSession.objects.get(pk=self.stalled.pk).status, batch_plan.IN_PROGRESS)

    def test_threshold_defaults_to_setting(self):
        with self.settings(UPLOAD_STALL_MINUTES=3):
            report = StalledSessionReaper().reap()
        self.assertEqual(report.fixed, 2)

    def test_specific_session_ignores_age(self):
        report = StalledSessionReaper().reap(upload_id=str(self.fresh.upload_id))

        self.assertEqual([s.pk for s in report.matched], [self.fresh.pk])
        self.assertEqual(UploadSession.objects.get(pk=self.fresh.pk).status, batch_plan.SESSION_FAILED)
        self.assertEqual(UploadSession.objects.get(pk=self.stalled.pk).status, batch_plan.IN_PROGRESS)

    def test_finished_sessions_are_never_reaped(self):
        finished = self._session(minutes_ago=500, status=batch_plan.PARTIAL_SUCCESS)
        StalledSessionReaper().reap(minutes=60)
        self.assertEqual(UploadSession.objects.get(pk=finished.pk).status, batch_plan.PARTIAL_SUCCESS)


class TestReapStalledUploadsCommand(TestCase):
    def setUp(self):
        user = create_user()
        project = create_project()
        self.session = UploadSession.objects.create_session(
            project=project, user=user, file_name='elements.xlsx', file_path='/tmp/elements.xlsx',
            total_rows=10, batch_size=50)
        UploadSession.objects.filter(pk=self.session.pk).update(updated_at=timezone.now() - timedelta(hours=2))

    def test_dry_run(self):
        out = StringIO()
        call_command('reap_stalled_uploads', '--minutes', '60', '--dry-run', stdout=out)

        self.assertIn(str(self.session.upload_id), out.getvalue())
        self.assertIn('Dry run: 1 stalled session(s) would be marked failed.', out.getvalue())
        self.assertEqual(UploadSession.objects.get(pk=self.session.pk).status, batch_plan.IN_PROGRESS)

    def test_reaps(self):
        out = StringIO()
        call_command('reap_stalled_uploads', stdout=out)

        self.assertIn('Marked 1 stalled session(s) as failed.', out.getvalue())
        self.assertEqual(UploadSession.objects.get(pk=self.session.pk).status, batch_plan.SESSION_FAILED)

    def test_nothing_to_do(self):
        out = StringIO()
        call_command('reap_stalled_uploads', '--minutes', '500', stdout=out)
        self.assertIn('No stalled upload sessions found.', out.getvalue())
