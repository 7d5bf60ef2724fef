from datetime import timedelta

from django.test import TestCase

from excel_import.errors import BatchNotFoundError, StateError
from excel_import.models import UploadSession
from excel_import.tests.fixtures import create_project, create_user
from excel_import.utils import batch_plan


class TestUploadSession(TestCase):
    def setUp(self):
        self.user = create_user()
        self.project = create_project()
        self.session = UploadSession.objects.create_session(
            project=self.project, user=self.user, file_name='elements.xlsx', file_path='/tmp/elements.xlsx',
            total_rows=120, batch_size=50)

    def test_create_session_plans_every_batch(self):
        session = UploadSession.objects.get(pk=self.session.pk)
        self.assertEqual(session.total_batches, 3)
        self.assertEqual(session.status, batch_plan.IN_PROGRESS)
        self.assertIsNone(session.completed_at)
        self.assertEqual(session.summary['pending_batches'], 3)
        self.assertEqual(len(session.get_pending_batches()), 3)

    def test_update_batch_status_recomputes_summary_and_status(self):
        self.session.update_batch_status(1, batch_plan.SUCCESS, elements_created=[1, 2], jobs_created=[5])
        self.session.update_batch_status(2, batch_plan.SUCCESS, elements_created=[3], duplicates_skipped=4)
        self.assertEqual(self.session.status, batch_plan.IN_PROGRESS)

        self.session.update_batch_status(3, batch_plan.FAILED, error_message='boom')
        self.session.save()

        session = UploadSession.objects.get(pk=self.session.pk)
        self.assertEqual(session.status, batch_plan.PARTIAL_SUCCESS)
        self.assertIsNotNone(session.completed_at)
        self.assertEqual(session.summary['total_elements_created'], 3)
        self.assertEqual(session.summary['total_jobs_created'], 1)
        self.assertEqual(session.summary['duplicates_skipped'], 4)
        self.assertEqual(session.get_batch(3)['error_message'], 'boom')
        self.assertIsNotNone(session.get_batch(3)['processed_at'])

    def test_processed_at_is_stamped_when_the_outcome_is_recorded(self):
        self.session.update_batch_status(1, batch_plan.PROCESSING)
        self.assertIsNone(self.session.get_batch(1)['processed_at'])

        self.session.update_batch_status(1, batch_plan.SUCCESS, elements_created=[1])
        self.assertIsNotNone(self.session.get_batch(1)['processed_at'])

    def test_completed_at_is_kept_once_finished(self):
        for number in (1, 2, 3):
            self.session.update_batch_status(number, batch_plan.SUCCESS, elements_created=[number])
        finished_at = self.session.completed_at - timedelta(hours=1)
        self.session.completed_at = finished_at

        self.assertEqual(self.session.retry_all_failed(), 0)

        self.assertEqual(self.session.status, batch_plan.COMPLETED)
        self.assertEqual(self.session.completed_at, finished_at)

    def test_only_failed_batches_can_be_retried(self):
        self.session.update_batch_status(1, batch_plan.SUCCESS, elements_created=[1])
        with self.assertRaises(StateError):
            self.session.retry_batch(1)
        with self.assertRaises(StateError):
            self.session.retry_batch(2)

    def test_retry_returns_failed_batch_to_pending(self):
        for number in (1, 2, 3):
            self.session.update_batch_status(number, batch_plan.FAILED, error_message='boom',
                                             error_details={'type': 'IntegrityError'})
        self.assertEqual(self.session.status, batch_plan.SESSION_FAILED)

        self.session.retry_batch(2)

        batch = self.session.get_batch(2)
        self.assertEqual(batch['status'], batch_plan.PENDING)
        self.assertIsNone(batch['error_message'])
        self.assertIsNone(batch['error_details'])
        self.assertEqual(batch['retry_count'], 1)
        self.assertEqual(self.session.status, batch_plan.IN_PROGRESS)
        self.assertIsNone(self.session.completed_at)

    def test_retry_all_failed(self):
        self.session.update_batch_status(1, batch_plan.SUCCESS, elements_created=[1])
        self.session.update_batch_status(2, batch_plan.FAILED)
        self.session.update_batch_status(3, batch_plan.FAILED)

        self.assertEqual(self.session.retry_all_failed(), 2)
        self.assertEqual([b['batch_number'] for b in self.session.get_pending_batches()], [2, 3])
        self.assertEqual(self.session.get_failed_batches(), [])

    def test_processing_batches_are_resumable(self):
        self.session.update_batch_status(1, batch_plan.SUCCESS, elements_created=[1])
        self.session.update_batch_status(2, batch_plan.PROCESSING)
        self.assertEqual([b['batch_number'] for b in self.session.get_resumable_batches()], [2, 3])

    def test_unknown_batch(self):
        with self.assertRaises(BatchNotFoundError):
            self.session.get_batch(4)

    def test_json_object_hides_error_details_unless_asked(self):
        self.session.update_batch_status(1, batch_plan.FAILED, error_details={'stack': 'Traceback...'})
        self.assertNotIn('error_details', self.session.to_json_object()['batches'][0])
        self.assertEqual(self.session.to_json_object(include_details=True)['batches'][0]['error_details'],
                         {'stack': 'Traceback...'})
        self.assertNotIn('batches', self.session.to_json_object(include_batches=False))

    def test_recent_sessions(self):
        other = UploadSession.objects.create_session(
            project=self.project, user=self.user, file_name='second.xlsx', file_path='/tmp/second.xlsx',
            total_rows=10, batch_size=50)
        recent = list(UploadSession.objects.recent_for_project(self.project.pk, limit=1))
        self.assertEqual(recent, [other])
        self.assertEqual(len(UploadSession.objects.recent_for_user(self.user)), 2)
