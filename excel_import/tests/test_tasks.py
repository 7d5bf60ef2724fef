from unittest.mock import patch

from django.test import TestCase

from excel_import.errors import InfrastructureError
from excel_import.tasks import process_upload_task, reap_stalled_sessions_task, resume_upload_task
from excel_import.utils.stalled_session_reaper import ReapReport


class TestTasks(TestCase):
    def test_upload_tasks_retry_only_on_transient_failures(self):
        for task in (process_upload_task, resume_upload_task):
            self.assertEqual(task.autoretry_for, (InfrastructureError,))
            self.assertEqual(task.max_retries, 3)
            self.assertTrue(task.retry_backoff)
            self.assertTrue(task.acks_late)

    @patch('excel_import.tasks.UploadOrchestrator')
    def test_process_upload_task_runs_the_orchestrator(self, mock_orchestrator):
        mock_orchestrator.return_value.run.return_value = {'success': True, 'status': 'completed'}

        result = process_upload_task.apply(
            args=['upload-1', '/tmp/elements.csv', 'elements.csv', 1, 2], kwargs={'sub_project_id': 3})

        self.assertEqual(result.get(), {'success': True, 'status': 'completed'})
        mock_orchestrator.return_value.run.assert_called_once_with(
            'upload-1', '/tmp/elements.csv', 'elements.csv', 1, 2, sub_project_id=3)

    @patch('excel_import.tasks.UploadOrchestrator')
    def test_resume_upload_task(self, mock_orchestrator):
        mock_orchestrator.return_value.resume.return_value = {'success': True}
        self.assertEqual(resume_upload_task.apply(args=['upload-1']).get(), {'success': True})
        mock_orchestrator.return_value.resume.assert_called_once_with('upload-1')

    @patch('excel_import.tasks.StalledSessionReaper')
    def test_reap_task(self, mock_reaper):
        mock_reaper.return_value.reap.return_value = ReapReport(['a', 'b'], 2, False)
        self.assertEqual(reap_stalled_sessions_task.apply(kwargs={'minutes': 30}).get(), {'matched': 2, 'fixed': 2})
        mock_reaper.return_value.reap.assert_called_once_with(minutes=30)
