import logging
import os
import time
from contextlib import contextmanager

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache

from excel_import.errors import ParseError, PersistenceError, ProjectNotFoundError, RowValidationError, \
    SessionNotFoundError, UploadIntegrityError
from excel_import.models import Project, SubProject, UploadSession
from excel_import.utils import batch_plan
from excel_import.utils.batch_processor import BatchProcessor
from excel_import.utils.excel_reader import ExcelReader
from excel_import.utils.rollback_engine import RollbackEngine
from excel_import.utils.row_transformer import RowTransformer
from excel_import.utils.view_cache import invalidate_project_views

logger = logging.getLogger(__name__)

# Number of row errors quoted in a failure message
ROW_ERROR_PREVIEW = 5


class ProgressReporter:
    """Publishes the stage of an upload to the Celery result backend."""

    def __init__(self, task=None, upload_id=None):
        self.task = task
        self.upload_id = upload_id

    def report(self, stage, percent, message, **extra):
        meta = {'stage': stage, 'percent': round(percent, 1), 'message': message,
                'upload_id': str(self.upload_id) if self.upload_id else None}
        meta.update(extra)
        logger.info("%s: [%s %s%%] %s", self.upload_id, stage, meta['percent'], message)
        if self.task is not None and getattr(self.task.request, 'id', None):
            self.task.update_state(state='PROGRESS', meta=meta)
        return meta


def delete_source_file(file_path):
    if not file_path:
        return False
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.info("Deleted source file %s", os.path.basename(file_path))
            return True
    except OSError as e:
        logger.error("Failed to delete source file %s: %s", file_path, e)
    return False


# Background work kicked off for an uploaded spreadsheet. Parses the file,
# creates the upload session with its batch plan and drives the batches one
# after another, then decides whether the outcome is kept or rolled back.
class UploadOrchestrator:
    def __init__(self, task=None, rollback_engine=None):
        self.task = task
        self.rollback_engine = rollback_engine or RollbackEngine()

    @staticmethod
    def lock_key(upload_id):
        return f"lock_upload_{upload_id}"

    @staticmethod
    def is_locked(upload_id):
        return cache.get(UploadOrchestrator.lock_key(upload_id)) is not None

    @staticmethod
    @contextmanager
    def session_lock(upload_id):
        lock_key = UploadOrchestrator.lock_key(upload_id)
        # add() only succeeds for the first caller, so one worker writes a session at a time
        lock_acquired = cache.add(lock_key, "true", settings.UPLOAD_LOCK_TIMEOUT)
        if lock_acquired:
            try:
                yield True
            finally:
                cache.delete(lock_key)
        else:
            yield False

    def run(self, upload_id, file_path, file_name, project_id, user_id, sub_project_id=None):
        """
        Processes a newly submitted upload from the stored file.

        Retried deliveries of the same upload resume the existing session
        instead of creating another one.
        """
        start_time = time.time()
        reporter = ProgressReporter(self.task, upload_id)

        reporter.report('parsing', 0, 'Parsing Excel file...')
        try:
            rows = ExcelReader.read_rows(file_path, file_name=file_name)
        except ParseError:
            delete_source_file(file_path)
            raise

        reporter.report('loading', 10, 'Loading project...')
        try:
            project = Project.objects.get(pk=project_id)
            sub_project = SubProject.objects.get(pk=sub_project_id, project=project) if sub_project_id else None
        except (Project.DoesNotExist, SubProject.DoesNotExist):
            delete_source_file(file_path)
            raise ProjectNotFoundError(f"Project {project_id} not found")
        user = get_user_model().objects.get(pk=user_id)

        session = UploadSession.objects.filter(upload_id=upload_id).first()
        if session is None:
            transformer = RowTransformer(project, user, sub_project=sub_project)
            validated, row_errors = transformer.transform_all(rows)
            if not validated:
                delete_source_file(file_path)
                preview = '; '.join(e.message for e in row_errors[:ROW_ERROR_PREVIEW])
                raise RowValidationError(f"No valid rows found in {len(rows)} rows. {preview}",
                                         row_errors=[e.to_json_object() for e in row_errors])
            if row_errors:
                logger.warning("%s: %d of %d rows failed validation", upload_id, len(row_errors), len(rows))

            reporter.report('preparing', 15, 'Creating upload session...')
            session = UploadSession.objects.create_session(
                project=project, user=user, file_name=file_name, file_path=file_path,
                total_rows=len(rows), batch_size=settings.EXCEL_BATCH_SIZE, sub_project=sub_project,
                upload_id=upload_id, task_id=getattr(getattr(self.task, 'request', None), 'id', None))
            logger.info("%s: Upload session created with %d batches", upload_id, session.total_batches)
        else:
            logger.info("%s: Resuming existing upload session", upload_id)

        return self._drive(session, rows, reporter, start_time)

    def resume(self, upload_id):
        """Processes the pending batches of an existing session, e.g. after a retry."""
        start_time = time.time()
        session = UploadSession.objects.select_related('project', 'sub_project', 'created_by') \
            .filter(upload_id=upload_id).first()
        if session is None:
            raise SessionNotFoundError(f"Upload session {upload_id} not found")
        reporter = ProgressReporter(self.task, upload_id)
        reporter.report('parsing', 0, 'Parsing Excel file...')
        if not session.file_path or not os.path.exists(session.file_path):
            raise ParseError(f"Source file for upload {upload_id} is no longer available")
        rows = ExcelReader.read_rows(session.file_path, file_name=session.file_name)
        if len(rows) != session.total_rows:
            raise ParseError(f"Source file for upload {upload_id} changed: expected {session.total_rows} rows, "
                             f"found {len(rows)}")
        return self._drive(session, rows, reporter, start_time)

    def _drive(self, session, rows, reporter, start_time):
        with UploadOrchestrator.session_lock(session.upload_id) as lock_acquired:
            if not lock_acquired:
                logger.info("%s: Another worker is already processing this upload", session.upload_id)
                return {'success': False, 'upload_id': str(session.upload_id), 'status': 'locked'}

            processor = BatchProcessor(session.project, session.created_by, sub_project=session.sub_project)
            batches = session.get_resumable_batches()
            reporter.report('processing', 20, f"Processing {len(batches)} batches...",
                            total_batches=session.total_batches)

            for processed, batch in enumerate(batches):
                batch_number = batch['batch_number']
                reporter.report('processing', 20 + (processed / len(batches)) * 70,
                                f"Processing batch {batch_number}/{session.total_batches}",
                                current_batch=batch_number, total_batches=session.total_batches)
                result = processor.process(session, batch_number, rows)
                logger.info("%s: Batch %d/%d - %s", session.upload_id, batch_number, session.total_batches,
                            'SUCCESS' if result.success else 'FAILED')

            reporter.report('finalizing', 90, 'Finalizing and verifying upload...')
            return self._finalize(session, reporter, start_time)

    def _finalize(self, session, reporter, start_time):
        summary = session.summary
        logger.info("%s: All batches processed - %d succeeded, %d failed", session.upload_id,
                    summary['successful_batches'], summary['failed_batches'])

        if summary['total_elements_created'] == 0 and summary['duplicates_skipped'] == 0:
            logger.error("%s: Upload completely failed - initiating full rollback", session.upload_id)
            self.rollback_engine.complete_rollback(session)
            delete_source_file(session.file_path)
            raise PersistenceError(
                f"Upload failed: No elements were created successfully. "
                f"All {session.summary['failed_batches']} batches failed.")

        if session.status == batch_plan.PARTIAL_SUCCESS:
            logger.warning("%s: Partial success - %d batches failed; keeping %s for retry", session.upload_id,
                           summary['failed_batches'], os.path.basename(session.file_path))
        elif session.status == batch_plan.COMPLETED:
            report = self.rollback_engine.verify_integrity(session)
            if not report.is_valid:
                logger.error("%s: Data integrity check failed - expected %s, actual %s", session.upload_id,
                             report.expected, report.actual)
                self.rollback_engine.complete_rollback(session)
                delete_source_file(session.file_path)
                raise UploadIntegrityError("Data integrity verification failed. Rolled back all changes.",
                                           report=report.to_json_object())
            delete_source_file(session.file_path)

        invalidate_project_views(session.project_id, session.sub_project_id)

        processing_time = time.time() - start_time
        if summary['failed_batches'] == 0:
            message = (f"Complete! {summary['total_elements_created']} elements, "
                       f"{summary['total_jobs_created']} jobs created in {processing_time:.2f}s")
        else:
            message = (f"Partial success: {summary['successful_batches']} batches succeeded, "
                       f"{summary['failed_batches']} failed. {summary['total_elements_created']} elements created.")
        reporter.report('completed', 100, message)

        return {
            'success': True,
            'upload_id': str(session.upload_id),
            'status': session.status,
            'summary': summary,
            'message': message,
            'processing_time': f"{processing_time:.2f}s",
        }
