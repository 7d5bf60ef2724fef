import logging
import os

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from excel_import.models import Job, Project, StructuralElement, SubProject
from excel_import.utils import batch_plan
from excel_import.utils.view_cache import invalidate_project_views

logger = logging.getLogger(__name__)

# Keeps IN (...) lists below SQLite's bound-parameter limit
DELETE_CHUNK_SIZE = 500

ROLLED_BACK_MESSAGE = 'Rolled back'
CLEANED_MESSAGE = 'Cleaned'
DELETED_MESSAGE = 'Deleted'


def _chunks(ids, size=DELETE_CHUNK_SIZE):
    ids = list(ids)
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class IntegrityReport:
    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual

    @property
    def is_valid(self):
        return self.expected == self.actual

    def to_json_object(self):
        return {'is_valid': self.is_valid, 'expected': self.expected, 'actual': self.actual}

    def __repr__(self):
        return f"IntegrityReport(is_valid={self.is_valid}, expected={self.expected}, actual={self.actual})"


class RollbackEngine:
    """
    Compensates for failed or inconsistent uploads by deleting what a session
    created, and verifies persisted counts against the session summary.

    Every deletion decrements the project (and sub-project) element counters
    by the number of elements actually removed and invalidates the cached
    read views for those scopes.
    """

    def _delete_created(self, session, element_ids, job_ids=()):
        elements_deleted = 0
        jobs_deleted = 0
        with transaction.atomic():
            for chunk in _chunks(element_ids):
                jobs_deleted += Job.objects.filter(structural_element_id__in=chunk).delete()[0]
            # Jobs recorded on a batch whose element is already gone
            for chunk in _chunks(job_ids):
                jobs_deleted += Job.objects.filter(pk__in=chunk).delete()[0]
            for chunk in _chunks(element_ids):
                _, per_model = StructuralElement.objects.filter(pk__in=chunk).delete()
                elements_deleted += per_model.get(StructuralElement._meta.label, 0)

            if elements_deleted:
                Project.objects.filter(pk=session.project_id).update(
                    structural_elements_count=F('structural_elements_count') - elements_deleted)
                if session.sub_project_id:
                    SubProject.objects.filter(pk=session.sub_project_id).update(
                        structural_elements_count=F('structural_elements_count') - elements_deleted)

        invalidate_project_views(session.project_id, session.sub_project_id)
        return elements_deleted, jobs_deleted

    def complete_rollback(self, session):
        """
        Deletes every element and job the session created, across all batches,
        and marks the session failed.

        Returns:
            dict: {'elements_deleted': int, 'jobs_deleted': int}
        """
        logger.info("Starting complete rollback of upload %s (project %s, sub-project %s)",
                    session.upload_id, session.project_id, session.sub_project_id)
        element_ids = session.created_element_ids()
        job_ids = [job_id for batch in session.batches for job_id in (batch.get('jobs_created') or [])]

        elements_deleted, jobs_deleted = self._delete_created(session, element_ids, job_ids)

        for batch in session.batches:
            if batch['status'] == batch_plan.SUCCESS or batch.get('elements_created') or batch.get('jobs_created'):
                batch['status'] = batch_plan.FAILED
                batch['elements_created'] = []
                batch['jobs_created'] = []
                batch['error_message'] = ROLLED_BACK_MESSAGE
        session.refresh_summary()
        session.status = batch_plan.SESSION_FAILED
        session.completed_at = timezone.now()
        session.save()

        logger.info("Rollback of upload %s completed - %d elements, %d jobs deleted",
                    session.upload_id, elements_deleted, jobs_deleted)
        return {'elements_deleted': elements_deleted, 'jobs_deleted': jobs_deleted}

    def verify_integrity(self, session):
        """
        Recounts the elements recorded by successful batches, and the jobs that
        reference them, and compares both with the session summary.
        """
        element_ids = session.created_element_ids(successful_only=True)
        actual_elements = 0
        actual_jobs = 0
        for chunk in _chunks(element_ids):
            actual_elements += StructuralElement.objects.filter(pk__in=chunk).count()
            actual_jobs += Job.objects.filter(structural_element_id__in=chunk).count()

        report = IntegrityReport(
            expected={'elements': session.summary.get('total_elements_created', 0),
                      'jobs': session.summary.get('total_jobs_created', 0)},
            actual={'elements': actual_elements, 'jobs': actual_jobs})
        logger.info("Integrity verification for upload %s: %s", session.upload_id, report)
        return report

    def cleanup_failed_batches(self, session):
        """Deletes any residue of failed batches. They stay failed, emptied, and can be retried."""
        element_ids, job_ids, cleaned = [], [], []
        for batch in session.get_failed_batches():
            element_ids.extend(batch.get('elements_created') or [])
            job_ids.extend(batch.get('jobs_created') or [])
            cleaned.append(batch['batch_number'])

        elements_deleted, jobs_deleted = self._delete_created(session, element_ids, job_ids)
        for batch_number in cleaned:
            session.clear_batch(batch_number, CLEANED_MESSAGE)
        session.save()

        logger.info("Cleaned %d failed batches of upload %s - %d elements, %d jobs deleted",
                    len(cleaned), session.upload_id, elements_deleted, jobs_deleted)
        return {'batches_cleaned': len(cleaned), 'elements_deleted': elements_deleted, 'jobs_deleted': jobs_deleted}

    def purge_residue(self, session, batch_numbers):
        """Deletes anything still recorded on the given batches and clears their lists, leaving the status alone."""
        element_ids, job_ids = [], []
        for batch_number in batch_numbers:
            batch = session.get_batch(batch_number)
            element_ids.extend(batch.get('elements_created') or [])
            job_ids.extend(batch.get('jobs_created') or [])
            batch['elements_created'] = []
            batch['jobs_created'] = []
        if not element_ids and not job_ids:
            return {'elements_deleted': 0, 'jobs_deleted': 0}
        elements_deleted, jobs_deleted = self._delete_created(session, element_ids, job_ids)
        session.refresh_summary()
        logger.info("Purged residue of batches %s of upload %s - %d elements, %d jobs deleted",
                    list(batch_numbers), session.upload_id, elements_deleted, jobs_deleted)
        return {'elements_deleted': elements_deleted, 'jobs_deleted': jobs_deleted}

    def delete_batch(self, session, batch_number):
        """Deletes the data of one batch, whatever its status, and leaves it failed so it can be retried."""
        batch = session.get_batch(batch_number)
        logger.info("Deleting batch %s of upload %s (status: %s)", batch_number, session.upload_id, batch['status'])
        elements_deleted, jobs_deleted = self._delete_created(
            session, batch.get('elements_created') or [], batch.get('jobs_created') or [])
        session.clear_batch(batch_number, DELETED_MESSAGE)
        session.save()
        return {'batch_number': batch_number, 'elements_deleted': elements_deleted, 'jobs_deleted': jobs_deleted}

    def delete_session(self, session):
        """Deletes everything the session created, its stored file and the session itself."""
        logger.info("Deleting entire upload session %s", session.upload_id)
        element_ids = session.created_element_ids()
        job_ids = [job_id for batch in session.batches for job_id in (batch.get('jobs_created') or [])]
        elements_deleted, jobs_deleted = self._delete_created(session, element_ids, job_ids)

        if session.file_path and os.path.exists(session.file_path):
            os.remove(session.file_path)
            logger.info("Deleted stored file %s", os.path.basename(session.file_path))

        upload_id = session.upload_id
        batches_deleted = session.total_batches
        session.delete()
        return {'upload_id': str(upload_id), 'elements_deleted': elements_deleted,
                'jobs_deleted': jobs_deleted, 'batches_deleted': batches_deleted}
