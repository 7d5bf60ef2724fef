import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from excel_import.models import UploadSession
from excel_import.utils import batch_plan

logger = logging.getLogger(__name__)

STALLED_BATCH_MESSAGE = 'Worker stalled - batch not processed'


class ReapReport:
    def __init__(self, matched, fixed, dry_run):
        self.matched = matched
        self.fixed = fixed
        self.dry_run = dry_run

    def to_json_object(self):
        return {
            'dry_run': self.dry_run,
            'matched': [{
                'upload_id': str(session.upload_id),
                'file_name': session.file_name,
                'status': session.status,
                'created_at': session.created_at.isoformat() if session.created_at else None,
                'updated_at': session.updated_at.isoformat() if session.updated_at else None,
                'summary': session.summary,
            } for session in self.matched],
            'fixed': self.fixed,
        }


# Closes out uploads whose worker disappeared. Batches the worker never
# finished are failed so they can be retried; data already committed by
# successful batches of a reaped session is left in place.
class StalledSessionReaper:
    def find_stalled(self, minutes=None, upload_id=None):
        query = UploadSession.objects.filter(status=batch_plan.IN_PROGRESS)
        if upload_id:
            return list(query.filter(upload_id=upload_id))
        minutes = settings.UPLOAD_STALL_MINUTES if minutes is None else minutes
        cutoff = timezone.now() - timedelta(minutes=minutes)
        return list(query.filter(updated_at__lt=cutoff).order_by('updated_at'))

    def reap(self, minutes=None, dry_run=False, upload_id=None):
        """
        Marks in-progress sessions that stopped updating as failed.

        Args:
            minutes (int): Sessions not updated for this long are stalled. Defaults to settings.UPLOAD_STALL_MINUTES.
            dry_run (bool): Report the matches without changing them.
            upload_id (str): Target one session regardless of its age.

        Returns:
            ReapReport
        """
        stalled = self.find_stalled(minutes=minutes, upload_id=upload_id)
        if not stalled:
            logger.info("No stalled upload sessions found")
            return ReapReport([], 0, dry_run)

        logger.info("Found %d stalled upload session(s)", len(stalled))
        if dry_run:
            for session in stalled:
                logger.info("Dry run: would fail upload %s (%s), last updated %s",
                            session.upload_id, session.file_name, session.updated_at)
            return ReapReport(stalled, 0, dry_run)

        fixed = 0
        for session in stalled:
            now = timezone.now()
            for batch in session.get_resumable_batches():
                batch['status'] = batch_plan.FAILED
                batch['error_message'] = STALLED_BATCH_MESSAGE
                batch['processed_at'] = now.isoformat()
            session.status = batch_plan.SESSION_FAILED
            session.completed_at = now
            # Summary only: the status is decided here, not derived from the batches
            session.refresh_summary()
            session.save()
            logger.info("Marked stalled upload %s (%s) as failed", session.upload_id, session.file_name)
            fixed += 1
        return ReapReport(stalled, fixed, dry_run)
