from celery import shared_task
from celery.signals import task_prerun, task_postrun
from django.conf import settings

from excel_import.errors import InfrastructureError
from excel_import.utils.stalled_session_reaper import StalledSessionReaper
from excel_import.utils.upload_orchestrator import UploadOrchestrator
import logging

logger = logging.getLogger(__name__)

UPLOAD_TASK_OPTIONS = {
    'bind': True,
    'acks_late': True,
    'autoretry_for': (InfrastructureError,),
    'retry_backoff': True,
    'retry_jitter': False,
    'max_retries': 3,
    'soft_time_limit': settings.UPLOAD_TIME_LIMIT,
    'rate_limit': settings.EXCEL_RATE_LIMIT,
}


@shared_task(name="process_upload_task", **UPLOAD_TASK_OPTIONS)
def process_upload_task(self, upload_id, file_path, file_name, project_id, user_id, sub_project_id=None):
    try:
        return UploadOrchestrator(task=self).run(upload_id, file_path, file_name, project_id, user_id,
                                                 sub_project_id=sub_project_id)
    except InfrastructureError as e:
        logger.warning(f"Upload {upload_id} hit a transient failure (attempt {self.request.retries + 1}): {str(e)}")
        raise e
    except Exception as e:
        logger.error(f"Error processing upload task {upload_id}: {str(e)}")
        raise e


@shared_task(name="resume_upload_task", **UPLOAD_TASK_OPTIONS)
def resume_upload_task(self, upload_id):
    try:
        return UploadOrchestrator(task=self).resume(upload_id)
    except Exception as e:
        logger.error(f"Error resuming upload task {upload_id}: {str(e)}")
        raise e


@shared_task(name="reap_stalled_sessions_task")
def reap_stalled_sessions_task(minutes=None):
    report = StalledSessionReaper().reap(minutes=minutes)
    return {'matched': len(report.matched), 'fixed': report.fixed}


@task_prerun.connect
def task_prerun_handler(sender=None, headers=None, body=None, **kwargs):
    logger.info(f'Task {sender} starting...')


@task_postrun.connect
def task_postrun_handler(sender=None, headers=None, body=None, **kwargs):
    logger.info(f'Task {sender} finished...')
