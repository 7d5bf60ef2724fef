"""
This module contains the API for the excel import application.
Its used by the views to interact with upload sessions and the import tasks.
"""
import os
import uuid
from datetime import timedelta

from celery.result import AsyncResult
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import Count
from django.utils import timezone
from django.utils.text import get_valid_filename

from .errors import ParseError, ProjectNotFoundError, SessionAccessError, SessionNotFoundError, StateError
from .models import Job, Project, StructuralElement, SubProject, UploadSession
from .tasks import process_upload_task, resume_upload_task
from .utils import batch_plan
from .utils.rollback_engine import RollbackEngine
from .utils.stalled_session_reaper import StalledSessionReaper
from .utils.upload_orchestrator import UploadOrchestrator
from .utils.view_cache import cached_view
import logging

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ('.xlsx', '.xls', '.csv')


def get_session(upload_id, user=None):
    """
    Loads an upload session. When a user is given, only its creator or a
    staff user may access it.
    """
    try:
        session = UploadSession.objects.select_related('project', 'sub_project', 'created_by').get(upload_id=upload_id)
    except (UploadSession.DoesNotExist, ValidationError):
        raise SessionNotFoundError(f"Upload session {upload_id} not found")
    if user is not None and not user.is_staff and session.created_by_id != user.pk:
        raise SessionAccessError(f"Not authorized to access upload session {upload_id}")
    return session


def _get_project(project_id):
    try:
        return Project.objects.get(pk=project_id)
    except Project.DoesNotExist:
        raise ProjectNotFoundError(f"Project {project_id} not found")


def _is_busy(session):
    # A worker holds the lock while it drives batches. Resumable batches that
    # moved recently are waiting for a queued task to take the lock.
    if UploadOrchestrator.is_locked(session.upload_id):
        return True
    if not session.get_resumable_batches():
        return False
    cutoff = timezone.now() - timedelta(minutes=settings.UPLOAD_STALL_MINUTES)
    return session.updated_at is not None and session.updated_at >= cutoff


def _require_idle(session):
    if _is_busy(session):
        raise StateError(f"Upload {session.upload_id} is still in progress")


def _require_source_file(session):
    if not session.file_path or not os.path.exists(session.file_path):
        raise StateError(f"Source file for upload {session.upload_id} is no longer available; upload it again")


def submit_upload(user, project_id, file, sub_project_id=None):
    """
    Stores an uploaded spreadsheet and starts processing it in the background.

    Args:
        user (User): The uploading user.
        project_id (int): The project the rows belong to.
        file (File): The uploaded .xlsx, .xls or .csv file.
        sub_project_id (int): Optional sub-project scope.

    Returns:
        dict: {'upload_id': str, 'task_id': str}
    """
    project = _get_project(project_id)
    if sub_project_id and not SubProject.objects.filter(pk=sub_project_id, project=project).exists():
        raise ProjectNotFoundError(f"Sub-project {sub_project_id} not found in project {project_id}")

    file_name = get_valid_filename(file.name)
    if not file_name.lower().endswith(ALLOWED_EXTENSIONS):
        raise ParseError(f"Unsupported file type: {file_name}. Expected one of {', '.join(ALLOWED_EXTENSIONS)}")

    upload_id = uuid.uuid4()
    os.makedirs(settings.UPLOAD_ROOT, exist_ok=True)
    file_path = os.path.join(settings.UPLOAD_ROOT, f"{upload_id}_{file_name}")
    with open(file_path, 'wb') as destination:
        for chunk in file.chunks():
            destination.write(chunk)
    logger.info("%s: File %s stored for project %s by user %s", upload_id, file_name, project.pk, user.username)

    task = process_upload_task.delay(str(upload_id), file_path, file_name, project.pk, user.pk,
                                     sub_project_id=int(sub_project_id) if sub_project_id else None)
    return {'upload_id': str(upload_id), 'task_id': task.task_id if task else None}


def get_upload_status(task_id):
    """
    Reads the progress of an upload task from the result backend.

    Returns:
        dict: {'task_id', 'state', 'stage', 'percent', 'message', 'upload_id'} plus 'result' once finished.
    """
    task_result = AsyncResult(task_id)
    state = task_result.state
    status = {'task_id': task_id, 'state': state, 'stage': None, 'percent': 0, 'message': None, 'upload_id': None}

    if state == 'PENDING':
        status.update(stage='queued', message='Waiting for a worker...')
    elif state == 'STARTED':
        status.update(stage='started', message='Processing started...')
    elif state == 'PROGRESS':
        status.update({k: v for k, v in (task_result.info or {}).items()})
    elif state == 'SUCCESS':
        result = task_result.result or {}
        status.update(stage='completed', percent=100, message=result.get('message'),
                      upload_id=result.get('upload_id'), result=result)
    elif state == 'FAILURE':
        status.update(stage='failed', percent=100, message=str(task_result.result))
    elif state == 'RETRY':
        status.update(stage='retrying', message=str(task_result.result))
    return status


def get_session_detail(upload_id, include_details=False, user=None):
    return get_session(upload_id, user=user).to_json_object(include_details=include_details)


def get_session_summary(upload_id, user=None):
    session = get_session(upload_id, user=user)
    return {
        'upload_id': str(session.upload_id),
        'status': session.status,
        'total_rows': session.total_rows,
        'total_batches': session.total_batches,
        'summary': session.summary,
    }


def list_project_sessions(project_id, limit=10):
    _get_project(project_id)
    sessions = UploadSession.objects.recent_for_project(project_id, limit=limit)
    return [s.to_json_object(include_batches=False) for s in sessions]


def list_user_sessions(user, limit=20):
    sessions = UploadSession.objects.recent_for_user(user, limit=limit)
    return [s.to_json_object(include_batches=False) for s in sessions]


def retry_session(upload_id, user=None):
    """
    Returns every failed batch of a finished session to pending and enqueues
    a task to process them.
    """
    session = get_session(upload_id, user=user)
    _require_idle(session)
    failed = [b['batch_number'] for b in session.get_failed_batches()]
    if not failed:
        raise StateError(f"Upload {upload_id} has no failed batches to retry")
    _require_source_file(session)

    RollbackEngine().purge_residue(session, failed)
    count = session.retry_all_failed()
    session.save()
    logger.info("%s: %d failed batches queued for retry", session.upload_id, count)

    task = resume_upload_task.delay(str(session.upload_id))
    return {'upload_id': str(session.upload_id), 'retried_batches': count, 'task_id': task.task_id if task else None}


def retry_session_batch(upload_id, batch_number, user=None):
    session = get_session(upload_id, user=user)
    _require_idle(session)
    batch = session.get_batch(batch_number)
    if batch['status'] != batch_plan.FAILED:
        raise StateError(f"Batch {batch_number} is not in failed status (current: {batch['status']})")
    _require_source_file(session)

    RollbackEngine().purge_residue(session, [batch_number])
    session.retry_batch(batch_number)
    session.save()
    logger.info("%s: Batch %s queued for retry", session.upload_id, batch_number)

    task = resume_upload_task.delay(str(session.upload_id))
    return {'upload_id': str(session.upload_id), 'batch_number': batch_number,
            'task_id': task.task_id if task else None}


def cleanup_failed_batches(upload_id, user=None):
    session = get_session(upload_id, user=user)
    _require_idle(session)
    return RollbackEngine().cleanup_failed_batches(session)


def delete_batch(upload_id, batch_number, user=None):
    session = get_session(upload_id, user=user)
    _require_idle(session)
    return RollbackEngine().delete_batch(session, batch_number)


def delete_session(upload_id, user=None):
    session = get_session(upload_id, user=user)
    _require_idle(session)
    return RollbackEngine().delete_session(session)


def reap_stalled_sessions(minutes=None, dry_run=False, upload_id=None):
    return StalledSessionReaper().reap(minutes=minutes, dry_run=dry_run, upload_id=upload_id).to_json_object()


def _build_project_stats(project):
    elements = StructuralElement.objects.filter(project=project)
    jobs = Job.objects.filter(project=project)
    return {
        'project_id': project.pk,
        'title': project.title,
        'structural_elements_count': project.structural_elements_count,
        'elements': elements.count(),
        'elements_by_workflow': {
            row['fire_proofing_workflow'] or 'none': row['count']
            for row in elements.values('fire_proofing_workflow').annotate(count=Count('id'))
        },
        'jobs': jobs.count(),
        'jobs_by_status': {row['status']: row['count'] for row in jobs.values('status').annotate(count=Count('id'))},
        'sub_projects': [
            {'id': sp.pk, 'name': sp.name, 'structural_elements_count': sp.structural_elements_count}
            for sp in project.sub_projects.order_by('pk')
        ],
    }


def get_project_stats(project_id):
    project = _get_project(project_id)
    return cached_view('project', project.pk, 'stats', lambda: _build_project_stats(project))
