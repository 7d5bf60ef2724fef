import traceback

from django.conf import settings
from rest_framework.decorators import api_view
from rest_framework.decorators import parser_classes
from rest_framework.decorators import permission_classes
from rest_framework.parsers import MultiPartParser, JSONParser
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from .api import cleanup_failed_batches, delete_batch, delete_session, get_project_stats, get_session_detail, \
    get_session_summary, get_upload_status, list_project_sessions, list_user_sessions, reap_stalled_sessions, \
    retry_session, retry_session_batch, submit_upload
from .errors import BatchNotFoundError, ParseError, ProjectNotFoundError, RowValidationError, SessionAccessError, \
    SessionNotFoundError, StateError, UploadError
import logging

logger = logging.getLogger(__name__)

NOT_FOUND_ERRORS = (SessionNotFoundError, BatchNotFoundError, ProjectNotFoundError)
BAD_REQUEST_ERRORS = (ParseError, RowValidationError, ValueError)


def _error_response(e):
    if isinstance(e, NOT_FOUND_ERRORS):
        status = 404
    elif isinstance(e, SessionAccessError):
        status = 403
    elif isinstance(e, StateError):
        status = 409
    elif isinstance(e, BAD_REQUEST_ERRORS):
        status = 400
    else:
        status = 500
    body = {'status': 'Error', 'message': str(e)}
    # Technical detail is for developers only
    if settings.DEBUG:
        body['detail'] = traceback.format_exc()
    return Response(body, status=status)


def _parse_bool(value):
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_optional_int(value, name):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Value '{name}' must be an integer")


@api_view(['POST'])
@parser_classes([MultiPartParser, JSONParser])
@permission_classes([IsAuthenticated])
def upload_file(request, project_id):
    """
    Accepts a spreadsheet for a project and queues it for background import.
    """
    try:
        file = request.FILES.get('file')
        if not file:
            raise ValueError("Value 'file' is missing")
        sub_project_id = _parse_optional_int(request.data.get('sub_project'), 'sub_project')

        result = submit_upload(request.user, project_id, file, sub_project_id=sub_project_id)

        response_data = {'status': 'Success', 'message': 'File uploaded successfully. Processing started.', **result}
        logger.info("%s: File upload accepted.", result['upload_id'])
        return Response(response_data, status=202)
    except UploadError as e:
        logger.error("%s: File upload failed: %s", request.user, str(e))
        return _error_response(e)
    except ValueError as e:
        return _error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def upload_status(request, task_id):
    return Response(get_upload_status(task_id))


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def upload_session(request, upload_id):
    try:
        if request.method == 'DELETE':
            result = delete_session(upload_id, user=request.user)
            logger.info("%s: Upload session deleted by %s", upload_id, request.user)
            return Response({'status': 'Success', 'message': 'Upload session deleted', **result})
        return Response(get_session_detail(upload_id, include_details=settings.DEBUG, user=request.user))
    except UploadError as e:
        return _error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def upload_session_summary(request, upload_id):
    try:
        return Response(get_session_summary(upload_id, user=request.user))
    except UploadError as e:
        return _error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_upload_sessions(request):
    try:
        project_id = _parse_optional_int(request.query_params.get('project'), 'project')
        if project_id is None:
            raise ValueError("Value 'project' is missing")
        limit = _parse_optional_int(request.query_params.get('limit'), 'limit') or 10
        return Response(list_project_sessions(project_id, limit=limit))
    except (UploadError, ValueError) as e:
        return _error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_upload_sessions(request):
    try:
        limit = _parse_optional_int(request.query_params.get('limit'), 'limit') or 20
    except ValueError as e:
        return _error_response(e)
    return Response(list_user_sessions(request.user, limit=limit))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def retry_failed_batches(request, upload_id):
    try:
        result = retry_session(upload_id, user=request.user)
        return Response({'status': 'Success',
                         'message': f"Retrying {result['retried_batches']} failed batches", **result})
    except UploadError as e:
        return _error_response(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def retry_batch(request, upload_id, batch_number):
    try:
        result = retry_session_batch(upload_id, batch_number, user=request.user)
        return Response({'status': 'Success', 'message': f"Retrying batch {batch_number}", **result})
    except UploadError as e:
        return _error_response(e)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def failed_batches(request, upload_id):
    try:
        result = cleanup_failed_batches(upload_id, user=request.user)
        return Response({'status': 'Success',
                         'message': f"Cleaned up {result['batches_cleaned']} failed batches", **result})
    except UploadError as e:
        return _error_response(e)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def batch(request, upload_id, batch_number):
    try:
        result = delete_batch(upload_id, batch_number, user=request.user)
        return Response({'status': 'Success', 'message': f"Batch {batch_number} deleted", **result})
    except UploadError as e:
        return _error_response(e)


@api_view(['POST'])
@parser_classes([JSONParser, MultiPartParser])
@permission_classes([IsAdminUser])
def reap_stalled(request):
    """
    Marks upload sessions stuck in progress as failed. Staff only.
    """
    try:
        minutes = _parse_optional_int(request.data.get('minutes'), 'minutes')
        dry_run = _parse_bool(request.data.get('dry_run', False))
        upload_id = request.data.get('upload_id') or None
        return Response(reap_stalled_sessions(minutes=minutes, dry_run=dry_run, upload_id=upload_id))
    except ValueError as e:
        return _error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_stats(request, project_id):
    try:
        return Response(get_project_stats(project_id))
    except UploadError as e:
        return _error_response(e)
