from django.urls import path
from .views import batch, failed_batches, my_upload_sessions, project_stats, project_upload_sessions, reap_stalled, \
    retry_batch, retry_failed_batches, upload_file, upload_session, upload_session_summary, upload_status

urlpatterns = [
    path('projects/<int:project_id>/uploads', upload_file, name='upload_file'),
    path('projects/<int:project_id>/stats', project_stats, name='project_stats'),
    path('uploads/status/<str:task_id>', upload_status, name='upload_status'),
    path('upload-sessions', project_upload_sessions, name='project_upload_sessions'),
    path('upload-sessions/mine', my_upload_sessions, name='my_upload_sessions'),
    path('upload-sessions/reap', reap_stalled, name='reap_stalled'),
    path('upload-sessions/<uuid:upload_id>', upload_session, name='upload_session'),
    path('upload-sessions/<uuid:upload_id>/summary', upload_session_summary, name='upload_session_summary'),
    path('upload-sessions/<uuid:upload_id>/retry', retry_failed_batches, name='retry_failed_batches'),
    path('upload-sessions/<uuid:upload_id>/failed-batches', failed_batches, name='failed_batches'),
    path('upload-sessions/<uuid:upload_id>/batches/<int:batch_number>', batch, name='batch'),
    path('upload-sessions/<uuid:upload_id>/batches/<int:batch_number>/retry', retry_batch, name='retry_batch'),
]
