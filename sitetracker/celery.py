import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'sitetracker.settings')

# The worker pool (eventlet) is selected through CELERY_WORKER_POOL, which
# monkey patches on worker start-up rather than on import.
app = Celery('excel_import')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
