from django.urls import re_path

from . import consumers

websocket_urlpatterns = [
    re_path(r'^ws/uploads/(?P<upload_id>[0-9a-fA-F-]+)/$', consumers.UploadProgressConsumer.as_asgi()),
]
