import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db.models.signals import post_save
from django.dispatch import receiver

from excel_import.models import UploadSession

logger = logging.getLogger(__name__)


def session_group_name(upload_id):
    return f"upload_{upload_id}"


@receiver(post_save, sender=UploadSession)
def broadcast_session_update(sender, instance, created, **kwargs):
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(session_group_name(instance.upload_id), {
            'type': 'session_update',
            'session': instance.to_json_object(include_details=False),
        })
    except Exception as e:
        # Progress push is best effort; the session row is already saved
        logger.warning("%s: Failed to broadcast session update: %s", instance.upload_id, e)
