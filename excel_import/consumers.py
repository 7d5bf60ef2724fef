# consumers.py
from channels.generic.websocket import AsyncWebsocketConsumer
import json

from excel_import.signals import session_group_name


class UploadProgressConsumer(AsyncWebsocketConsumer):
    async def connect(self):
        user = self.scope.get('user')
        if user is None or not user.is_authenticated:
            await self.close()
            return
        self.group_name = session_group_name(self.scope['url_route']['kwargs']['upload_id'])
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, 'group_name'):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def session_update(self, event):
        # Called whenever the upload session is saved
        await self.send(text_data=json.dumps({
            'type': 'session_update',
            'session': event['session'],
        }))
