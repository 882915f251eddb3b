import json

from channels.generic.websocket import AsyncWebsocketConsumer

from clinic.services.appointments import QUEUE_GROUP


class QueueUpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes queue changes (bookings, status moves, check-ins) to staff screens."""
    GROUP = QUEUE_GROUP

    async def connect(self):
        user = self.scope.get('user')
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def queue_update(self, event):
        # event: {"type": "queue.update", "event": "booked", "appointmentId": int, ...}
        await self.send(json.dumps(event))
