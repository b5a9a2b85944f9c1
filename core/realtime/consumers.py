import json
from channels.generic.websocket import AsyncWebsocketConsumer


class NotificationsConsumer(AsyncWebsocketConsumer):
    """Push channel for workflow events.

    An authenticated connection joins ``role.<role>`` and ``user.<id>``;
    anything else is closed with 4001.
    """

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close(code=4001)
            return
        self.groups_joined = [f"role.{user.role}", f"user.{user.id}"]
        for group in self.groups_joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "role": user.role}))

    async def disconnect(self, close_code):
        for group in getattr(self, "groups_joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def notify_event(self, event):
        # event: {"type": "notify.event", "event": "...", "data": {...}, "ts": "..."}
        await self.send(json.dumps({"type": event["event"], "data": event.get("data", {}), "ts": event.get("ts")}))
