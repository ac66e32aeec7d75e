"""Platform endpoint wrappers used by sleep mode and the message slot sync.

All calls go through the shared RateLimitedClient, so they inherit its auth
headers, API key handling and 429/503 backoff.
"""

import logging
import urllib.parse

from sleepchat.config import NOTIFICATION_PAGE_SIZE
from sleepchat.core.errors import LocationUnresolved, ValidationError
from sleepchat.schemas.message_slot import SlotCategory
from sleepchat.schemas.notification import Friend, InviteNotification
from sleepchat.services.api_client import RateLimitedClient

logger = logging.getLogger(__name__)

PRIVATE_INSTANCE_MARKER = "~"
OFFLINE_LOCATION = "offline"
INVITE_MESSAGE_MAX_LENGTH = 256


def _segment(value: object) -> str:
    return urllib.parse.quote(str(value), safe="")


def sanitize_message(message: str | None, max_length: int = INVITE_MESSAGE_MAX_LENGTH) -> str:
    if not isinstance(message, str):
        return ""
    return message.strip()[:max_length]


def resolve_location(user: dict) -> str:
    """Work out where an invite should point, from a ``GET /auth/user`` payload.

    Priority: presence world + instance, then a presence instance that already
    carries the private-instance marker, then the plain location field.
    """
    presence = user.get("presence") or {}
    world = presence.get("world")
    instance = presence.get("instance")

    if world and instance:
        return f"{world}:{instance}"
    if instance and PRIVATE_INSTANCE_MARKER in instance:
        return instance

    location = user.get("location")
    if location and location != OFFLINE_LOCATION:
        return location

    raise LocationUnresolved("Cannot send invite: no valid world location found")


class PlatformApi:
    def __init__(self, client: RateLimitedClient):
        self.client = client

    async def list_invite_notifications(self) -> list[InviteNotification]:
        data = await self.client.request_json(
            "GET", f"/auth/user/notifications?n={NOTIFICATION_PAGE_SIZE}&offset=0"
        )
        if not isinstance(data, list):
            return []

        invites = []
        for item in data:
            if not isinstance(item, dict):
                continue
            invite = InviteNotification.from_payload(item)
            if invite is not None:
                invites.append(invite)
        return invites

    async def get_current_user(self) -> dict:
        user = await self.client.request_json("GET", "/auth/user")
        return user if isinstance(user, dict) else {}

    async def send_invite(
        self,
        user_id: str,
        *,
        message: str = "",
        message_slot: int | None = None,
        message_type: SlotCategory | str = SlotCategory.MESSAGE,
    ) -> dict:
        """Invite ``user_id`` to the current user's location.

        Raises LocationUnresolved when the current user isn't in a world.
        """
        if not user_id:
            raise ValidationError("Missing user id")

        location = resolve_location(await self.get_current_user())

        body: dict = {"instanceId": location}
        text = sanitize_message(message)
        if text:
            body["message"] = text
        elif message_slot is not None:
            body["messageSlot"] = int(message_slot)
            body["messageType"] = SlotCategory(message_type).value

        result = await self.client.request_json("POST", f"/invite/{_segment(user_id)}", body=body)
        logger.info(f"Invite sent to {user_id} for {location}")
        return result if isinstance(result, dict) else {}

    async def hide_notification(self, notification_id: str) -> None:
        if not notification_id:
            raise ValidationError("Missing notification id")
        await self.client.request_json(
            "PUT", f"/auth/user/notifications/{_segment(notification_id)}/hide"
        )

    async def get_friends(self) -> list[Friend]:
        friends = await self.client.paginate("/auth/user/friends")
        return [Friend.from_payload(item) for item in friends if isinstance(item, dict) and item.get("id")]

    async def update_status(self, user_id: str, status: str, status_description: str) -> dict:
        if not user_id:
            raise ValidationError("Missing user id")
        result = await self.client.request_json(
            "PUT",
            f"/users/{_segment(user_id)}",
            body={"status": status, "statusDescription": status_description},
        )
        return result if isinstance(result, dict) else {}

    def _slot_path(self, user_id: str, category: SlotCategory, index: int) -> str:
        if not user_id:
            raise ValidationError("Missing user id")
        return f"/message/{_segment(user_id)}/{_segment(category.value)}/{index}"

    async def get_message_slot(self, user_id: str, category: SlotCategory, index: int):
        return await self.client.request_json("GET", self._slot_path(user_id, category, index))

    async def put_message_slot(
        self,
        user_id: str,
        category: SlotCategory,
        index: int,
        message: str,
        max_retries: int | None = None,
    ):
        return await self.client.request_json(
            "PUT",
            self._slot_path(user_id, category, index),
            body={"message": message},
            max_retries=max_retries,
        )
