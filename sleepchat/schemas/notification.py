from pydantic import BaseModel


class InviteNotification(BaseModel):
    id: str
    sender_id: str
    sender_display_name: str | None = None

    @classmethod
    def from_payload(cls, item: dict) -> "InviteNotification | None":
        """Build from a raw notification, or None if it isn't an actionable invite request."""
        if item.get("type") != "requestInvite" or not item.get("senderUserId"):
            return None

        notification_id = item.get("id") or item.get("_id")
        if not notification_id:
            return None

        return cls(
            id=notification_id,
            sender_id=item.get("senderUserId") or item.get("senderId") or item.get("userId"),
            sender_display_name=(
                item.get("senderDisplayName") or item.get("senderUsername") or item.get("displayName")
            ),
        )


class Friend(BaseModel):
    id: str
    display_name: str
    username: str | None = None
    status: str = "offline"
    status_description: str = ""
    thumbnail_url: str = ""

    @classmethod
    def from_payload(cls, item: dict) -> "Friend":
        return cls(
            id=item["id"],
            display_name=item.get("displayName", ""),
            username=item.get("username"),
            status=item.get("status") or "offline",
            status_description=item.get("statusDescription") or "",
            thumbnail_url=(
                item.get("currentAvatarThumbnailImageUrl") or item.get("profilePicOverride") or ""
            ),
        )
