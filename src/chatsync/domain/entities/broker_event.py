"""Events delivered over broker topics.

Every payload is tagged with a ``kind`` discriminant. Decoding goes through
``parse_broker_event`` so an unknown or malformed payload surfaces as a
``MalformedEventError`` instead of an untyped object.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from chatsync.domain.entities.message import AuthorProfile, Message
from chatsync.domain.errors import MalformedEventError


class BrokerEventKind(str, Enum):
    """Broker event kind enumeration."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    MEMBER_PROFILE_CHANGED = "member_profile_changed"


class MessageCreated(BaseModel):
    """A message was created."""

    kind: Literal[BrokerEventKind.CREATED] = BrokerEventKind.CREATED
    message: Message


class MessageUpdated(BaseModel):
    """A message was edited or its reactions changed."""

    kind: Literal[BrokerEventKind.UPDATED] = BrokerEventKind.UPDATED
    message: Message


class MessageDeleted(BaseModel):
    """A message was deleted."""

    kind: Literal[BrokerEventKind.DELETED] = BrokerEventKind.DELETED
    message_id: str = Field(min_length=1)


class MemberProfileChanged(BaseModel):
    """A member changed their display name or avatar."""

    kind: Literal[BrokerEventKind.MEMBER_PROFILE_CHANGED] = (
        BrokerEventKind.MEMBER_PROFILE_CHANGED
    )
    author_id: str = Field(min_length=1)
    display_name: str = ""
    avatar_url: str | None = None
    has_custom_name: bool = False
    has_custom_image: bool = False

    def to_profile(self) -> AuthorProfile:
        """Return the profile patch carried by this event."""
        return AuthorProfile(display_name=self.display_name, avatar_url=self.avatar_url)


BrokerEvent = Annotated[
    MessageCreated | MessageUpdated | MessageDeleted | MemberProfileChanged,
    Field(discriminator="kind"),
]

_BROKER_EVENT_ADAPTER: TypeAdapter[BrokerEvent] = TypeAdapter(BrokerEvent)


def parse_broker_event(payload: Any) -> BrokerEvent:
    """Decode a raw broker payload.

    Args:
        payload: A mapping (or JSON string) carrying a ``kind`` field.

    Returns:
        The typed event.

    Raises:
        MalformedEventError: If the payload is not a known, valid event.
    """
    try:
        if isinstance(payload, (str, bytes)):
            return _BROKER_EVENT_ADAPTER.validate_json(payload)
        return _BROKER_EVENT_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise MalformedEventError(f"Malformed broker event: {e}") from e


def dump_broker_event(event: BrokerEvent) -> dict[str, Any]:
    """Encode an event into its JSON-compatible wire form.

    Fields the producer never set are left out so that receivers only merge
    what the snapshot actually carries.
    """
    data = event.model_dump(mode="json", exclude_unset=True)
    data["kind"] = event.kind.value
    return data
