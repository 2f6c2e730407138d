import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

Mode = Literal["debt", "expense"]


def _new_entry_id() -> str:
    return uuid.uuid4().hex[:12]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entry(BaseModel):
    id: str = Field(default_factory=_new_entry_id)
    name: str
    amount: int = Field(ge=0)
    note: str = ""
    time: datetime = Field(default_factory=_utcnow)


# Session states: which input the user is expected to send next.


class Idle(BaseModel):
    state: Literal["idle"] = "idle"


class AwaitingModeChoice(BaseModel):
    state: Literal["awaiting_mode"] = "awaiting_mode"
    participant: str


class AwaitingAmount(BaseModel):
    state: Literal["awaiting_amount"] = "awaiting_amount"
    participant: str
    mode: Mode


class AwaitingSplitAmount(BaseModel):
    state: Literal["awaiting_split"] = "awaiting_split"


SessionState = Annotated[
    Union[Idle, AwaitingModeChoice, AwaitingAmount, AwaitingSplitAmount],
    Field(discriminator="state"),
]

session_state_adapter = TypeAdapter(SessionState)


class Button(BaseModel):
    label: str
    data: str


class Reply(BaseModel):
    """Text plus inline buttons (one per row) sent back to the user."""

    text: str
    buttons: list[Button] = []


class ClearRequest(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    initiator: str
    initiator_name: str
    created_at: datetime = Field(default_factory=_utcnow)

    def age(self, now: datetime | None = None) -> timedelta:
        """Time since the request was opened, to whole seconds."""
        elapsed = (now or _utcnow()) - self.created_at
        return timedelta(seconds=int(elapsed.total_seconds()))
