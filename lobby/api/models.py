from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LobbyModel(BaseModel):
    # Stored documents and request bodies use camelCase keys (sessionId, ownerId, ...).
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Session(LobbyModel):
    session_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    started: bool = False

    # memberId of the creator; never rewritten after creation.
    owner_id: str = Field(..., min_length=1)


class Member(LobbyModel):
    member_id: str = Field(..., min_length=1)
    display_name: str
    session_id: str = Field(..., min_length=1)


class CreateSessionRequest(LobbyModel):
    session_id: str = Field(..., min_length=1)
    member_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    display_name: str = ""


class JoinSessionRequest(LobbyModel):
    session_id: str = Field(..., min_length=1)
    member_id: str = Field(..., min_length=1)
    display_name: str = ""


class SessionRequest(LobbyModel):
    session_id: str = Field(..., min_length=1)
    member_id: str = Field(..., min_length=1)


class RemoveMemberRequest(SessionRequest):
    target_member_id: str = Field(..., min_length=1)


class SessionStateRequest(LobbyModel):
    session_id: str = Field(..., min_length=1)


class MessageResponse(LobbyModel):
    message: str


class SkippedItemModel(LobbyModel):
    key: str
    reason: str


class DeleteSessionResponse(LobbyModel):
    message: str
    deleted_member_ids: list[str] = Field(default_factory=list)
    skipped: list[SkippedItemModel] = Field(default_factory=list)


class MemberListResponse(LobbyModel):
    members: list[Member]
    skipped: list[SkippedItemModel] = Field(default_factory=list)


class SessionStateResponse(LobbyModel):
    session_id: str
    started: bool


class IsOwnerResponse(LobbyModel):
    session_id: str
    member_id: str
    is_owner: bool
