from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from lobby.api.deps import get_coordinator
from lobby.api.models import (
    CreateSessionRequest,
    DeleteSessionResponse,
    IsOwnerResponse,
    JoinSessionRequest,
    MemberListResponse,
    MessageResponse,
    RemoveMemberRequest,
    SessionRequest,
    SessionStateRequest,
    SessionStateResponse,
    SkippedItemModel,
)
from lobby.coordinator import SessionCoordinator, SkippedItem
from lobby.errors import Conflict, InvalidInput, LobbyError, NotFound, StoreUnavailable, Unauthorized


logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_ERROR: dict[type[LobbyError], int] = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: LobbyError) -> int:
    for cls in type(error).__mro__:
        code = _STATUS_BY_ERROR.get(cls)
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _http_error(error: LobbyError, *, operation: str) -> HTTPException:
    code = status_for(error)
    if code >= 500:
        logger.error("%s failed: %s", operation, error)
    else:
        logger.info("%s rejected (%s): %s", operation, error.kind, error)
    return HTTPException(status_code=code, detail=error.message)


def _skipped(items: list[SkippedItem]) -> list[SkippedItemModel]:
    return [SkippedItemModel(key=s.key, reason=s.reason) for s in items]


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/createSession", response_model=MessageResponse)
async def create_session_route(
    payload: CreateSessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    try:
        coordinator.create_session_and_owner(
            session_id=payload.session_id,
            name=payload.name,
            owner_id=payload.member_id,
            owner_name=payload.display_name,
        )
    except LobbyError as e:
        raise _http_error(e, operation="createSession") from e

    return MessageResponse(message=f"{payload.name} has been made by {payload.display_name}")


@router.post("/joinSession", response_model=MessageResponse)
async def join_session_route(
    payload: JoinSessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    try:
        coordinator.join_session(session_id=payload.session_id, member_id=payload.member_id)
        coordinator.add_member(
            session_id=payload.session_id,
            member_id=payload.member_id,
            display_name=payload.display_name,
        )
    except LobbyError as e:
        raise _http_error(e, operation="joinSession") from e

    return MessageResponse(message=f"Member {payload.display_name} joined session {payload.session_id}")


@router.post("/deleteSession", response_model=DeleteSessionResponse)
async def delete_session_route(
    payload: SessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> DeleteSessionResponse:
    try:
        result = coordinator.delete_session(session_id=payload.session_id, requester_id=payload.member_id)
    except LobbyError as e:
        raise _http_error(e, operation="deleteSession") from e

    return DeleteSessionResponse(
        message=f"Session {payload.session_id} and associated members deleted",
        deleted_member_ids=result.deleted_member_ids,
        skipped=_skipped(result.skipped),
    )


@router.post("/removeMember", response_model=MessageResponse)
async def remove_member_route(
    payload: RemoveMemberRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    try:
        coordinator.remove_member(
            session_id=payload.session_id,
            requester_id=payload.member_id,
            target_member_id=payload.target_member_id,
        )
    except LobbyError as e:
        raise _http_error(e, operation="removeMember") from e

    return MessageResponse(message=f"Member {payload.target_member_id} removed from session {payload.session_id}")


@router.post("/startSession", response_model=MessageResponse)
async def start_session_route(
    payload: SessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    try:
        coordinator.start_session(session_id=payload.session_id, requester_id=payload.member_id)
    except LobbyError as e:
        raise _http_error(e, operation="startSession") from e

    return MessageResponse(message=f"Session {payload.session_id} started")


@router.post("/endSession", response_model=MessageResponse)
async def end_session_route(
    payload: SessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    try:
        coordinator.end_session(session_id=payload.session_id, requester_id=payload.member_id)
    except LobbyError as e:
        raise _http_error(e, operation="endSession") from e

    return MessageResponse(message=f"Session {payload.session_id} ended")


@router.post("/memberList", response_model=MemberListResponse)
async def member_list_route(
    payload: SessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MemberListResponse:
    try:
        result = coordinator.list_members(session_id=payload.session_id, requester_id=payload.member_id)
    except LobbyError as e:
        raise _http_error(e, operation="memberList") from e

    return MemberListResponse(members=result.items, skipped=_skipped(result.skipped))


@router.post("/leaveSession", response_model=MessageResponse)
async def leave_session_route(
    payload: SessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    try:
        coordinator.leave_session(session_id=payload.session_id, member_id=payload.member_id)
    except LobbyError as e:
        raise _http_error(e, operation="leaveSession") from e

    return MessageResponse(message=f"Member {payload.member_id} left session {payload.session_id}")


@router.post("/sessionState", response_model=SessionStateResponse)
async def session_state_route(
    payload: SessionStateRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionStateResponse:
    try:
        started = coordinator.get_session_started(payload.session_id)
    except LobbyError as e:
        raise _http_error(e, operation="sessionState") from e

    return SessionStateResponse(session_id=payload.session_id, started=started)


@router.post("/isOwner", response_model=IsOwnerResponse)
async def is_owner_route(
    payload: SessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> IsOwnerResponse:
    try:
        owner = coordinator.is_owner(payload.session_id, payload.member_id)
    except LobbyError as e:
        raise _http_error(e, operation="isOwner") from e

    return IsOwnerResponse(session_id=payload.session_id, member_id=payload.member_id, is_owner=owner)
