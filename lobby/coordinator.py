from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from pydantic import ValidationError

from lobby.api.models import Member, Session
from lobby.errors import Conflict, CorruptRecord, InvalidInput, NotFound, StoreUnavailable, Unauthorized
from lobby.lifecycle import SessionLifecycle
from lobby.store import CollectionSpec, EntityStore, IndexedRecord, PutIfAbsent


logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_KEY_FIELD = "sessionId"
MEMBER_KEY_FIELD = "memberId"
# Members carry the sessionId they belong to; this is the secondary index used by list/cascade.
MEMBER_SESSION_FIELD = "sessionId"


@dataclass(frozen=True, slots=True)
class SkippedItem:
    """A record a best-effort operation could not handle and moved past."""

    key: str
    reason: str


@dataclass(frozen=True, slots=True)
class ListResult(Generic[T]):
    items: list[T]
    skipped: list[SkippedItem] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


@dataclass(frozen=True, slots=True)
class CascadeResult:
    session_id: str
    deleted_member_ids: list[str] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def collection_specs(*, sessions_collection: str, members_collection: str) -> list[CollectionSpec]:
    return [
        CollectionSpec(name=sessions_collection, key_field=SESSION_KEY_FIELD),
        CollectionSpec(name=members_collection, key_field=MEMBER_KEY_FIELD, index_fields=(MEMBER_SESSION_FIELD,)),
    ]


class SessionCoordinator:
    """Keeps sessions and their members consistent in an EntityStore.

    Stateless: the store handle is injected and may be shared across concurrent requests.

    Consistency contract:
      - create_session_and_owner is all-or-nothing.
      - join (join_session then add_member) is check-then-act. A session deleted between
        the two steps leaves an orphaned member behind; this is accepted, not guarded.
      - remove_member and leave_session delete by memberId alone. The session_id only
        gates ownership (remove) or is logged (leave); it is not matched against the
        member's own sessionId, so an owner can remove a member of another session.
      - delete_session removes the session first, then each member individually. Member
        failures are reported in the result and never roll back the session delete.
    """

    def __init__(self, *, store: EntityStore, sessions_collection: str, members_collection: str) -> None:
        self._store = store
        self._sessions = sessions_collection
        self._members = members_collection

    # -- reads ---------------------------------------------------------------

    def get_session(self, session_id: str) -> Session:
        doc = self._store.get(self._sessions, session_id)
        if doc is None:
            raise NotFound(f"session {session_id} not found")
        try:
            return Session.model_validate(doc)
        except ValidationError as e:
            raise CorruptRecord(f"failed to decode session {session_id}: {e}", key=session_id) from e

    def is_owner(self, session_id: str, member_id: str) -> bool:
        return self.get_session(session_id).owner_id == member_id

    def get_session_started(self, session_id: str) -> bool:
        return self.get_session(session_id).started

    def _require_owner(self, session_id: str, requester_id: str, *, action: str) -> Session:
        session = self.get_session(session_id)
        if session.owner_id != requester_id:
            raise Unauthorized(f"only the session owner can {action}")
        return session

    # -- create / join -------------------------------------------------------

    def create_session_and_owner(self, *, session_id: str, name: str, owner_id: str, owner_name: str) -> Session:
        try:
            session = Session(session_id=session_id, name=name, started=False, owner_id=owner_id)
            owner = Member(member_id=owner_id, display_name=owner_name, session_id=session_id)
        except ValidationError as e:
            raise InvalidInput(f"invalid session request: {e}") from e

        try:
            self._store.transactional_write(
                [
                    PutIfAbsent(collection=self._sessions, key=session_id, record=session.model_dump(by_alias=True)),
                    PutIfAbsent(collection=self._members, key=owner_id, record=owner.model_dump(by_alias=True)),
                ]
            )
        except Conflict as e:
            raise Conflict(f"session {session_id} already exists or member {owner_id} already joined") from e

        logger.info("Created session %s owned by %s", session_id, owner_id)
        return session

    def join_session(self, *, session_id: str, member_id: str) -> None:
        """First half of a join: the session must exist right now."""

        self.get_session(session_id)
        logger.debug("Member %s may join session %s", member_id, session_id)

    def add_member(self, *, session_id: str, member_id: str, display_name: str) -> Member:
        """Second half of a join. Only the memberId is conditioned; the session is not re-checked."""

        try:
            member = Member(member_id=member_id, display_name=display_name, session_id=session_id)
        except ValidationError as e:
            raise InvalidInput(f"invalid member request: {e}") from e

        try:
            self._store.put_if_absent(self._members, member_id, member.model_dump(by_alias=True))
        except Conflict as e:
            raise Conflict(f"member {member_id} already exists") from e

        logger.info("Member %s joined session %s", member_id, session_id)
        return member

    # -- owner-only operations ----------------------------------------------

    def delete_session(self, *, session_id: str, requester_id: str) -> CascadeResult:
        self._require_owner(session_id, requester_id, action="delete this session")

        self._store.delete(self._sessions, session_id)
        logger.info("Deleted session: %s", session_id)

        result = CascadeResult(session_id=session_id)
        for hit in self._store.query_by_index(self._members, MEMBER_SESSION_FIELD, session_id):
            member = self._decode_member(hit)
            if isinstance(member, SkippedItem):
                logger.warning("Skipping member %s of session %s: %s", member.key, session_id, member.reason)
                result.skipped.append(member)
                continue

            try:
                self._store.delete(self._members, hit.key)
            except StoreUnavailable as e:
                logger.warning("Failed to delete member %s: %s", hit.key, e)
                result.skipped.append(SkippedItem(key=hit.key, reason=str(e)))
                continue

            logger.info("Deleted member: %s", hit.key)
            result.deleted_member_ids.append(hit.key)

        return result

    def remove_member(self, *, session_id: str, requester_id: str, target_member_id: str) -> None:
        self._require_owner(session_id, requester_id, action="remove a member")
        self._store.delete(self._members, target_member_id)
        logger.info("Removed member %s from session %s", target_member_id, session_id)

    def start_session(self, *, session_id: str, requester_id: str) -> bool:
        return self._transition(session_id, requester_id, event="begin", action="start this session")

    def end_session(self, *, session_id: str, requester_id: str) -> bool:
        return self._transition(session_id, requester_id, event="finish", action="end this session")

    def _transition(self, session_id: str, requester_id: str, *, event: str, action: str) -> bool:
        session = self._require_owner(session_id, requester_id, action=action)

        lifecycle = SessionLifecycle.from_flag(session.started)
        lifecycle.send(event)

        # Unconditional write: repeating start (or end) rewrites the same value.
        self._store.update(self._sessions, session_id, {"started": lifecycle.started_flag})
        logger.info("Session %s started=%s", session_id, lifecycle.started_flag)
        return lifecycle.started_flag

    def list_members(self, *, session_id: str, requester_id: str) -> ListResult[Member]:
        self._require_owner(session_id, requester_id, action="list members")

        result: ListResult[Member] = ListResult(items=[])
        for hit in self._store.query_by_index(self._members, MEMBER_SESSION_FIELD, session_id):
            member = self._decode_member(hit)
            if isinstance(member, SkippedItem):
                logger.warning("Skipping member %s of session %s: %s", member.key, session_id, member.reason)
                result.skipped.append(member)
                continue
            result.items.append(member)
        return result

    # -- self-service --------------------------------------------------------

    def leave_session(self, *, session_id: str, member_id: str) -> None:
        self._store.delete(self._members, member_id)
        logger.info("Member %s left session %s", member_id, session_id)

    @staticmethod
    def _decode_member(hit: IndexedRecord) -> Member | SkippedItem:
        if hit.record is None:
            return SkippedItem(key=hit.key, reason=hit.error or "undecodable record")
        try:
            return Member.model_validate(hit.record)
        except ValidationError as e:
            return SkippedItem(key=hit.key, reason=f"invalid member record: {e.error_count()} validation error(s)")
