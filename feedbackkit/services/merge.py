"""
Feedback merge: fold one or more duplicate (secondary) items into a primary.

Votes move over de-duplicated by SDK user, comments are copied with a
provenance prefix, and each secondary is pointed at the primary. Validation
happens before any write; the writes share one transaction so a failure at
any step leaves nothing behind.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Set

from flask import current_app

from feedbackkit.errors import AlreadyMerged, Forbidden, InvalidRequest, NotFound
from feedbackkit.models import Comment, Feedback, Vote
from feedbackkit.observability import log_event
from feedbackkit.utils.helpers import parse_uuid, utcnow
from .feedback import serialize_one
from .policy import MANAGE_ROLES, require_role
from .repository import FeedbackRepository, transaction

PROVENANCE_PREFIX = "[Originally on: {title}] "


@dataclass
class MergeResult:
    primary_feedback: Feedback
    merged_count: int
    total_votes: int
    total_comments: int

    def to_dict(self, session) -> dict:
        return {
            "primary_feedback": serialize_one(session, self.primary_feedback),
            "merged_count": self.merged_count,
            "total_votes": self.total_votes,
            "total_comments": self.total_comments,
        }


def _parse_ids(primary_id, secondary_ids) -> tuple[uuid.UUID, List[uuid.UUID]]:
    pid = parse_uuid(primary_id)
    if pid is None:
        raise InvalidRequest("primary_feedback_id must be a UUID")
    if not isinstance(secondary_ids, (list, tuple)) or not secondary_ids:
        raise InvalidRequest("secondary_feedback_ids must be a non-empty list")

    sids: List[uuid.UUID] = []
    for raw in secondary_ids:
        sid = parse_uuid(raw)
        if sid is None:
            raise InvalidRequest("secondary_feedback_ids must contain UUIDs", value=str(raw))
        if sid == pid:
            raise InvalidRequest("Primary feedback cannot be merged into itself")
        if sid in sids:
            raise InvalidRequest("Duplicate secondary feedback id", feedback_id=sid)
        sids.append(sid)
    return pid, sids


def _migrate_votes(repo: FeedbackRepository, primary: Feedback, secondaries: Iterable[Feedback], voters: Set[str]) -> int:
    """Copy votes onto the primary for users who have not voted on it yet. Mutates `voters`."""
    added = 0
    for secondary in secondaries:
        for vote in repo.votes(secondary.id):
            if vote.user_id in voters:
                continue
            notify = bool(vote.notify_status_change and vote.email)
            repo.add(Vote(
                feedback_id=primary.id,
                user_id=vote.user_id,
                email=vote.email,
                notify_status_change=notify,
                permission_key=uuid.uuid4() if notify else None,
            ))
            voters.add(vote.user_id)
            added += 1
    repo.flush()
    return added


def _migrate_comments(repo: FeedbackRepository, primary: Feedback, secondaries: Iterable[Feedback]) -> int:
    copied = 0
    for secondary in secondaries:
        prefix = PROVENANCE_PREFIX.format(title=secondary.title)
        for comment in repo.comments(secondary.id):
            repo.add(Comment(
                feedback_id=primary.id,
                user_id=comment.user_id,
                content=prefix + comment.content,
                is_admin=comment.is_admin,
                created_at=comment.created_at,
            ))
            copied += 1
    repo.flush()
    return copied


def merge_feedback(
    session,
    *,
    primary_id,
    secondary_ids,
    actor,
    now: Optional[datetime] = None,
) -> MergeResult:
    pid, sids = _parse_ids(primary_id, secondary_ids)
    repo = FeedbackRepository(session)
    now = now or utcnow()

    with transaction(session):
        rows = repo.get_for_update([pid, *sids])

        primary = rows.get(pid)
        if primary is None:
            raise NotFound("Feedback not found", feedback_id=pid)
        require_role(session, primary.project, actor, MANAGE_ROLES)
        if primary.is_merged:
            raise AlreadyMerged(
                "Primary feedback has already been merged",
                feedback_id=pid,
                merged_into_id=primary.merged_into_id,
            )
        if primary.project.is_archived:
            raise Forbidden("Project is archived")

        secondaries: List[Feedback] = []
        for sid in sids:
            secondary = rows.get(sid)
            if secondary is None or secondary.project_id != primary.project_id:
                raise NotFound("Feedback not found", feedback_id=sid)
            if secondary.is_merged:
                raise AlreadyMerged(
                    "Feedback has already been merged",
                    feedback_id=sid,
                    merged_into_id=secondary.merged_into_id,
                )
            secondaries.append(secondary)

        voters = repo.voter_ids(primary.id)
        votes_added = _migrate_votes(repo, primary, secondaries, voters)
        comments_copied = _migrate_comments(repo, primary, secondaries)

        for secondary in secondaries:
            secondary.merged_into_id = primary.id
            secondary.merged_at = now

        # reassign so the JSON column is flagged dirty
        primary.merged_feedback_ids = list(primary.merged_feedback_ids or []) + [str(s.id) for s in secondaries]
        primary.vote_count = len(voters)
        repo.flush()
        total_comments = repo.comment_count(primary.id)

    result = MergeResult(
        primary_feedback=primary,
        merged_count=len(secondaries),
        total_votes=primary.vote_count,
        total_comments=total_comments,
    )
    log_event(
        current_app.logger,
        "feedback_merge",
        project_id=primary.project_id,
        primary_id=primary.id,
        secondary_ids=[str(s) for s in sids],
        votes_added=votes_added,
        comments_copied=comments_copied,
        total_votes=result.total_votes,
        total_comments=result.total_comments,
        actor_id=getattr(actor, "id", None),
    )
    return result
