"""
Data access for feedback, votes and comments, plus the explicit transaction
boundary used by every multi-step write.

Services receive a ``Session`` and build a ``FeedbackRepository`` around it;
routes never issue queries for these tables directly.
"""
from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from feedbackkit.models import Comment, Feedback, SDKUser, Vote


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit on clean exit; roll back and re-raise on any exception."""
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise


class FeedbackRepository:
    def __init__(self, session: Session):
        self.session = session

    # ---- feedback ----
    def get(self, feedback_id: uuid.UUID) -> Optional[Feedback]:
        return self.session.get(Feedback, feedback_id)

    def get_for_update(self, feedback_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Feedback]:
        """
        Load and row-lock the given feedback items (SELECT ... FOR UPDATE).
        Rows are locked in id order so overlapping requests cannot deadlock.
        """
        ids = sorted(set(feedback_ids))
        if not ids:
            return {}
        stmt = (
            select(Feedback)
            .where(Feedback.id.in_(ids))
            .order_by(Feedback.id)
            .with_for_update(of=Feedback)
            .execution_options(populate_existing=True)
        )
        rows = self.session.execute(stmt).unique().scalars().all()
        return {row.id: row for row in rows}

    def list_for_project(
        self,
        project_id: uuid.UUID,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        include_merged: bool = False,
    ) -> List[Feedback]:
        stmt = select(Feedback).where(Feedback.project_id == project_id)
        if not include_merged:
            stmt = stmt.where(Feedback.merged_into_id.is_(None))
        if status:
            stmt = stmt.where(Feedback.status == status)
        if category:
            stmt = stmt.where(Feedback.category == category)
        stmt = stmt.order_by(Feedback.vote_count.desc(), Feedback.created_at.desc())
        return list(self.session.execute(stmt).unique().scalars().all())

    def stale_unmerged(self, cutoff) -> List[Feedback]:
        stmt = select(Feedback).where(Feedback.created_at < cutoff, Feedback.merged_into_id.is_(None))
        return list(self.session.execute(stmt).unique().scalars().all())

    def merged_into(self, feedback_id: uuid.UUID) -> List[Feedback]:
        stmt = select(Feedback).where(Feedback.merged_into_id == feedback_id)
        return list(self.session.execute(stmt).unique().scalars().all())

    def count_for_project(self, project_id: uuid.UUID) -> int:
        stmt = select(func.count(Feedback.id)).where(Feedback.project_id == project_id)
        return self.session.execute(stmt).scalar_one()

    # ---- votes ----
    def votes(self, feedback_id: uuid.UUID) -> List[Vote]:
        stmt = select(Vote).where(Vote.feedback_id == feedback_id).order_by(Vote.created_at)
        return list(self.session.execute(stmt).scalars().all())

    def voter_ids(self, feedback_id: uuid.UUID) -> Set[str]:
        stmt = select(Vote.user_id).where(Vote.feedback_id == feedback_id)
        return set(self.session.execute(stmt).scalars().all())

    def find_vote(self, feedback_id: uuid.UUID, user_id: str) -> Optional[Vote]:
        stmt = select(Vote).where(Vote.feedback_id == feedback_id, Vote.user_id == user_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_vote_by_permission_key(self, key: uuid.UUID) -> Optional[Vote]:
        stmt = select(Vote).where(Vote.permission_key == key)
        return self.session.execute(stmt).scalar_one_or_none()

    def votes_by_feedback(self, feedback_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, List[str]]:
        ids = list(feedback_ids)
        out: Dict[uuid.UUID, List[str]] = {fid: [] for fid in ids}
        if not ids:
            return out
        stmt = select(Vote.feedback_id, Vote.user_id).where(Vote.feedback_id.in_(ids))
        for fid, uid in self.session.execute(stmt).all():
            out[fid].append(uid)
        return out

    def notify_voters(self, feedback_id: uuid.UUID) -> List[Vote]:
        stmt = select(Vote).where(
            Vote.feedback_id == feedback_id,
            Vote.notify_status_change.is_(True),
            Vote.email.is_not(None),
        )
        return list(self.session.execute(stmt).scalars().all())

    # ---- comments ----
    def comments(self, feedback_id: uuid.UUID) -> List[Comment]:
        stmt = select(Comment).where(Comment.feedback_id == feedback_id).order_by(Comment.created_at.asc())
        return list(self.session.execute(stmt).scalars().all())

    def get_comment(self, comment_id: uuid.UUID) -> Optional[Comment]:
        return self.session.get(Comment, comment_id)

    def comment_count(self, feedback_id: uuid.UUID) -> int:
        stmt = select(func.count(Comment.id)).where(Comment.feedback_id == feedback_id)
        return self.session.execute(stmt).scalar_one()

    def comment_counts(self, feedback_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, int]:
        ids = list(feedback_ids)
        if not ids:
            return {}
        stmt = (
            select(Comment.feedback_id, func.count(Comment.id))
            .where(Comment.feedback_id.in_(ids))
            .group_by(Comment.feedback_id)
        )
        return {fid: n for fid, n in self.session.execute(stmt).all()}

    # ---- sdk users ----
    def mrr_by_user(self, project_id: uuid.UUID, user_ids: Iterable[str]) -> Dict[str, float]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        stmt = select(SDKUser.user_id, SDKUser.mrr).where(
            SDKUser.project_id == project_id,
            SDKUser.user_id.in_(ids),
            SDKUser.mrr.is_not(None),
        )
        return {uid: mrr for uid, mrr in self.session.execute(stmt).all()}

    # ---- writes ----
    def add(self, obj) -> None:
        self.session.add(obj)

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        self.session.flush()
