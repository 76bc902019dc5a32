from __future__ import annotations

from typing import Any, Dict, Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import ForbiddenError, NotFoundError, ValidationError
from backend.app.models import Group, GroupMembership, User
from backend.app.services.transaction_service import atomic


def require_group(db: Session, group_id: str) -> Group:
    group = db.get(Group, group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


def is_member(db: Session, group_id: str, user_id: str) -> bool:
    membership_id = db.execute(
        select(GroupMembership.id).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == user_id,
        )
    ).scalar_one_or_none()
    return membership_id is not None


def is_creator(group: Group, user_id: str) -> bool:
    return group.creator_id == user_id


def require_member(db: Session, group_id: str, user_id: str) -> Group:
    group = require_group(db, group_id)
    if not is_member(db, group_id, user_id):
        raise ForbiddenError("You are not a member of this group")
    return group


def member_ids(db: Session, group_id: str) -> List[str]:
    return list(
        db.execute(
            select(GroupMembership.user_id)
            .where(GroupMembership.group_id == group_id)
            .order_by(GroupMembership.created_at.asc(), GroupMembership.id.asc())
        )
        .scalars()
        .all()
    )


def user_group_ids(db: Session, user_id: str) -> List[str]:
    return list(
        db.execute(select(GroupMembership.group_id).where(GroupMembership.user_id == user_id))
        .scalars()
        .all()
    )


def _users_by_email(db: Session, emails: Iterable[str]) -> List[User]:
    normalized = sorted({e.strip().lower() for e in emails if e and e.strip()})
    if not normalized:
        return []
    return list(db.execute(select(User).where(User.email.in_(normalized))).scalars().all())


def user_summary(user: User) -> Dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email}


def group_detail(db: Session, group: Group) -> Dict[str, Any]:
    rows = (
        db.execute(
            select(User)
            .join(GroupMembership, GroupMembership.user_id == User.id)
            .where(GroupMembership.group_id == group.id)
            .order_by(GroupMembership.created_at.asc(), GroupMembership.id.asc())
        )
        .scalars()
        .all()
    )
    creator = db.get(User, group.creator_id)
    return {
        "id": group.id,
        "name": group.name,
        "creator": user_summary(creator) if creator else None,
        "members": [user_summary(u) for u in rows],
        "created_at": group.created_at,
    }


# -------------------------
# Writes
# -------------------------

def create_group(db: Session, creator: User, name: str, member_emails: Iterable[str] = ()) -> Group:
    clean_name = (name or "").strip()
    if not 2 <= len(clean_name) <= 50:
        raise ValidationError("Group name must be between 2 and 50 characters")

    with atomic(db):
        group = Group(name=clean_name, creator_id=creator.id)
        db.add(group)
        db.flush()

        seen = {creator.id}
        db.add(GroupMembership(group_id=group.id, user_id=creator.id))
        for user in _users_by_email(db, member_emails):
            if user.id in seen:
                continue
            seen.add(user.id)
            db.add(GroupMembership(group_id=group.id, user_id=user.id))

    db.refresh(group)
    return group


def list_user_groups(db: Session, user_id: str) -> List[Group]:
    return list(
        db.execute(
            select(Group)
            .join(GroupMembership, GroupMembership.group_id == Group.id)
            .where(GroupMembership.user_id == user_id)
            .order_by(Group.created_at.desc(), Group.id.desc())
        )
        .scalars()
        .all()
    )


def add_members(db: Session, group_id: str, actor_id: str, emails: Iterable[str]) -> Group:
    group = require_group(db, group_id)
    if not is_creator(group, actor_id):
        raise ForbiddenError("Only group creator can add members")

    candidates = _users_by_email(db, emails)
    if not candidates:
        raise ValidationError("No valid users found with provided emails")

    existing = set(member_ids(db, group_id))
    to_add = [u for u in candidates if u.id not in existing]
    if not to_add:
        raise ValidationError("All users are already members")

    with atomic(db):
        for user in to_add:
            db.add(GroupMembership(group_id=group_id, user_id=user.id))
    return group


def remove_member(db: Session, group_id: str, actor_id: str, member_id: str) -> Group:
    """Membership only; the member's ledger cells in this group are left untouched."""
    group = require_group(db, group_id)
    if not is_creator(group, actor_id):
        raise ForbiddenError("Only group creator can remove members")
    if member_id == group.creator_id:
        raise ValidationError("Cannot remove group creator")

    membership = db.execute(
        select(GroupMembership).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == member_id,
        )
    ).scalars().first()
    if not membership:
        raise NotFoundError("Member not found in this group")

    with atomic(db):
        db.delete(membership)
    return group
