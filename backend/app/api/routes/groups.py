from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user, require_group_member_dep
from backend.app.api.schemas import CamelModel, Envelope, GroupOut
from backend.app.db import get_db
from backend.app.models import Group, User
from backend.app.services import group_service

router = APIRouter(prefix="/api/groups", tags=["groups"])


class GroupCreateIn(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    member_emails: List[str] = Field(default_factory=list)


class MembersAddIn(CamelModel):
    emails: List[str] = Field(..., min_length=1)


class GroupListEnvelope(CamelModel):
    success: bool = True
    count: int
    data: List[GroupOut]


@router.post("", status_code=201, response_model=Envelope[GroupOut])
def create_group(
    payload: GroupCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    group = group_service.create_group(db, user, payload.name, payload.member_emails)
    return Envelope[GroupOut](data=GroupOut(**group_service.group_detail(db, group)))


@router.get("", response_model=GroupListEnvelope)
def list_groups(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    groups = group_service.list_user_groups(db, user.id)
    return GroupListEnvelope(
        count=len(groups),
        data=[GroupOut(**group_service.group_detail(db, g)) for g in groups],
    )


@router.get("/{group_id}", response_model=Envelope[GroupOut])
def get_group(
    group: Group = Depends(require_group_member_dep()),
    db: Session = Depends(get_db),
):
    return Envelope[GroupOut](data=GroupOut(**group_service.group_detail(db, group)))


@router.post("/{group_id}/members", response_model=Envelope[GroupOut])
def add_members(
    group_id: str,
    payload: MembersAddIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    group = group_service.add_members(db, group_id, user.id, payload.emails)
    return Envelope[GroupOut](data=GroupOut(**group_service.group_detail(db, group)))


@router.delete("/{group_id}/members/{member_id}", response_model=Envelope[GroupOut])
def remove_member(
    group_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    group = group_service.remove_member(db, group_id, user.id, member_id)
    return Envelope[GroupOut](data=GroupOut(**group_service.group_detail(db, group)))
