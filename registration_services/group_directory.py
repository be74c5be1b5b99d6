"""
SQL group directory (``registration_services.group_directory``).

Responsibility:
    Implements the kernel's GroupMembershipResolver and UserDirectory ports
    over three tables: ``directory_users``, ``approval_groups`` and
    ``approval_group_members``.  Managing those rows (creating groups,
    adding members) belongs to the administration subsystem; this module
    only reads them, apart from the small ``add_*`` helpers used by seed
    scripts and tests.

Invariants enforced:
    - Only members of active groups who are themselves active users are
      returned.
    - Results are de-duplicated and ordered by user id.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from registration_kernel.db.base import Base, UUIDString
from registration_kernel.logging_config import get_logger

logger = get_logger("services.group_directory")


class DirectoryUser(Base):
    __tablename__ = "directory_users"

    user_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ApprovalGroup(Base):
    __tablename__ = "approval_groups"

    group_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ApprovalGroupMember(Base):
    __tablename__ = "approval_group_members"

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_approval_group_member"),
    )

    group_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_groups.id"), nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("directory_users.user_id"), nullable=False,
    )


class SqlGroupDirectory:
    """GroupMembershipResolver + UserDirectory backed by the directory tables."""

    def __init__(self, session: Session):
        self._session = session

    def get_user_ids_from_groups(self, group_ids: list[str]) -> list[str]:
        if not group_ids:
            return []

        user_ids = self._session.execute(
            select(ApprovalGroupMember.user_id)
            .join(ApprovalGroup, ApprovalGroup.id == ApprovalGroupMember.group_id)
            .join(DirectoryUser, DirectoryUser.user_id == ApprovalGroupMember.user_id)
            .where(
                ApprovalGroup.group_key.in_(group_ids),
                ApprovalGroup.is_active.is_(True),
                DirectoryUser.is_active.is_(True),
            )
            .distinct()
            .order_by(ApprovalGroupMember.user_id)
        ).scalars().all()

        logger.debug(
            "group_members_resolved",
            extra={"group_ids": list(group_ids), "member_count": len(user_ids)},
        )
        return list(user_ids)

    def get_emails(self, user_ids: list[str]) -> dict[str, str]:
        if not user_ids:
            return {}
        rows = self._session.execute(
            select(DirectoryUser.user_id, DirectoryUser.email)
            .where(DirectoryUser.user_id.in_(user_ids))
        ).all()
        return {user_id: email for user_id, email in rows if email}

    # -- seeding helpers --------------------------------------------------

    def add_user(self, user_id: str, email: str = "", is_active: bool = True) -> DirectoryUser:
        user = DirectoryUser(user_id=user_id, email=email, is_active=is_active)
        self._session.add(user)
        self._session.flush()
        return user

    def add_group(
        self,
        group_key: str,
        name: str,
        members: tuple[str, ...] = (),
        is_active: bool = True,
    ) -> ApprovalGroup:
        group = ApprovalGroup(group_key=group_key, name=name, is_active=is_active)
        self._session.add(group)
        self._session.flush()
        for user_id in members:
            self._session.add(ApprovalGroupMember(group_id=group.id, user_id=user_id))
        self._session.flush()
        return group
