import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer,
    String, Text
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class UserStatus(str, enum.Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


class MessageStatus(str, enum.Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"

    def earlier(self) -> list["MessageStatus"]:
        # Статусы, из которых можно перейти в данный (только вперёд)
        order = list(MessageStatus)
        return order[:order.index(self)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String(64), unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    status = Column(
        Enum(UserStatus, native_enum=False, length=16),
        nullable=False, default=UserStatus.OFFLINE
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Group(Base):
    __tablename__ = "groups"
    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    created_by = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    memberships = relationship(
        "GroupMember", back_populates="group",
        cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def members(self) -> list[str]:
        return sorted(m.username for m in self.memberships)


class GroupMember(Base):
    __tablename__ = "group_members"
    group_id = Column(Integer, ForeignKey("groups.id"), primary_key=True)
    username = Column(String(64), primary_key=True)

    group = relationship("Group", back_populates="memberships")


class Message(Base):
    # Строка таблицы: либо DirectMessage, либо GroupMessage
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(
            "(kind = 'direct' AND receiver IS NOT NULL AND group_id IS NULL)"
            " OR (kind = 'group' AND group_id IS NOT NULL"
            " AND receiver IS NULL)",
            name="ck_messages_addressing",
        ),
        Index("ix_messages_receiver_status", "receiver", "status"),
    )

    id = Column(Integer, primary_key=True)
    kind = Column(String(16), nullable=False)
    sender = Column(String(64), nullable=False)
    receiver = Column(String(64), nullable=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    content = Column(Text, nullable=False)
    # Время ставится на стороне приложения: now() в Postgres одинаков в транзакции
    timestamp = Column(DateTime(timezone=True), default=_utcnow, index=True)
    status = Column(
        Enum(MessageStatus, native_enum=False, length=16),
        nullable=False, default=MessageStatus.SENT
    )

    __mapper_args__ = {"polymorphic_on": kind}


class DirectMessage(Message):
    __mapper_args__ = {"polymorphic_identity": "direct"}


class GroupMessage(Message):
    __mapper_args__ = {"polymorphic_identity": "group"}
