"""Domain models for the five social collections and their embedded records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

GROUP_STATUS_PENDING = "pending"
GROUP_STATUS_PENDING_APPROVAL = "pending_approval"
GROUP_STATUS_APPROVED = "approved"
GROUP_STATUSES = frozenset({GROUP_STATUS_PENDING, GROUP_STATUS_PENDING_APPROVAL, GROUP_STATUS_APPROVED})

CHAT_ROLE_ADMIN = "admin"
CHAT_ROLE_MEMBER = "member"
CHAT_ROLES = frozenset({CHAT_ROLE_ADMIN, CHAT_ROLE_MEMBER})


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


class MediaBlob(BaseModel):
	"""Ownership handle into the media blob store."""

	url: str
	storage_path: Optional[str] = None
	kind: str = "image"

	model_config = ConfigDict(from_attributes=True)


class User(BaseModel):
	"""Profile document keyed by the external-auth UID."""

	id: UUID = Field(default_factory=uuid4)
	auth_uid: str
	email: Optional[str] = None
	full_name: Optional[str] = None
	profile_image: Optional[MediaBlob] = None
	following: list[UUID] = Field(default_factory=list)
	followers: list[UUID] = Field(default_factory=list)
	created_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)


class GroupMember(BaseModel):
	"""Membership entry embedded in a group; list order is join order."""

	user_id: UUID
	status: str
	joined_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)


class _MemberDocument(BaseModel):
	"""Document embedding a member list, with a lazily built keyed index over it."""

	_index: Optional["MembershipIndex"] = PrivateAttr(default=None)

	def _entries(self) -> Iterable[tuple[UUID, str]]:
		raise NotImplementedError

	def index(self) -> "MembershipIndex":
		if self._index is None or self._index.source is not self.members:
			self._index = MembershipIndex.build(self.id, self._entries(), source=self.members)
		return self._index

	def invalidate_index(self) -> None:
		self._index = None

	def __deepcopy__(self, memo=None):
		# deep copies are edited in place, so they rebuild their own index
		copied = super().__deepcopy__(memo)
		copied.invalidate_index()
		return copied


class Group(_MemberDocument):
	"""Group document with its one-to-one linked chat reference."""

	id: UUID = Field(default_factory=uuid4)
	name: str
	description: str = ""
	is_private: bool = True
	admin_id: UUID
	members: list[GroupMember] = Field(default_factory=list)
	image: Optional[MediaBlob] = None
	linked_chat_id: Optional[UUID] = None
	version: int = 0
	created_at: datetime = Field(default_factory=utcnow)
	updated_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)

	def _entries(self) -> Iterable[tuple[UUID, str]]:
		return ((m.user_id, m.status) for m in self.members)

	def approved_members(self) -> list[GroupMember]:
		return [member for member in self.members if member.status == GROUP_STATUS_APPROVED]

	def approved_ids(self) -> list[UUID]:
		return [member.user_id for member in self.approved_members()]


class ChatMember(BaseModel):
	user_id: UUID
	role: str = CHAT_ROLE_MEMBER

	model_config = ConfigDict(from_attributes=True)


class ChatJoinRequest(BaseModel):
	"""Pending request to join a standalone group chat."""

	user_id: UUID
	message: str = ""
	created_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)


class Chat(_MemberDocument):
	"""Chat document; group chats may be linked one-to-one with a group."""

	id: UUID = Field(default_factory=uuid4)
	name: Optional[str] = None
	is_group_chat: bool = False
	members: list[ChatMember] = Field(default_factory=list)
	join_requests: list[ChatJoinRequest] = Field(default_factory=list)
	linked_group_id: Optional[UUID] = None
	latest_message_id: Optional[UUID] = None
	version: int = 0
	created_at: datetime = Field(default_factory=utcnow)
	updated_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)

	@property
	def admin_id(self) -> Optional[UUID]:
		for member in self.members:
			if member.role == CHAT_ROLE_ADMIN:
				return member.user_id
		return None

	def _entries(self) -> Iterable[tuple[UUID, str]]:
		return ((m.user_id, m.role) for m in self.members)

	def member_ids(self) -> list[UUID]:
		return [member.user_id for member in self.members]


class Post(BaseModel):
	"""Post document; ``group_id`` is None for personal/public posts."""

	id: UUID = Field(default_factory=uuid4)
	author_id: UUID
	text: str
	media: list[MediaBlob] = Field(default_factory=list)
	likes: list[UUID] = Field(default_factory=list)
	comment_ids: list[UUID] = Field(default_factory=list)
	group_id: Optional[UUID] = None
	created_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)


class Comment(BaseModel):
	id: UUID = Field(default_factory=uuid4)
	author_id: UUID
	post_id: UUID
	text: str
	created_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
	id: UUID = Field(default_factory=uuid4)
	sender_id: UUID
	chat_id: UUID
	content: str
	created_at: datetime = Field(default_factory=utcnow)

	model_config = ConfigDict(from_attributes=True)


@dataclass(frozen=True, slots=True)
class MembershipRecord:
	"""Typed view of one membership entry: group status or chat role."""

	entity_id: UUID
	user_id: UUID
	state: str
	position: int


class MembershipIndex:
	"""Lookup of membership records keyed by ``(entity_id, user_id)``."""

	__slots__ = ("entity_id", "source", "_records")

	def __init__(
		self, entity_id: UUID, records: dict[tuple[UUID, UUID], MembershipRecord], *, source: object = None
	) -> None:
		self.entity_id = entity_id
		# member list the records were built from
		self.source = source
		self._records = records

	@classmethod
	def build(
		cls, entity_id: UUID, entries: Iterable[tuple[UUID, str]], *, source: object = None
	) -> "MembershipIndex":
		records: dict[tuple[UUID, UUID], MembershipRecord] = {}
		for position, (user_id, state) in enumerate(entries):
			records[(entity_id, user_id)] = MembershipRecord(entity_id, user_id, state, position)
		return cls(entity_id, records, source=source)

	def get(self, user_id: UUID) -> Optional[MembershipRecord]:
		return self._records.get((self.entity_id, user_id))

	def state_of(self, user_id: UUID) -> Optional[str]:
		record = self.get(user_id)
		return record.state if record else None

	def __contains__(self, user_id: object) -> bool:
		return (self.entity_id, user_id) in self._records

	def __len__(self) -> int:
		return len(self._records)
