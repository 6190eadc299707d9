"""
Record store abstraction for Postgres and an in-memory test implementation.

The store methods are plain persistence primitives: ids, timestamps and
image variants are computed by the services before a record reaches
here.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    LargeBinary,
    String,
    Text,
    and_,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from portfolio.errors import NotFound


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ProjectImage:
    optimized_data: bytes
    thumbnail_data: bytes
    content_type: str
    original_size: int
    optimized_size: int
    thumbnail_size: int


@dataclass
class ProjectRecord:
    id: str
    title: str
    description: str
    tags: list[str]
    category: str = "web"
    featured: bool = False
    github: Optional[str] = None
    live: Optional[str] = None
    image: Optional[ProjectImage] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def search_text(self) -> str:
        return "\n".join([self.title, self.description, *self.tags]).lower()


@dataclass
class ContactRecord:
    id: str
    email: str
    message: str
    phone: Optional[str] = None
    status: str = "new"
    created_at: float = field(default_factory=lambda: time.time())


@dataclass
class UserRecord:
    id: str
    username: str
    password_hash: str
    is_admin: bool = False
    created_at: float = field(default_factory=lambda: time.time())


class DbClient(Protocol):
    """Interface for record storage."""

    def insert_project(self, record: ProjectRecord) -> ProjectRecord:
        ...

    def replace_project(self, record: ProjectRecord) -> ProjectRecord:
        ...

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        ...

    def delete_project(self, project_id: str) -> ProjectRecord:
        ...

    def list_projects(
        self,
        *,
        featured: Optional[bool] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[ProjectRecord], int]:
        ...

    def insert_contact(self, record: ContactRecord) -> ContactRecord:
        ...

    def get_contact(self, contact_id: str) -> Optional[ContactRecord]:
        ...

    def update_contact_status(self, contact_id: str, status: str) -> ContactRecord:
        ...

    def delete_contact(self, contact_id: str) -> ContactRecord:
        ...

    def list_contacts(
        self, *, status: Optional[str] = None, search: Optional[str] = None
    ) -> list[ContactRecord]:
        ...

    def insert_user(self, record: UserRecord) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        ...

    def ping(self) -> bool:
        ...

    def close(self) -> None:
        ...


def search_terms(search: Optional[str]) -> list[str]:
    return [term.lower() for term in (search or "").split() if term]


def _project_sort_key(record: ProjectRecord):
    # created_at descending, id ascending for equal timestamps
    return (-record.created_at, record.id)


class InMemoryDbClient:
    """Simple in-memory record store for development and tests."""

    def __init__(self):
        self.projects: Dict[str, ProjectRecord] = {}
        self.contacts: Dict[str, ContactRecord] = {}
        self.users: Dict[str, UserRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.projects.clear()
        self.contacts.clear()
        self.users.clear()

    def insert_project(self, record: ProjectRecord) -> ProjectRecord:
        self.projects[record.id] = replace(record, tags=list(record.tags))
        return record

    def replace_project(self, record: ProjectRecord) -> ProjectRecord:
        if record.id not in self.projects:
            raise NotFound("Project not found")
        self.projects[record.id] = replace(record, tags=list(record.tags))
        return record

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        record = self.projects.get(project_id)
        return replace(record, tags=list(record.tags)) if record else None

    def delete_project(self, project_id: str) -> ProjectRecord:
        record = self.projects.pop(project_id, None)
        if record is None:
            raise NotFound("Project not found")
        return record

    def list_projects(
        self,
        *,
        featured: Optional[bool] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[ProjectRecord], int]:
        terms = search_terms(search)
        matches = []
        for record in self.projects.values():
            if featured is not None and record.featured != featured:
                continue
            if category is not None and record.category != category:
                continue
            if terms:
                haystack = record.search_text()
                if not all(term in haystack for term in terms):
                    continue
            matches.append(record)
        matches.sort(key=_project_sort_key)
        page = matches[offset : offset + limit]
        return [replace(r, tags=list(r.tags)) for r in page], len(matches)

    def insert_contact(self, record: ContactRecord) -> ContactRecord:
        self.contacts[record.id] = record
        return record

    def get_contact(self, contact_id: str) -> Optional[ContactRecord]:
        return self.contacts.get(contact_id)

    def update_contact_status(self, contact_id: str, status: str) -> ContactRecord:
        record = self.contacts.get(contact_id)
        if record is None:
            raise NotFound("Contact message not found")
        record.status = status
        return record

    def delete_contact(self, contact_id: str) -> ContactRecord:
        record = self.contacts.pop(contact_id, None)
        if record is None:
            raise NotFound("Contact message not found")
        return record

    def list_contacts(
        self, *, status: Optional[str] = None, search: Optional[str] = None
    ) -> list[ContactRecord]:
        terms = search_terms(search)
        results = []
        for record in self.contacts.values():
            if status is not None and record.status != status:
                continue
            if terms:
                haystack = f"{record.email}\n{record.message}".lower()
                if not all(term in haystack for term in terms):
                    continue
            results.append(record)
        results.sort(key=lambda r: (-r.created_at, r.id))
        return results

    def insert_user(self, record: UserRecord) -> UserRecord:
        self.users[record.id] = record
        return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_project_record(self, row: "ProjectRow") -> ProjectRecord:
        image = None
        if row.image_optimized is not None and row.image_thumbnail is not None:
            image = ProjectImage(
                optimized_data=row.image_optimized,
                thumbnail_data=row.image_thumbnail,
                content_type=row.image_content_type,
                original_size=row.image_original_size,
                optimized_size=row.image_optimized_size,
                thumbnail_size=row.image_thumbnail_size,
            )
        return ProjectRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            tags=list(row.tags or []),
            category=row.category,
            featured=row.featured,
            github=row.github,
            live=row.live,
            image=image,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _apply_project(self, row: "ProjectRow", record: ProjectRecord) -> None:
        row.title = record.title
        row.description = record.description
        row.tags = list(record.tags)
        row.category = record.category
        row.featured = record.featured
        row.github = record.github
        row.live = record.live
        row.search_text = record.search_text()
        row.created_at = record.created_at
        row.updated_at = record.updated_at
        image = record.image
        row.image_optimized = image.optimized_data if image else None
        row.image_thumbnail = image.thumbnail_data if image else None
        row.image_content_type = image.content_type if image else None
        row.image_original_size = image.original_size if image else None
        row.image_optimized_size = image.optimized_size if image else None
        row.image_thumbnail_size = image.thumbnail_size if image else None

    def insert_project(self, record: ProjectRecord) -> ProjectRecord:
        with self.Session() as session:
            row = ProjectRow(id=record.id)
            self._apply_project(row, record)
            session.add(row)
            session.commit()
            return record

    def replace_project(self, record: ProjectRecord) -> ProjectRecord:
        with self.Session() as session:
            row = session.get(ProjectRow, record.id)
            if not row:
                raise NotFound("Project not found")
            self._apply_project(row, record)
            session.commit()
            return record

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        with self.Session() as session:
            row = session.get(ProjectRow, project_id)
            if not row:
                return None
            return self._to_project_record(row)

    def delete_project(self, project_id: str) -> ProjectRecord:
        with self.Session() as session:
            row = session.get(ProjectRow, project_id)
            if not row:
                raise NotFound("Project not found")
            record = self._to_project_record(row)
            session.delete(row)
            session.commit()
            return record

    def list_projects(
        self,
        *,
        featured: Optional[bool] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[ProjectRecord], int]:
        conditions = []
        if featured is not None:
            conditions.append(ProjectRow.featured == featured)
        if category is not None:
            conditions.append(ProjectRow.category == category)
        for term in search_terms(search):
            conditions.append(ProjectRow.search_text.contains(term, autoescape=True))
        where = and_(*conditions) if conditions else None

        with self.Session() as session:
            count_stmt = select(func.count()).select_from(ProjectRow)
            stmt = select(ProjectRow)
            if where is not None:
                count_stmt = count_stmt.where(where)
                stmt = stmt.where(where)
            total = session.execute(count_stmt).scalar_one()
            stmt = (
                stmt.order_by(ProjectRow.created_at.desc(), ProjectRow.id.asc())
                .offset(offset)
                .limit(limit)
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_project_record(row) for row in rows], total

    def _to_contact_record(self, row: "ContactRow") -> ContactRecord:
        return ContactRecord(
            id=row.id,
            email=row.email,
            phone=row.phone,
            message=row.message,
            status=row.status,
            created_at=row.created_at,
        )

    def insert_contact(self, record: ContactRecord) -> ContactRecord:
        with self.Session() as session:
            session.add(
                ContactRow(
                    id=record.id,
                    email=record.email,
                    phone=record.phone,
                    message=record.message,
                    status=record.status,
                    created_at=record.created_at,
                )
            )
            session.commit()
            return record

    def get_contact(self, contact_id: str) -> Optional[ContactRecord]:
        with self.Session() as session:
            row = session.get(ContactRow, contact_id)
            return self._to_contact_record(row) if row else None

    def update_contact_status(self, contact_id: str, status: str) -> ContactRecord:
        with self.Session() as session:
            row = session.get(ContactRow, contact_id)
            if not row:
                raise NotFound("Contact message not found")
            row.status = status
            session.commit()
            return self._to_contact_record(row)

    def delete_contact(self, contact_id: str) -> ContactRecord:
        with self.Session() as session:
            row = session.get(ContactRow, contact_id)
            if not row:
                raise NotFound("Contact message not found")
            record = self._to_contact_record(row)
            session.delete(row)
            session.commit()
            return record

    def list_contacts(
        self, *, status: Optional[str] = None, search: Optional[str] = None
    ) -> list[ContactRecord]:
        stmt = select(ContactRow)
        if status is not None:
            stmt = stmt.where(ContactRow.status == status)
        for term in search_terms(search):
            stmt = stmt.where(
                or_(
                    func.lower(ContactRow.email).contains(term, autoescape=True),
                    func.lower(ContactRow.message).contains(term, autoescape=True),
                )
            )
        stmt = stmt.order_by(ContactRow.created_at.desc(), ContactRow.id.asc())
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_contact_record(row) for row in rows]

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            username=row.username,
            password_hash=row.password_hash,
            is_admin=row.is_admin,
            created_at=row.created_at,
        )

    def insert_user(self, record: UserRecord) -> UserRecord:
        with self.Session() as session:
            session.add(
                UserRow(
                    id=record.id,
                    username=record.username,
                    password_hash=record.password_hash,
                    is_admin=record.is_admin,
                    created_at=record.created_at,
                )
            )
            session.commit()
            return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.username == username).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


Base = declarative_base()


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True)
    title = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False)
    category = Column(String, nullable=False, default="web", index=True)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    github = Column(String, nullable=True)
    live = Column(String, nullable=True)
    search_text = Column(Text, nullable=False, default="")
    image_optimized = Column(LargeBinary, nullable=True)
    image_thumbnail = Column(LargeBinary, nullable=True)
    image_content_type = Column(String, nullable=True)
    image_original_size = Column(Integer, nullable=True)
    image_optimized_size = Column(Integer, nullable=True)
    image_thumbnail_size = Column(Integer, nullable=True)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False, index=True)


class ContactRow(Base):
    __tablename__ = "contacts"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    message = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="new", index=True)
    created_at = Column(Float, nullable=False, index=True)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)
