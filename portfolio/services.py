"""
Service layer: project image pipeline, listing cache, contacts and admin auth.

Services receive their collaborators (record store, cache, transcoder) at
construction. They compute ids, timestamps and image variants themselves
and hand finished records to the store.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

import bcrypt
import jwt

from image_pipeline import transcoder
from portfolio import validation
from portfolio.cache import (
    DEFAULT_TTL_SECONDS,
    LIST_KEY_PREFIX,
    CacheClient,
    make_item_key,
    make_list_key,
)
from portfolio.db import (
    ContactRecord,
    DbClient,
    ProjectImage,
    ProjectRecord,
    UserRecord,
    new_id,
)
from portfolio.errors import (
    AuthError,
    NotFound,
    ProcessingFailure,
    UnsupportedFormat,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"
IMAGE_VARIANTS = ("full", "thumbnail")
JWT_ALGORITHM = "HS256"


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    content_type: str
    cache_control: str = IMAGE_CACHE_CONTROL


class ProjectService:
    """Orchestrates project writes, cached reads and image serving."""

    def __init__(
        self,
        db: DbClient,
        cache: CacheClient,
        *,
        url_prefix: str = "/api",
        cache_ttl: int = DEFAULT_TTL_SECONDS,
        transcode: Callable[[bytes], transcoder.TranscodedImage] = transcoder.transcode,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.cache = cache
        self.url_prefix = url_prefix.rstrip("/")
        self.cache_ttl = cache_ttl
        self.transcode = transcode
        self.clock = clock

    # Representation

    def image_url(self, project_id: str, variant: str = "full") -> str:
        url = f"{self.url_prefix}/projects/{project_id}/image"
        return url if variant == "full" else f"{url}/{variant}"

    def to_representation(self, record: ProjectRecord) -> dict[str, Any]:
        # Image bytes are served separately; only references go out here.
        image = None
        if record.image is not None:
            image = {
                "url": self.image_url(record.id),
                "thumbnailUrl": self.image_url(record.id, "thumbnail"),
                "contentType": record.image.content_type,
                "originalSize": record.image.original_size,
                "optimizedSize": record.image.optimized_size,
                "thumbnailSize": record.image.thumbnail_size,
            }
        return {
            "id": record.id,
            "title": record.title,
            "description": record.description,
            "tags": list(record.tags),
            "category": record.category,
            "featured": record.featured,
            "github": record.github,
            "live": record.live,
            "image": image,
            "createdAt": _isoformat(record.created_at),
            "updatedAt": _isoformat(record.updated_at),
        }

    # Writes

    def _build_image(self, raw_image: bytes) -> ProjectImage:
        try:
            result = self.transcode(raw_image)
        except transcoder.UndecodableImage as e:
            raise UnsupportedFormat(e.message) from e
        except transcoder.TranscodeError as e:
            raise ProcessingFailure(e.message, cause=e.cause or e) from e
        return ProjectImage(
            optimized_data=result.optimized,
            thumbnail_data=result.thumbnail,
            content_type=result.content_type,
            original_size=result.original_size,
            optimized_size=result.optimized_size,
            thumbnail_size=result.thumbnail_size,
        )

    def _invalidate(self, project_id: str) -> None:
        self.cache.delete(make_item_key(project_id))
        self.cache.delete_prefix(LIST_KEY_PREFIX)

    def create(
        self, fields: Mapping[str, Any], raw_image: Optional[bytes] = None
    ) -> dict[str, Any]:
        """
        Validates, transcodes and persists a new project.

        Raises:
            ValidationError: If any field violates the project invariants.
            UnsupportedFormat, ProcessingFailure: If the image cannot be
                transcoded. Nothing is persisted in that case.
        """
        normalized = validation.normalize_project_fields(fields)
        normalized.setdefault("category", validation.DEFAULT_CATEGORY)
        normalized.setdefault("featured", False)
        validation.validate_project(normalized)

        image = self._build_image(raw_image) if raw_image is not None else None
        now = self.clock()
        record = ProjectRecord(
            id=new_id(),
            title=normalized["title"],
            description=normalized["description"],
            tags=normalized["tags"],
            category=normalized["category"],
            featured=normalized["featured"],
            github=normalized.get("github"),
            live=normalized.get("live"),
            image=image,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_project(record)
        self._invalidate(record.id)
        logger.info("Created project %s (%s)", record.id, record.title)
        return self.to_representation(record)

    def update(
        self,
        project_id: str,
        fields: Mapping[str, Any],
        raw_image: Optional[bytes] = None,
        remove_image: bool = False,
    ) -> dict[str, Any]:
        """
        Applies a partial update. Absent fields keep their stored values.

        A new image replaces the whole image composite; `remove_image`
        clears it. Supplying both is a validation error.
        """
        if raw_image is not None and remove_image:
            raise ValidationError.for_field(
                "removeImage", "Cannot upload a new image and remove the image at once"
            )
        current = self.db.get_project(project_id)
        if current is None:
            raise NotFound("Project not found")

        normalized = validation.normalize_project_fields(fields, partial=True)
        merged = {
            "title": current.title,
            "description": current.description,
            "tags": current.tags,
            "category": current.category,
            "featured": current.featured,
            "github": current.github,
            "live": current.live,
        }
        merged.update(normalized)
        validation.validate_project(merged)

        image = current.image
        if raw_image is not None:
            image = self._build_image(raw_image)
        elif remove_image:
            image = None

        record = replace(
            current,
            title=merged["title"],
            description=merged["description"],
            tags=list(merged["tags"]),
            category=merged["category"],
            featured=merged["featured"],
            github=merged["github"],
            live=merged["live"],
            image=image,
            updated_at=max(self.clock(), current.updated_at),
        )
        self.db.replace_project(record)
        self._invalidate(project_id)
        logger.info("Updated project %s", project_id)
        return self.to_representation(record)

    def delete(self, project_id: str) -> dict[str, Any]:
        record = self.db.delete_project(project_id)
        self._invalidate(project_id)
        logger.info("Deleted project %s", project_id)
        return self.to_representation(record)

    # Reads

    def get(self, project_id: str) -> dict[str, Any]:
        key = make_item_key(project_id)
        cached = self.cache.get(key)
        if cached is not None:
            return {"data": cached, "fromCache": True}

        record = self.db.get_project(project_id)
        if record is None:
            raise NotFound("Project not found")
        data = self.to_representation(record)
        self.cache.set(key, data, self.cache_ttl)
        return {"data": data, "fromCache": False}

    def list(
        self,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        featured: Optional[bool] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> dict[str, Any]:
        if page < 1:
            raise ValidationError.for_field("page", "Page must be at least 1")
        if limit < 1:
            raise ValidationError.for_field("limit", "Limit must be at least 1")
        limit = min(limit, MAX_PAGE_SIZE)
        if category is not None:
            category = validation.validate_category(category)
        search = (search or "").strip() or None

        key = make_list_key(
            page=page, limit=limit, featured=featured, category=category, search=search
        )
        cached = self.cache.get(key)
        if cached is not None:
            return {**cached, "fromCache": True}

        records, total = self.db.list_projects(
            featured=featured,
            category=category,
            search=search,
            offset=(page - 1) * limit,
            limit=limit,
        )
        payload = {
            "data": [self.to_representation(r) for r in records],
            "pagination": {
                "total": total,
                "page": page,
                "pages": math.ceil(total / limit),
                "limit": limit,
            },
        }
        self.cache.set(key, payload, self.cache_ttl)
        return {**payload, "fromCache": False}

    def get_image(self, project_id: str, variant: str = "full") -> ImagePayload:
        if variant not in IMAGE_VARIANTS:
            raise NotFound("Image variant not found")
        record = self.db.get_project(project_id)
        if record is None:
            raise NotFound("Project not found")
        if record.image is None:
            raise NotFound("Image not found")
        data = (
            record.image.optimized_data
            if variant == "full"
            else record.image.thumbnail_data
        )
        if not data:
            raise NotFound("Image not found")
        return ImagePayload(data=data, content_type=record.image.content_type)


class ContactService:
    def __init__(self, db: DbClient, *, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock

    @staticmethod
    def to_representation(record: ContactRecord) -> dict[str, Any]:
        return {
            "id": record.id,
            "email": record.email,
            "phone": record.phone,
            "message": record.message,
            "status": record.status,
            "createdAt": _isoformat(record.created_at),
        }

    def create(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        normalized = validation.validate_contact(fields)
        record = ContactRecord(
            id=new_id(),
            email=normalized["email"],
            phone=normalized["phone"],
            message=normalized["message"],
            status="new",
            created_at=self.clock(),
        )
        self.db.insert_contact(record)
        logger.info("Stored contact message %s", record.id)
        return self.to_representation(record)

    def list(
        self, *, status: Optional[str] = None, search: Optional[str] = None
    ) -> dict[str, Any]:
        if status:
            status = validation.validate_contact_status(status)
        records = self.db.list_contacts(status=status or None, search=search)
        return {
            "count": len(records),
            "data": [self.to_representation(r) for r in records],
        }

    def get(self, contact_id: str) -> dict[str, Any]:
        record = self.db.get_contact(contact_id)
        if record is None:
            raise NotFound("Contact message not found")
        return self.to_representation(record)

    def update_status(self, contact_id: str, status: Any) -> dict[str, Any]:
        if status is None:
            raise ValidationError.for_field("status", "Status is required")
        status = validation.validate_contact_status(status)
        return self.to_representation(self.db.update_contact_status(contact_id, status))

    def delete(self, contact_id: str) -> dict[str, Any]:
        return self.to_representation(self.db.delete_contact(contact_id))


class AuthService:
    """Admin accounts and signed session tokens."""

    def __init__(
        self,
        db: DbClient,
        *,
        secret: str,
        expire_seconds: int,
        bcrypt_rounds: int = 12,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.secret = secret
        self.expire_seconds = expire_seconds
        self.bcrypt_rounds = bcrypt_rounds
        self.clock = clock

    def create_admin(self, username: Any, password: Any) -> dict[str, Any]:
        username, password = validation.validate_credentials(
            username, password, check_length=True
        )
        if self.db.get_user_by_username(username) is not None:
            logger.warning("Admin already exists: %s", username)
            raise ValidationError.for_field("username", "Admin already exists")
        password_hash = bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds)
        ).decode("utf-8")
        user = UserRecord(
            id=new_id(),
            username=username,
            password_hash=password_hash,
            is_admin=True,
            created_at=self.clock(),
        )
        self.db.insert_user(user)
        logger.info("Admin created: %s", username)
        return {"id": user.id, "username": user.username}

    def login(self, username: Any, password: Any) -> tuple[str, UserRecord]:
        username, password = validation.validate_credentials(username, password)
        user = self.db.get_user_by_username(username)
        if user is None:
            logger.warning("Login failed, unknown user: %s", username)
            raise AuthError("Invalid credentials")
        encoded = password.encode("utf-8")
        if len(encoded) > validation.PASSWORD_MAX_BYTES or not bcrypt.checkpw(
            encoded, user.password_hash.encode("utf-8")
        ):
            logger.warning("Login failed, password mismatch: %s", username)
            raise AuthError("Invalid credentials")
        return self.issue_token(user.id), user

    def issue_token(self, user_id: str) -> str:
        now = int(self.clock())
        claims = {"id": user_id, "iat": now, "exp": now + self.expire_seconds}
        return jwt.encode(claims, self.secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: Optional[str]) -> str:
        """Returns the user id carried by a valid token."""
        if not token:
            raise AuthError("Authentication required")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            logger.warning("Invalid token: %s", e)
            raise AuthError("Invalid token") from e
        user_id = claims.get("id")
        if not user_id:
            raise AuthError("Invalid token")
        return user_id

    def check(self, token: Optional[str]) -> dict[str, bool]:
        """Session status for the cookie; never raises for a bad token."""
        try:
            user_id = self.verify(token)
        except AuthError:
            return {"isAuthenticated": False, "isAdmin": False}
        user = self.db.get_user(user_id)
        if user is None:
            return {"isAuthenticated": False, "isAdmin": False}
        return {"isAuthenticated": True, "isAdmin": user.is_admin}
