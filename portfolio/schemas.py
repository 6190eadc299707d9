"""
Pydantic schemas for the portfolio FastAPI backend.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class ProjectImage(BaseModel):
    url: str
    thumbnailUrl: str
    contentType: str
    originalSize: int
    optimizedSize: int
    thumbnailSize: int


class Project(BaseModel):
    id: str
    title: str
    description: str
    tags: list[str]
    category: str
    featured: bool
    github: Optional[str] = None
    live: Optional[str] = None
    image: Optional[ProjectImage] = None
    createdAt: str
    updatedAt: str


class Pagination(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class ProjectListResponse(BaseModel):
    success: bool = True
    data: list[Project]
    pagination: Pagination
    fromCache: bool


class ProjectResponse(BaseModel):
    success: bool = True
    data: Project
    fromCache: bool


class ProjectWriteResponse(BaseModel):
    success: bool = True
    data: Project
    message: str


class ContactRequest(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None


class ContactStatusRequest(BaseModel):
    status: Optional[str] = None


class ContactMessage(BaseModel):
    id: str
    email: str
    phone: Optional[str] = None
    message: str
    status: Literal["new", "reviewed", "archived"]
    createdAt: str


class ContactResponse(BaseModel):
    success: bool = True
    data: ContactMessage
    message: Optional[str] = None


class ContactListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[ContactMessage]


class CredentialsRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class AdminSummary(BaseModel):
    id: str
    username: str


class CreateAdminResponse(BaseModel):
    message: str
    admin: AdminSummary


class LoginResponse(BaseModel):
    message: str
    isAdmin: bool


class MessageResponse(BaseModel):
    message: str


class CheckAuthResponse(BaseModel):
    isAuthenticated: bool
    isAdmin: bool = False


class HealthResponse(BaseModel):
    status: str
    database: str
    cache: str
    environment: str
