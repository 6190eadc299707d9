"""
HTTP routes for the portfolio backend API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Query,
    Request,
    Response,
    UploadFile,
)
from starlette.concurrency import run_in_threadpool

from portfolio.config import Settings
from portfolio.dependencies import (
    SESSION_COOKIE,
    get_app_settings,
    get_auth_service,
    get_contact_service,
    get_project_service,
    require_auth,
    require_project_write_auth,
)
from portfolio.errors import ValidationError
from portfolio.schemas import (
    CheckAuthResponse,
    ContactListResponse,
    ContactRequest,
    ContactResponse,
    ContactStatusRequest,
    CreateAdminResponse,
    CredentialsRequest,
    LoginResponse,
    MessageResponse,
    ProjectListResponse,
    ProjectResponse,
    ProjectWriteResponse,
)
from portfolio.services import (
    DEFAULT_PAGE_SIZE,
    AuthService,
    ContactService,
    ProjectService,
)
from portfolio.validation import parse_bool

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_upload(upload: Optional[UploadFile], max_bytes: int) -> Optional[bytes]:
    """
    Reads an optional image upload, enforcing the size and type ceiling.

    Runs before any transcoding so oversized or non-image files are
    rejected without touching the image pipeline.
    """
    if upload is None or not upload.filename:
        return None
    content_type = (upload.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise ValidationError.for_field("image", "Only image files are allowed!")
    data = await upload.read(max_bytes + 1)
    await upload.close()
    if len(data) > max_bytes:
        raise ValidationError.for_field(
            "image", f"Image exceeds the upload limit of {max_bytes} bytes"
        )
    return data


def _project_fields(**fields: Optional[object]) -> dict:
    return {name: value for name, value in fields.items() if value is not None}


# Projects


@router.get("/projects", response_model=ProjectListResponse)
def list_projects(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    featured: Optional[bool] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    projects: ProjectService = Depends(get_project_service),
):
    result = projects.list(
        page=page,
        limit=limit,
        featured=featured,
        category=category or None,
        search=search,
    )
    return {"success": True, **result}


@router.post("/projects", response_model=ProjectWriteResponse, status_code=201)
async def create_project(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[list[str]] = Form(None),
    category: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
    github: Optional[str] = Form(None),
    live: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_app_settings),
    projects: ProjectService = Depends(get_project_service),
    _user: Optional[str] = Depends(require_project_write_auth),
):
    raw_image = await _read_upload(image, settings.max_upload_bytes)
    fields = _project_fields(
        title=title,
        description=description,
        tags=tags,
        category=category,
        featured=featured,
        github=github,
        live=live,
    )
    data = await run_in_threadpool(projects.create, fields, raw_image)
    return {"success": True, "data": data, "message": "Project created successfully"}


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str, projects: ProjectService = Depends(get_project_service)
):
    result = projects.get(project_id)
    return {"success": True, **result}


@router.put("/projects/{project_id}", response_model=ProjectWriteResponse)
async def update_project(
    project_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[list[str]] = Form(None),
    category: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
    github: Optional[str] = Form(None),
    live: Optional[str] = Form(None),
    removeImage: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_app_settings),
    projects: ProjectService = Depends(get_project_service),
    _user: Optional[str] = Depends(require_project_write_auth),
):
    remove_image = False
    if removeImage is not None:
        parsed = parse_bool(removeImage)
        if parsed is None:
            raise ValidationError.for_field("removeImage", "removeImage must be true or false")
        remove_image = parsed
    raw_image = await _read_upload(image, settings.max_upload_bytes)
    fields = _project_fields(
        title=title,
        description=description,
        tags=tags,
        category=category,
        featured=featured,
        github=github,
        live=live,
    )
    data = await run_in_threadpool(
        projects.update, project_id, fields, raw_image, remove_image
    )
    return {"success": True, "data": data, "message": "Project updated successfully"}


@router.delete("/projects/{project_id}", response_model=ProjectWriteResponse)
def delete_project(
    project_id: str,
    projects: ProjectService = Depends(get_project_service),
    _user: Optional[str] = Depends(require_project_write_auth),
):
    data = projects.delete(project_id)
    return {"success": True, "data": data, "message": "Project deleted successfully"}


def _image_response(projects: ProjectService, project_id: str, variant: str) -> Response:
    payload = projects.get_image(project_id, variant)
    return Response(
        content=payload.data,
        media_type=payload.content_type,
        headers={"Cache-Control": payload.cache_control},
    )


@router.get("/projects/{project_id}/image")
def serve_project_image(
    project_id: str, projects: ProjectService = Depends(get_project_service)
):
    return _image_response(projects, project_id, "full")


@router.get("/projects/{project_id}/image/thumbnail")
def serve_project_thumbnail(
    project_id: str, projects: ProjectService = Depends(get_project_service)
):
    return _image_response(projects, project_id, "thumbnail")


# Contact messages


@router.post("/contact", response_model=ContactResponse, status_code=201)
def create_contact(
    payload: ContactRequest,
    contacts: ContactService = Depends(get_contact_service),
):
    data = contacts.create(payload.model_dump())
    return {"success": True, "data": data, "message": "Thank you for your message!"}


@router.get("/contact", response_model=ContactListResponse)
def list_contacts(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    contacts: ContactService = Depends(get_contact_service),
    _user: str = Depends(require_auth),
):
    return {"success": True, **contacts.list(status=status, search=search)}


@router.get("/contact/{contact_id}", response_model=ContactResponse)
def get_contact(
    contact_id: str,
    contacts: ContactService = Depends(get_contact_service),
    _user: str = Depends(require_auth),
):
    return {"success": True, "data": contacts.get(contact_id)}


@router.put("/contact/{contact_id}", response_model=ContactResponse)
def update_contact(
    contact_id: str,
    payload: ContactStatusRequest,
    contacts: ContactService = Depends(get_contact_service),
    _user: str = Depends(require_auth),
):
    data = contacts.update_status(contact_id, payload.status)
    return {"success": True, "data": data, "message": "Contact updated successfully"}


@router.delete("/contact/{contact_id}", response_model=ContactResponse)
def delete_contact(
    contact_id: str,
    contacts: ContactService = Depends(get_contact_service),
    _user: str = Depends(require_auth),
):
    data = contacts.delete(contact_id)
    return {"success": True, "data": data, "message": "Contact deleted successfully"}


# Admin sessions


def _set_session_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.jwt_expire_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


@router.post("/auth/create-admin", response_model=CreateAdminResponse, status_code=201)
def create_admin(
    payload: CredentialsRequest, auth: AuthService = Depends(get_auth_service)
):
    admin = auth.create_admin(payload.username, payload.password)
    return {"message": "Admin created successfully", "admin": admin}


@router.post("/auth/login", response_model=LoginResponse)
def login(
    payload: CredentialsRequest,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    auth: AuthService = Depends(get_auth_service),
):
    token, user = auth.login(payload.username, payload.password)
    _set_session_cookie(response, settings, token)
    logger.info("Login successful for: %s", user.username)
    return {"message": "Login successful", "isAdmin": user.is_admin}


@router.post("/auth/logout", response_model=MessageResponse)
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    response.delete_cookie(
        SESSION_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    return {"message": "Logged out successfully"}


@router.get("/auth/check-auth", response_model=CheckAuthResponse)
def check_auth(request: Request, auth: AuthService = Depends(get_auth_service)):
    return auth.check(request.cookies.get(SESSION_COOKIE))
