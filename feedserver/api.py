"""REST endpoints for accounts, posts and image uploads."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, Response, UploadFile, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import FeedError, Internal, ValidationFailed
from .events import PostEventBroadcaster
from .feed import FeedService, post_to_payload
from .models import FeedPost
from .security import AuthContext

logger = logging.getLogger("feedserver.api")


class SignupRequest(BaseModel):
    email: str = ""
    name: str = ""
    password: str = ""


class SignupResponse(BaseModel):
    message: str
    userId: str


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class LoginResponse(BaseModel):
    token: str
    userId: str


class StatusRequest(BaseModel):
    status: str = ""


class StatusResponse(BaseModel):
    status: str


class StatusUpdateResponse(BaseModel):
    message: str
    status: str


class CreatorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: Optional[str] = None


class PostResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    content: str
    image_url: str = Field(alias="imageUrl")
    creator: CreatorResponse
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class PostListResponse(BaseModel):
    message: str
    posts: List[PostResponse]
    totalItems: int


class PostCreatedResponse(BaseModel):
    message: str
    post: PostResponse
    creator: CreatorResponse


class PostDetailResponse(BaseModel):
    message: str
    post: PostResponse


class MessageResponse(BaseModel):
    message: str


class ImageUploadResponse(BaseModel):
    message: str
    filePath: Optional[str] = None


def post_to_response(view: FeedPost) -> PostResponse:
    return PostResponse.model_validate(post_to_payload(view))


def _request_errors_to_details(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    details: List[Dict[str, str]] = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        details.append({"field": ".".join(location), "message": str(error.get("msg", "Invalid value."))})
    return details


def install_error_handlers(app: FastAPI) -> None:
    """Render every error, expected or not, as ``{message, status, data}``."""

    @app.exception_handler(FeedError)
    async def handle_feed_error(request: Request, exc: FeedError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("Request %s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = ValidationFailed("Validation failed.", details=_request_errors_to_details(list(exc.errors())))
        return JSONResponse(status_code=error.http_status, content=error.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        payload = {"message": str(exc.detail), "status": exc.status_code, "data": []}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        error = Internal()
        return JSONResponse(status_code=error.http_status, content=error.to_payload())


def register_api_routes(
    app: FastAPI,
    feed: FeedService,
    events: PostEventBroadcaster,
    *,
    current_auth: Callable[..., Any],
) -> None:
    """Expose the REST endpoints and the push channel on ``app``."""

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.put("/auth/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
    async def signup(payload: SignupRequest) -> SignupResponse:
        user = await feed.signup(payload.email, payload.name, payload.password)
        return SignupResponse(message=f"User {user.name} has been added.", userId=user.id)

    @app.post("/auth/login", response_model=LoginResponse)
    async def login(payload: LoginRequest) -> LoginResponse:
        token, user = await feed.login(payload.email, payload.password)
        return LoginResponse(token=token, userId=user.id)

    @app.get("/auth/status", response_model=StatusResponse)
    async def read_status(auth: AuthContext = Depends(current_auth)) -> StatusResponse:
        return StatusResponse(status=await feed.get_status(auth))

    @app.patch("/auth/status", response_model=StatusUpdateResponse)
    async def update_status(payload: StatusRequest, auth: AuthContext = Depends(current_auth)) -> StatusUpdateResponse:
        user = await feed.update_status(auth, payload.status)
        return StatusUpdateResponse(message="User status updated.", status=user.status)

    @app.get("/feed/posts", response_model=PostListResponse)
    async def list_posts(
        page: int = Query(default=1),
        auth: AuthContext = Depends(current_auth),
    ) -> PostListResponse:
        result = await feed.list_posts(auth, page)
        return PostListResponse(
            message="Fetched posts successfully.",
            posts=[post_to_response(view) for view in result.posts],
            totalItems=result.total,
        )

    @app.post("/feed/post", response_model=PostCreatedResponse, status_code=status.HTTP_201_CREATED)
    async def create_post(
        title: str = Form(default=""),
        content: str = Form(default=""),
        image: Optional[UploadFile] = File(default=None),
        auth: AuthContext = Depends(current_auth),
    ) -> PostCreatedResponse:
        auth.require_user()
        image_url = await feed.store_image(image)
        try:
            view = await feed.create_post(auth, title, content, image_url)
        except Exception:
            await feed.discard_image(image_url)
            raise

        response = post_to_response(view)
        return PostCreatedResponse(message="Post created successfully!", post=response, creator=response.creator)

    @app.get("/feed/post/{post_id}", response_model=PostDetailResponse)
    async def read_post(post_id: str, auth: AuthContext = Depends(current_auth)) -> PostDetailResponse:
        view = await feed.get_post(auth, post_id)
        return PostDetailResponse(message="Post fetched.", post=post_to_response(view))

    @app.put("/feed/post/{post_id}", response_model=PostDetailResponse)
    async def update_post(
        post_id: str,
        title: str = Form(default=""),
        content: str = Form(default=""),
        image_url: str = Form(default="", alias="imageUrl"),
        image: Optional[UploadFile] = File(default=None),
        auth: AuthContext = Depends(current_auth),
    ) -> PostDetailResponse:
        auth.require_user()
        uploaded = await feed.store_image(image)
        try:
            view = await feed.update_post(auth, post_id, title, content, uploaded or image_url)
        except Exception:
            await feed.discard_image(uploaded)
            raise
        return PostDetailResponse(message="Post updated!", post=post_to_response(view))

    @app.delete("/feed/post/{post_id}", response_model=MessageResponse)
    async def delete_post(post_id: str, auth: AuthContext = Depends(current_auth)) -> MessageResponse:
        await feed.delete_post(auth, post_id)
        return MessageResponse(message="Deleted post.")

    @app.put("/post-image", response_model=ImageUploadResponse)
    async def upload_post_image(
        response: Response,
        image: Optional[UploadFile] = File(default=None),
        old_path: Optional[str] = Form(default=None, alias="oldPath"),
        old_path_lower: Optional[str] = Form(default=None, alias="oldpath"),
        auth: AuthContext = Depends(current_auth),
    ) -> ImageUploadResponse:
        stored = await feed.replace_image(auth, image, old_path or old_path_lower)
        if stored is None:
            return ImageUploadResponse(message="No file provided!")
        response.status_code = status.HTTP_201_CREATED
        return ImageUploadResponse(message="File stored.", filePath=stored)

    @app.websocket("/ws")
    async def push_channel(websocket: WebSocket) -> None:
        await events.serve(websocket)


__all__ = [
    "PostResponse",
    "install_error_handlers",
    "post_to_response",
    "register_api_routes",
]
