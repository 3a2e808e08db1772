"""GraphQL schema exposing the feed operations on a single endpoint."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import strawberry
from fastapi import Depends, Request
from graphql import GraphQLError
from strawberry.fastapi import GraphQLRouter
from strawberry.types import ExecutionContext, ExecutionResult, Info

from .errors import FeedError
from .feed import FeedService
from .models import FeedPost, User
from .security import AuthContext

logger = logging.getLogger("feedserver.graphql")


@strawberry.type
class UserType:
    id: strawberry.ID
    email: str
    name: str
    status: str
    post_ids: List[strawberry.ID]


@strawberry.type
class CreatorType:
    id: strawberry.ID
    name: Optional[str]


@strawberry.type
class PostType:
    id: strawberry.ID
    title: str
    content: str
    image_url: str
    creator: CreatorType
    created_at: datetime
    updated_at: datetime


@strawberry.type
class AuthData:
    token: str
    user_id: strawberry.ID


@strawberry.type
class PostData:
    posts: List[PostType]
    total_posts: int


@strawberry.input
class UserInput:
    email: str
    name: str
    password: str


@strawberry.input
class PostInput:
    title: str
    content: str
    image_url: str


def _user_type(user: User) -> UserType:
    return UserType(
        id=strawberry.ID(user.id),
        email=user.email,
        name=user.name,
        status=user.status,
        post_ids=[strawberry.ID(post_id) for post_id in user.post_ids],
    )


def _post_type(view: FeedPost) -> PostType:
    post = view.post
    return PostType(
        id=strawberry.ID(post.id),
        title=post.title,
        content=post.content,
        image_url=post.image_url,
        creator=CreatorType(id=strawberry.ID(view.creator.id), name=view.creator.name),
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


def _feed(info: Info) -> FeedService:
    return info.context["feed"]


def _auth(info: Info) -> AuthContext:
    return info.context["auth"]


@strawberry.type
class Query:
    @strawberry.field
    async def login(self, info: Info, email: str, password: str) -> AuthData:
        token, user = await _feed(info).login(email, password)
        return AuthData(token=token, user_id=strawberry.ID(user.id))

    @strawberry.field
    async def load_posts(self, info: Info, page: Optional[int] = 1) -> PostData:
        result = await _feed(info).list_posts(_auth(info), page)
        return PostData(posts=[_post_type(view) for view in result.posts], total_posts=result.total)

    @strawberry.field
    async def get_post(self, info: Info, id: strawberry.ID) -> PostType:
        return _post_type(await _feed(info).get_post(_auth(info), str(id)))

    @strawberry.field
    async def user_status(self, info: Info) -> str:
        return await _feed(info).get_status(_auth(info))


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def create_user(self, info: Info, user_input: UserInput) -> UserType:
        user = await _feed(info).signup(user_input.email, user_input.name, user_input.password)
        return _user_type(user)

    @strawberry.mutation
    async def create_post(self, info: Info, post_input: PostInput) -> PostType:
        view = await _feed(info).create_post(
            _auth(info), post_input.title, post_input.content, post_input.image_url
        )
        return _post_type(view)

    @strawberry.mutation
    async def update_post(self, info: Info, id: strawberry.ID, post_input: PostInput) -> PostType:
        view = await _feed(info).update_post(
            _auth(info), str(id), post_input.title, post_input.content, post_input.image_url
        )
        return _post_type(view)

    @strawberry.mutation
    async def delete_post(self, info: Info, id: strawberry.ID) -> bool:
        await _feed(info).delete_post(_auth(info), str(id))
        return True

    @strawberry.mutation
    async def update_user_status(self, info: Info, status: str) -> UserType:
        return _user_type(await _feed(info).update_status(_auth(info), status))


def format_error(error: GraphQLError) -> Dict[str, Any]:
    """Shape a GraphQL error as ``{message, status, data}``."""

    original = error.original_error
    if isinstance(original, FeedError):
        payload = original.to_payload()
    elif original is None:
        # Parse and validation errors raised by graphql-core itself.
        payload = {"message": error.message, "status": 400, "data": []}
    else:
        payload = {"message": "An internal error occurred.", "status": 500, "data": []}
    if error.path:
        payload["path"] = list(error.path)
    return payload


class FeedSchema(strawberry.Schema):
    """Schema that keeps expected domain errors out of the error log."""

    def process_errors(self, errors: List[GraphQLError], execution_context: Optional[ExecutionContext] = None) -> None:
        unexpected = [error for error in errors if not isinstance(error.original_error, FeedError)]
        if unexpected:
            super().process_errors(unexpected, execution_context)


class FeedGraphQLRouter(GraphQLRouter):
    async def process_result(self, request: Request, result: ExecutionResult) -> Dict[str, Any]:
        data: Dict[str, Any] = {"data": result.data}
        if result.errors:
            data["errors"] = [format_error(error) for error in result.errors]
        return data


def build_schema() -> FeedSchema:
    return FeedSchema(query=Query, mutation=Mutation)


def create_graphql_router(feed: FeedService, *, current_auth: Callable[..., Any]) -> GraphQLRouter:
    """Return a router serving the schema; mount it under ``/graphql``."""

    async def get_context(auth: AuthContext = Depends(current_auth)) -> Dict[str, Any]:
        return {"feed": feed, "auth": auth}

    return FeedGraphQLRouter(build_schema(), context_getter=get_context)


__all__ = ["FeedSchema", "build_schema", "create_graphql_router", "format_error"]
