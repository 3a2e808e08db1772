"""Feed operations shared by the REST and GraphQL surfaces."""
from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

import anyio

from .credentials import PasswordHasher, TokenService
from .database import Database
from .errors import NotFound, Unauthenticated
from .events import PostEventBroadcaster
from .images import ImageStore, Upload
from .models import CreatorRef, FeedPost, Post, PostPage, User
from .security import AuthContext, ensure_owner
from .validation import validate_post, validate_signup, validate_status

logger = logging.getLogger("feedserver.feed")

T = TypeVar("T")


def post_to_payload(view: FeedPost) -> Dict[str, Any]:
    """JSON-ready representation of a post, as sent to clients and subscribers."""

    post = view.post
    return {
        "_id": post.id,
        "title": post.title,
        "content": post.content,
        "imageUrl": post.image_url,
        "creator": {"_id": view.creator.id, "name": view.creator.name},
        "createdAt": post.created_at.isoformat(),
        "updatedAt": post.updated_at.isoformat(),
    }


async def _blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store, disk or hashing call in a worker thread."""

    return await anyio.to_thread.run_sync(partial(func, *args, **kwargs))


class FeedService:
    """Lookup, check, mutate, notify: one method per feed operation.

    The document store, the image directory and bcrypt are all blocking, so
    every call into them runs in a worker thread and the event loop stays free.
    """

    def __init__(
        self,
        database: Database,
        *,
        hasher: PasswordHasher,
        tokens: TokenService,
        images: ImageStore,
        events: PostEventBroadcaster,
        posts_per_page: int = 2,
    ) -> None:
        self._db = database
        self._hasher = hasher
        self._tokens = tokens
        self._images = images
        self._events = events
        self._posts_per_page = posts_per_page

    @property
    def posts_per_page(self) -> int:
        return self._posts_per_page

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    async def signup(self, email: str, name: str, password: str) -> User:
        validate_signup(email, name, password)
        password_hash = await _blocking(self._hasher.hash, password.strip())
        user = await _blocking(self._db.create_user, email, name, password_hash)
        logger.info("Created user %s", user.id)
        return user

    async def login(self, email: str, password: str) -> Tuple[str, User]:
        record = await _blocking(self._db.get_password_hash, email or "")
        if record is None:
            logger.warning("Login attempt for unknown email %s", email)
            raise NotFound("A user with this email could not be found.")

        user, password_hash = record
        matches = await _blocking(self._hasher.verify, (password or "").strip(), password_hash)
        if not matches:
            logger.warning("Failed login attempt for user %s", user.id)
            raise Unauthenticated("Wrong password!")

        token = self._tokens.issue(user.id, user.email)
        logger.info("User %s signed in", user.id)
        return token, user

    async def get_status(self, auth: AuthContext) -> str:
        user = await _blocking(self._db.get_user, auth.require_user())
        return user.status

    async def update_status(self, auth: AuthContext, status: str) -> User:
        user_id = auth.require_user()
        validate_status(status)
        return await _blocking(self._db.update_user_status, user_id, status.strip())

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------
    async def list_posts(self, auth: AuthContext, page: Optional[int] = 1) -> PostPage:
        auth.require_user()
        posts, total = await _blocking(self._db.list_posts, page or 1, self._posts_per_page)
        creators = await _blocking(self._db.get_users_by_ids, [post.creator_id for post in posts])
        return PostPage(posts=[self._attach_creator(post, creators.get(post.creator_id)) for post in posts], total=total)

    async def get_post(self, auth: AuthContext, post_id: str) -> FeedPost:
        auth.require_user()
        post = await _blocking(self._db.get_post, post_id)
        return await self._resolve(post)

    async def create_post(self, auth: AuthContext, title: str, content: str, image_url: Optional[str]) -> FeedPost:
        user_id = auth.require_user()
        validate_post(title, content, image_url)
        creator = await _blocking(self._db.get_user, user_id)

        post = await _blocking(self._db.create_post, title, content, image_url or "", creator.id)
        try:
            await _blocking(self._db.add_user_post, creator.id, post.id)
        except Exception:
            logger.exception("Linking post %s to user %s failed; removing the post", post.id, creator.id)
            await _blocking(self._db.delete_post, post.id)
            raise

        view = self._attach_creator(post, creator)
        logger.info("User %s created post %s", creator.id, post.id)
        await self._events.emit("create", post_to_payload(view))
        return view

    async def update_post(
        self,
        auth: AuthContext,
        post_id: str,
        title: str,
        content: str,
        image_url: Optional[str],
    ) -> FeedPost:
        auth.require_user()
        existing = await _blocking(self._db.get_post, post_id)
        ensure_owner(existing, auth)
        validate_post(title, content, image_url)

        updated = await _blocking(
            self._db.update_post, existing.id, title=title, content=content, image_url=image_url or ""
        )
        if existing.image_url != updated.image_url:
            await _blocking(self._images.remove, existing.image_url)

        view = await self._resolve(updated)
        logger.info("User %s updated post %s", auth.user_id, updated.id)
        await self._events.emit("update", post_to_payload(view))
        return view

    async def delete_post(self, auth: AuthContext, post_id: str) -> None:
        """Delete a post owned by the caller.

        The owner's reference goes first and the image last, so a retry after a
        failure in any step finds the post still present and completes cleanly.
        """

        auth.require_user()
        post = await _blocking(self._db.get_post, post_id)
        ensure_owner(post, auth)

        await _blocking(self._db.remove_user_post, post.creator_id, post.id)
        await _blocking(self._db.delete_post, post.id)
        await _blocking(self._images.remove, post.image_url)

        logger.info("User %s deleted post %s", auth.user_id, post.id)
        await self._events.emit("delete", post.id)

    async def replace_image(self, auth: AuthContext, upload: Optional[Upload], old_path: Optional[str]) -> Optional[str]:
        """Store a new image for a post, clearing ``old_path`` once it is stored."""

        auth.require_user()
        stored = await self.store_image(upload)
        if stored is None:
            return None
        if old_path and old_path != stored:
            await self.discard_image(old_path)
        return stored

    async def store_image(self, upload: Optional[Upload]) -> Optional[str]:
        return await _blocking(self._images.store, upload)

    async def discard_image(self, path: Optional[str]) -> None:
        await _blocking(self._images.remove, path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _resolve(self, post: Post) -> FeedPost:
        creators = await _blocking(self._db.get_users_by_ids, [post.creator_id])
        return self._attach_creator(post, creators.get(post.creator_id))

    @staticmethod
    def _attach_creator(post: Post, creator: Optional[User]) -> FeedPost:
        name = creator.name if creator is not None else None
        return FeedPost(post=post, creator=CreatorRef(id=post.creator_id, name=name))


__all__ = ["FeedService", "post_to_payload"]
