"""Domain models for users, posts and the views built from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

DEFAULT_STATUS = "I am new!"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the ``users`` collection."""

    id: str
    email: str
    name: str
    status: str
    post_ids: Tuple[str, ...]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Post:
    """A post document. ``creator_id`` is fixed when the post is created."""

    id: str
    title: str
    content: str
    image_url: str
    creator_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class CreatorRef:
    id: str
    name: Optional[str]


@dataclass(frozen=True)
class FeedPost:
    """A post together with its explicitly resolved creator."""

    post: Post
    creator: CreatorRef


@dataclass(frozen=True)
class PostPage:
    posts: List[FeedPost] = field(default_factory=list)
    total: int = 0


__all__ = ["CreatorRef", "DEFAULT_STATUS", "FeedPost", "Post", "PostPage", "User"]
