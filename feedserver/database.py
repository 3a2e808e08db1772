"""MongoDB-backed persistence for users and posts."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .errors import Conflict, NotFound
from .models import DEFAULT_STATUS, Post, User

Clock = Callable[[], datetime]


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # BSON dates come back naive unless the client was created with tz_aware=True.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _object_id(value: str) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class Database:
    """Thin wrapper over the ``users`` and ``posts`` collections."""

    def __init__(self, client: Any, name: str = "feed", *, clock: Optional[Clock] = None) -> None:
        self._client = client
        self._db = client[name]
        self._users = self._db["users"]
        self._posts = self._db["posts"]
        self._clock = clock or _current_timestamp

    @classmethod
    def from_uri(cls, uri: str, name: str = "feed") -> "Database":
        return cls(MongoClient(uri, tz_aware=True), name)

    def initialize(self) -> None:
        """Create the required indexes if they do not already exist."""

        self._users.create_index([("email", ASCENDING)], unique=True, name="users_email_unique")
        self._posts.create_index([("created_at", DESCENDING)], name="posts_created_at")
        self._posts.create_index([("creator", ASCENDING)], name="posts_creator")

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, email: str, name: str, password_hash: str) -> User:
        """Insert a new user; raises :class:`Conflict` when the email is taken."""

        normalized_email = _normalize_email(email)
        if self._users.find_one({"email": normalized_email}, {"_id": 1}) is not None:
            raise Conflict("User exists already!")

        now = self._clock()
        document: Dict[str, Any] = {
            "email": normalized_email,
            "password": password_hash,
            "name": name.strip(),
            "status": DEFAULT_STATUS,
            "posts": [],
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = self._users.insert_one(document)
        except DuplicateKeyError as exc:
            raise Conflict("User exists already!") from exc

        document["_id"] = result.inserted_id
        return self._doc_to_user(document)

    def get_user(self, user_id: str) -> User:
        oid = _object_id(user_id)
        document = self._users.find_one({"_id": oid}) if oid is not None else None
        if document is None:
            raise NotFound("User not found.")
        return self._doc_to_user(document)

    def get_user_by_email(self, email: str) -> Optional[User]:
        document = self._users.find_one({"email": _normalize_email(email)})
        if document is None:
            return None
        return self._doc_to_user(document)

    def get_password_hash(self, email: str) -> Optional[Tuple[User, str]]:
        document = self._users.find_one({"email": _normalize_email(email)})
        if document is None:
            return None
        return self._doc_to_user(document), str(document.get("password") or "")

    def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, User]:
        oids = [oid for oid in (_object_id(value) for value in set(user_ids)) if oid is not None]
        if not oids:
            return {}
        cursor = self._users.find({"_id": {"$in": oids}})
        return {str(document["_id"]): self._doc_to_user(document) for document in cursor}

    def update_user_status(self, user_id: str, status: str) -> User:
        oid = _object_id(user_id)
        document = None
        if oid is not None:
            document = self._users.find_one_and_update(
                {"_id": oid},
                {"$set": {"status": status, "updated_at": self._clock()}},
                return_document=ReturnDocument.AFTER,
            )
        if document is None:
            raise NotFound("User not found.")
        return self._doc_to_user(document)

    def add_user_post(self, user_id: str, post_id: str) -> None:
        oid = _object_id(user_id)
        post_oid = _object_id(post_id)
        if oid is None or post_oid is None:
            raise NotFound("User not found.")
        result = self._users.update_one(
            {"_id": oid},
            {"$push": {"posts": post_oid}, "$set": {"updated_at": self._clock()}},
        )
        if result.matched_count == 0:
            raise NotFound("User not found.")

    def remove_user_post(self, user_id: str, post_id: str) -> bool:
        """Drop ``post_id`` from the user's list; returns whether a reference was removed.

        Removing a reference that is already gone is not an error.
        """

        oid = _object_id(user_id)
        post_oid = _object_id(post_id)
        if oid is None or post_oid is None:
            return False
        result = self._users.update_one(
            {"_id": oid, "posts": post_oid},
            {"$pull": {"posts": post_oid}, "$set": {"updated_at": self._clock()}},
        )
        return result.modified_count > 0

    # ------------------------------------------------------------------
    # Post management
    # ------------------------------------------------------------------
    def create_post(self, title: str, content: str, image_url: str, creator_id: str) -> Post:
        creator_oid = _object_id(creator_id)
        if creator_oid is None:
            raise NotFound("User not found.")

        now = self._clock()
        document: Dict[str, Any] = {
            "title": title.strip(),
            "content": content.strip(),
            "image_url": image_url,
            "creator": creator_oid,
            "created_at": now,
            "updated_at": now,
        }
        result = self._posts.insert_one(document)
        document["_id"] = result.inserted_id
        return self._doc_to_post(document)

    def get_post(self, post_id: str) -> Post:
        oid = _object_id(post_id)
        document = self._posts.find_one({"_id": oid}) if oid is not None else None
        if document is None:
            raise NotFound("Could not find post.")
        return self._doc_to_post(document)

    def list_posts(self, page: int = 1, per_page: int = 2) -> Tuple[List[Post], int]:
        """Return one page of posts, newest first, together with the total count."""

        if per_page <= 0:
            raise ValueError("per_page must be positive")
        page = max(int(page or 1), 1)

        total = self._posts.count_documents({})
        cursor = (
            self._posts.find({})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip((page - 1) * per_page)
            .limit(per_page)
        )
        return [self._doc_to_post(document) for document in cursor], total

    def update_post(self, post_id: str, *, title: str, content: str, image_url: str) -> Post:
        oid = _object_id(post_id)
        document = None
        if oid is not None:
            # creator is never part of the update document.
            document = self._posts.find_one_and_update(
                {"_id": oid},
                {
                    "$set": {
                        "title": title.strip(),
                        "content": content.strip(),
                        "image_url": image_url,
                        "updated_at": self._clock(),
                    }
                },
                return_document=ReturnDocument.AFTER,
            )
        if document is None:
            raise NotFound("Could not find post.")
        return self._doc_to_post(document)

    def delete_post(self, post_id: str) -> bool:
        oid = _object_id(post_id)
        if oid is None:
            return False
        result = self._posts.delete_one({"_id": oid})
        return result.deleted_count > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _doc_to_user(self, document: Mapping[str, Any]) -> User:
        return User(
            id=str(document["_id"]),
            email=str(document["email"]),
            name=str(document.get("name") or ""),
            status=str(document.get("status") or DEFAULT_STATUS),
            post_ids=tuple(str(value) for value in document.get("posts") or ()),
            created_at=_as_utc(document["created_at"]),
            updated_at=_as_utc(document["updated_at"]),
        )

    def _doc_to_post(self, document: Mapping[str, Any]) -> Post:
        return Post(
            id=str(document["_id"]),
            title=str(document["title"]),
            content=str(document["content"]),
            image_url=str(document["image_url"]),
            creator_id=str(document["creator"]),
            created_at=_as_utc(document["created_at"]),
            updated_at=_as_utc(document["updated_at"]),
        )


__all__ = ["Database"]
