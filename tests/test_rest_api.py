"""End-to-end tests for the REST surface and the push channel."""

from __future__ import annotations

import tempfile
import time
import unittest
from pathlib import Path
from typing import Dict
from unittest import mock

import mongomock
from fastapi.testclient import TestClient

from feedserver.config import Settings
from feedserver.database import Database
from feedserver.service import create_app

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class RestAPITests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.image_dir = Path(self._tempdir.name) / "images"
        self.settings = Settings(
            token_secret="rest-tests-secret",
            image_dir=self.image_dir,
            password_rounds=4,
        )
        self.database = Database(mongomock.MongoClient(), "feed-rest-tests")
        self.app = create_app(settings=self.settings, database=self.database)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _signup_and_login(self, client: TestClient, email: str, name: str, password: str) -> Dict[str, str]:
        signup = client.put("/auth/signup", json={"email": email, "name": name, "password": password})
        self.assertEqual(signup.status_code, 201, signup.text)
        login = client.post("/auth/login", json={"email": email, "password": password})
        self.assertEqual(login.status_code, 200, login.text)
        return {"Authorization": f"Bearer {login.json()['token']}"}

    def _create_post(self, client: TestClient, headers: Dict[str, str], title: str = "Hello World"):
        return client.post(
            "/feed/post",
            data={"title": title, "content": "Body text"},
            files={"image": ("pic.png", PNG_BYTES, "image/png")},
            headers=headers,
        )

    def _wait_for_subscribers(self, count: int) -> None:
        events = self.app.state.events
        deadline = time.monotonic() + 2.0
        while events.subscriber_count < count and time.monotonic() < deadline:
            time.sleep(0.01)
        self.assertEqual(events.subscriber_count, count)

    def test_signup_and_login(self) -> None:
        with TestClient(self.app) as client:
            signup = client.put(
                "/auth/signup",
                json={"email": "a@x.com", "name": "Ann", "password": "secret1"},
            )
            self.assertEqual(signup.status_code, 201, signup.text)
            payload = signup.json()
            self.assertEqual(payload["message"], "User Ann has been added.")

            login = client.post("/auth/login", json={"email": "a@x.com", "password": "secret1"})
            self.assertEqual(login.status_code, 200, login.text)
            self.assertEqual(login.json()["userId"], payload["userId"])
            self.assertTrue(login.json()["token"])

    def test_duplicate_signup_is_conflict(self) -> None:
        with TestClient(self.app) as client:
            self._signup_and_login(client, "a@x.com", "Ann", "secret1")
            again = client.put(
                "/auth/signup",
                json={"email": "a@x.com", "name": "Ann", "password": "secret1"},
            )
            self.assertEqual(again.status_code, 409, again.text)
            self.assertEqual(again.json(), {"message": "User exists already!", "status": 409, "data": []})

    def test_signup_validation_reports_all_fields(self) -> None:
        with TestClient(self.app) as client:
            response = client.put("/auth/signup", json={"email": "nope", "name": "", "password": "123"})
            self.assertEqual(response.status_code, 422, response.text)
            body = response.json()
            self.assertEqual(body["status"], 422)
            self.assertEqual([entry["field"] for entry in body["data"]], ["email", "name", "password"])

    def test_login_errors(self) -> None:
        with TestClient(self.app) as client:
            self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            unknown = client.post("/auth/login", json={"email": "b@x.com", "password": "secret1"})
            self.assertEqual(unknown.status_code, 404, unknown.text)

            wrong = client.post("/auth/login", json={"email": "a@x.com", "password": "secret2"})
            self.assertEqual(wrong.status_code, 401, wrong.text)
            self.assertEqual(wrong.json()["message"], "Wrong password!")

    def test_protected_routes_require_token(self) -> None:
        with TestClient(self.app) as client:
            for response in (
                client.get("/feed/posts"),
                client.get("/auth/status"),
                client.get("/feed/posts", headers={"Authorization": "Bearer not-a-token"}),
                client.get("/feed/posts", headers={"Authorization": "Basic YTpi"}),
            ):
                self.assertEqual(response.status_code, 401, response.text)
                self.assertEqual(response.json(), {"message": "Not authenticated.", "status": 401, "data": []})

    def test_post_lifecycle(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            created = self._create_post(client, headers)
            self.assertEqual(created.status_code, 201, created.text)
            post = created.json()["post"]
            self.assertEqual(post["creator"]["name"], "Ann")
            self.assertTrue(post["imageUrl"].startswith("images/"))
            self.assertTrue(post["imageUrl"].endswith("-pic.png"))
            first_image = self.image_dir / Path(post["imageUrl"]).name
            self.assertTrue(first_image.exists())

            listing = client.get("/feed/posts", params={"page": 1}, headers=headers)
            self.assertEqual(listing.status_code, 200, listing.text)
            self.assertEqual(listing.json()["totalItems"], 1)
            self.assertEqual(listing.json()["posts"][0]["_id"], post["_id"])

            fetched = client.get(f"/feed/post/{post['_id']}", headers=headers)
            self.assertEqual(fetched.status_code, 200, fetched.text)
            self.assertEqual(fetched.json()["post"]["title"], "Hello World")

            kept_image = client.put(
                f"/feed/post/{post['_id']}",
                data={"title": "Edited title", "content": "Edited body", "imageUrl": post["imageUrl"]},
                headers=headers,
            )
            self.assertEqual(kept_image.status_code, 200, kept_image.text)
            self.assertEqual(kept_image.json()["post"]["imageUrl"], post["imageUrl"])
            self.assertTrue(first_image.exists())

            replaced = client.put(
                f"/feed/post/{post['_id']}",
                data={"title": "Edited title", "content": "Edited body"},
                files={"image": ("other.jpg", PNG_BYTES, "image/jpeg")},
                headers=headers,
            )
            self.assertEqual(replaced.status_code, 200, replaced.text)
            new_url = replaced.json()["post"]["imageUrl"]
            self.assertTrue(new_url.endswith("-other.jpg"))
            self.assertFalse(first_image.exists())

            deleted = client.delete(f"/feed/post/{post['_id']}", headers=headers)
            self.assertEqual(deleted.status_code, 200, deleted.text)
            self.assertFalse((self.image_dir / Path(new_url).name).exists())

            missing = client.get(f"/feed/post/{post['_id']}", headers=headers)
            self.assertEqual(missing.status_code, 404, missing.text)

    def test_create_post_validation_collects_all_errors(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            response = client.post(
                "/feed/post",
                data={"title": "", "content": ""},
                files={"image": ("pic.png", PNG_BYTES, "image/png")},
                headers=headers,
            )
            self.assertEqual(response.status_code, 422, response.text)
            fields = [entry["field"] for entry in response.json()["data"]]
            self.assertEqual(fields, ["title", "content"])
            # The upload is discarded when the post is rejected.
            self.assertFalse(self.image_dir.exists() and any(self.image_dir.iterdir()))

    def test_unsupported_image_type_means_no_image(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            response = client.post(
                "/feed/post",
                data={"title": "Hello World", "content": "Body text"},
                files={"image": ("notes.txt", b"plain text", "text/plain")},
                headers=headers,
            )
            self.assertEqual(response.status_code, 422, response.text)
            self.assertEqual(response.json()["data"], [{"field": "imageUrl", "message": "No image provided."}])

    def test_only_creator_can_modify_post(self) -> None:
        with TestClient(self.app) as client:
            ann = self._signup_and_login(client, "a@x.com", "Ann", "secret1")
            bob = self._signup_and_login(client, "b@x.com", "Bob", "secret2")
            post = self._create_post(client, ann).json()["post"]

            update = client.put(
                f"/feed/post/{post['_id']}",
                data={"title": "Bob was here", "content": "Bob was here", "imageUrl": post["imageUrl"]},
                headers=bob,
            )
            self.assertEqual(update.status_code, 403, update.text)
            self.assertEqual(update.json()["message"], "Not authorized!")

            delete = client.delete(f"/feed/post/{post['_id']}", headers=bob)
            self.assertEqual(delete.status_code, 403, delete.text)

            fetched = client.get(f"/feed/post/{post['_id']}", headers=bob).json()["post"]
            self.assertEqual(fetched["title"], "Hello World")
            self.assertEqual(fetched["creator"]["_id"], post["creator"]["_id"])

    def test_pagination(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")
            for index in range(1, 6):
                self.assertEqual(self._create_post(client, headers, title=f"Post {index}").status_code, 201)

            first = client.get("/feed/posts", params={"page": 1}, headers=headers).json()
            self.assertEqual([post["title"] for post in first["posts"]], ["Post 5", "Post 4"])
            self.assertEqual(first["totalItems"], 5)

            last = client.get("/feed/posts", params={"page": 3}, headers=headers).json()
            self.assertEqual([post["title"] for post in last["posts"]], ["Post 1"])

    def test_status_endpoints(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            initial = client.get("/auth/status", headers=headers)
            self.assertEqual(initial.json(), {"status": "I am new!"})

            updated = client.patch("/auth/status", json={"status": "Shipping"}, headers=headers)
            self.assertEqual(updated.status_code, 200, updated.text)
            self.assertEqual(client.get("/auth/status", headers=headers).json(), {"status": "Shipping"})

            blank = client.patch("/auth/status", json={"status": "  "}, headers=headers)
            self.assertEqual(blank.status_code, 422, blank.text)

    def test_post_image_upload(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            unauthenticated = client.put("/post-image", files={"image": ("a.png", PNG_BYTES, "image/png")})
            self.assertEqual(unauthenticated.status_code, 401, unauthenticated.text)

            first = client.put("/post-image", files={"image": ("a.png", PNG_BYTES, "image/png")}, headers=headers)
            self.assertEqual(first.status_code, 201, first.text)
            first_path = first.json()["filePath"]
            self.assertTrue((self.image_dir / Path(first_path).name).exists())

            second = client.put(
                "/post-image",
                data={"oldPath": first_path},
                files={"image": ("b.png", PNG_BYTES, "image/png")},
                headers=headers,
            )
            self.assertEqual(second.status_code, 201, second.text)
            self.assertFalse((self.image_dir / Path(first_path).name).exists())

            nothing = client.put("/post-image", data={"oldPath": second.json()["filePath"]}, headers=headers)
            self.assertEqual(nothing.status_code, 200, nothing.text)
            self.assertEqual(nothing.json()["message"], "No file provided!")
            self.assertTrue((self.image_dir / Path(second.json()["filePath"]).name).exists())

    def test_push_channel_receives_post_events(self) -> None:
        with TestClient(self.app) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            with client.websocket_connect("/ws") as websocket:
                self._wait_for_subscribers(1)
                created = self._create_post(client, headers)
                self.assertEqual(created.status_code, 201, created.text)
                post_id = created.json()["post"]["_id"]

                event = websocket.receive_json()
                self.assertEqual(event["action"], "create")
                self.assertEqual(event["post"]["_id"], post_id)
                self.assertEqual(event["post"]["creator"]["name"], "Ann")

                client.delete(f"/feed/post/{post_id}", headers=headers)
                self.assertEqual(websocket.receive_json(), {"action": "delete", "post": post_id})

    def test_unexpected_errors_use_error_shape(self) -> None:
        with TestClient(self.app, raise_server_exceptions=False) as client:
            headers = self._signup_and_login(client, "a@x.com", "Ann", "secret1")

            with mock.patch.object(self.database, "list_posts", side_effect=RuntimeError("store unavailable")):
                response = client.get("/feed/posts", headers=headers)

            self.assertEqual(response.status_code, 500, response.text)
            self.assertEqual(
                response.json(),
                {"message": "An internal error occurred.", "status": 500, "data": []},
            )

    def test_routing_errors_use_error_shape(self) -> None:
        with TestClient(self.app) as client:
            unknown = client.get("/feed/post/abc/def")
            self.assertEqual(unknown.status_code, 404, unknown.text)
            self.assertEqual(unknown.json(), {"message": "Not Found", "status": 404, "data": []})

            wrong_method = client.delete("/feed/posts")
            self.assertEqual(wrong_method.status_code, 405, wrong_method.text)
            self.assertEqual(wrong_method.json()["status"], 405)
            self.assertEqual(wrong_method.json()["data"], [])

    def test_health(self) -> None:
        with TestClient(self.app) as client:
            self.assertEqual(client.get("/health").json(), {"status": "ok"})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
