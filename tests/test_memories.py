"""
Integration tests for memories and the media gallery.

Uploads go to local storage in a temp directory (no S3 or Drive configured).

Tests cover:
1. Memory creation stores N files in input order
2. Invalid uploads are rejected before anything is written
3. Deleting a memory removes its local files
4. Likes toggle, comments, creator-only edits
5. Media gallery: flattened list, type filter, last-item delete removes the memory
"""

from pathlib import Path
from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from db.models import MediaItem, Memory


def image(name: str, content: bytes = b"jpeg-bytes") -> tuple:
    return ("media", (name, content, "image/jpeg"))


def upload_dir(test_settings) -> Path:
    return Path(test_settings.local_upload_path)


def create_memory(client, headers, family_id, files=None, **fields):
    data = {"title": "Summer picnic", **fields}
    return client.post(
        f"/api/memories/{family_id}",
        data=data,
        files=files or [image("a.jpg")],
        headers=headers,
    )


# =============================================================================
# Create
# =============================================================================


class TestCreateMemory:
    def test_files_stored_in_input_order(self, client: TestClient, family, alice, test_settings):
        files = [image(f"{i}.jpg", f"image-{i}".encode()) for i in range(3)]

        response = create_memory(
            client,
            alice["headers"],
            family["id"],
            files=files,
            description="At the lake",
            tags='["summer", "lake"]',
            date="2024-07-04T12:00:00Z",
        )

        assert response.status_code == 201, response.text
        memory = response.json()["data"]
        assert memory["title"] == "Summer picnic"
        assert memory["tags"] == ["summer", "lake"]
        assert memory["date"].startswith("2024-07-04T12:00:00")
        assert [m["position"] for m in memory["media"]] == [0, 1, 2]

        for i, media in enumerate(memory["media"]):
            assert media["source"] == "local"
            assert media["type"] == "image"
            assert media["url"] == f"http://testserver/uploads/{media['filename']}"
            stored = upload_dir(test_settings) / media["filename"]
            assert stored.read_bytes() == f"image-{i}".encode()

    def test_comma_separated_tags(self, client: TestClient, family, alice):
        response = create_memory(client, alice["headers"], family["id"], tags="a, b,,c")

        assert response.json()["data"]["tags"] == ["a", "b", "c"]

    def test_title_required(self, client: TestClient, family, alice, test_settings):
        response = create_memory(client, alice["headers"], family["id"], title="   ")

        assert response.status_code == 400
        assert response.json()["message"] == "Title is required"
        assert not upload_dir(test_settings).exists() or not any(
            upload_dir(test_settings).iterdir()
        )

    def test_rejects_non_media_files(self, client: TestClient, family, alice, db_session):
        response = create_memory(
            client,
            alice["headers"],
            family["id"],
            files=[image("a.jpg"), ("media", ("notes.pdf", b"%PDF", "application/pdf"))],
        )

        assert response.status_code == 400
        assert db_session.execute(select(func.count()).select_from(Memory)).scalar_one() == 0

    def test_too_many_files(self, client: TestClient, family, alice):
        files = [image(f"{i}.jpg") for i in range(11)]

        response = create_memory(client, alice["headers"], family["id"], files=files)

        assert response.status_code == 400

    def test_non_member_forbidden(self, client: TestClient, family, bob):
        response = create_memory(client, bob["headers"], family["id"])

        assert response.status_code == 403

    def test_invalid_date(self, client: TestClient, family, alice):
        response = create_memory(client, alice["headers"], family["id"], date="yesterday")

        assert response.status_code == 400


# =============================================================================
# Read, update, delete
# =============================================================================


class TestMemoryLifecycle:
    def test_list_newest_first(self, client: TestClient, family, alice):
        create_memory(client, alice["headers"], family["id"], title="Old", date="2020-01-01")
        create_memory(client, alice["headers"], family["id"], title="New", date="2024-01-01")

        response = client.get(f"/api/memories/{family['id']}", headers=alice["headers"])

        assert [m["title"] for m in response.json()["data"]] == ["New", "Old"]

    def test_get_single(self, client: TestClient, family, alice):
        memory = create_memory(client, alice["headers"], family["id"]).json()["data"]

        response = client.get(f"/api/memories/single/{memory['id']}", headers=alice["headers"])

        assert response.status_code == 200
        assert response.json()["data"]["id"] == memory["id"]

    def test_delete_removes_local_files(
        self, client: TestClient, family, alice, test_settings, db_session
    ):
        files = [image("a.jpg"), image("b.jpg")]
        memory = create_memory(client, alice["headers"], family["id"], files=files).json()["data"]
        paths = [upload_dir(test_settings) / m["filename"] for m in memory["media"]]
        assert all(p.exists() for p in paths)

        response = client.delete(f"/api/memories/{memory['id']}", headers=alice["headers"])

        assert response.status_code == 200
        assert not any(p.exists() for p in paths)
        assert db_session.execute(select(func.count()).select_from(MediaItem)).scalar_one() == 0

    def test_only_creator_edits_and_deletes(self, client: TestClient, joined_family, alice, bob):
        memory = create_memory(client, alice["headers"], joined_family["id"]).json()["data"]

        edit = client.put(
            f"/api/memories/{memory['id']}", json={"title": "Mine"}, headers=bob["headers"]
        )
        delete = client.delete(f"/api/memories/{memory['id']}", headers=bob["headers"])

        assert edit.status_code == 403
        assert delete.status_code == 403

    def test_creator_edits(self, client: TestClient, family, alice):
        memory = create_memory(client, alice["headers"], family["id"]).json()["data"]

        response = client.put(
            f"/api/memories/{memory['id']}",
            json={"title": "Lake day", "location": "Lake Tahoe"},
            headers=alice["headers"],
        )

        data = response.json()["data"]
        assert data["title"] == "Lake day"
        assert data["location"] == "Lake Tahoe"
        assert len(data["media"]) == 1

    def test_like_toggles(self, client: TestClient, joined_family, alice, bob):
        memory = create_memory(client, alice["headers"], joined_family["id"]).json()["data"]
        url = f"/api/memories/{memory['id']}/like"

        first = client.post(url, headers=bob["headers"]).json()["data"]
        second = client.post(url, headers=bob["headers"]).json()["data"]

        assert first == {"liked": True, "like_count": 1}
        assert second == {"liked": False, "like_count": 0}

    def test_comment(self, client: TestClient, joined_family, alice, bob):
        memory = create_memory(client, alice["headers"], joined_family["id"]).json()["data"]

        response = client.post(
            f"/api/memories/{memory['id']}/comment",
            json={"text": "  Great day!  "},
            headers=bob["headers"],
        )

        assert response.status_code == 201
        comment = response.json()["data"]
        assert comment["text"] == "Great day!"
        assert comment["user"]["first_name"] == "Bob"


# =============================================================================
# Media gallery
# =============================================================================


class TestMediaGallery:
    def test_upload_creates_dated_memory(self, client: TestClient, family, alice):
        response = client.post(
            f"/api/media/{family['id']}",
            files=[image("a.jpg"), ("media", ("clip.mp4", b"mp4", "video/mp4"))],
            headers=alice["headers"],
        )

        assert response.status_code == 201, response.text
        memory = response.json()["data"]
        assert memory["title"].startswith("Media Upload - ")
        assert [m["type"] for m in memory["media"]] == ["image", "video"]

    def test_event_name_becomes_title(self, client: TestClient, family, alice):
        response = client.post(
            f"/api/media/{family['id']}",
            data={"event_name": "Grandma's 80th"},
            files=[image("a.jpg")],
            headers=alice["headers"],
        )

        assert response.json()["data"]["title"] == "Grandma's 80th"

    def test_files_required(self, client: TestClient, family, alice):
        response = client.post(
            f"/api/media/{family['id']}", data={"event_name": "x"}, headers=alice["headers"]
        )

        assert response.status_code == 400

    def test_list_flattens_and_filters(self, client: TestClient, family, alice):
        client.post(
            f"/api/media/{family['id']}",
            files=[image("a.jpg"), ("media", ("clip.mp4", b"mp4", "video/mp4"))],
            headers=alice["headers"],
        )
        create_memory(client, alice["headers"], family["id"])

        everything = client.get(f"/api/media/{family['id']}", headers=alice["headers"])
        videos = client.get(f"/api/media/{family['id']}?type=video", headers=alice["headers"])

        assert len(everything.json()["data"]) == 3
        assert [m["type"] for m in videos.json()["data"]] == ["video"]
        item = everything.json()["data"][0]
        assert item["uploaded_by"]["first_name"] == "Alice"
        assert item["memory_title"]

    def test_deleting_last_item_deletes_memory(
        self, client: TestClient, family, alice, db_session, test_settings
    ):
        memory = create_memory(client, alice["headers"], family["id"]).json()["data"]
        media = memory["media"][0]

        response = client.delete(f"/api/media/{media['id']}", headers=alice["headers"])

        assert response.status_code == 200
        assert not (upload_dir(test_settings) / media["filename"]).exists()
        remaining = db_session.get(Memory, UUID(memory["id"]))
        assert remaining is None

    def test_deleting_one_of_many_keeps_memory(self, client: TestClient, family, alice):
        memory = create_memory(
            client, alice["headers"], family["id"], files=[image("a.jpg"), image("b.jpg")]
        ).json()["data"]

        client.delete(f"/api/media/{memory['media'][0]['id']}", headers=alice["headers"])

        response = client.get(f"/api/memories/single/{memory['id']}", headers=alice["headers"])
        assert len(response.json()["data"]["media"]) == 1

    def test_only_uploader_deletes_media(self, client: TestClient, joined_family, alice, bob):
        memory = create_memory(client, alice["headers"], joined_family["id"]).json()["data"]

        response = client.delete(
            f"/api/media/{memory['media'][0]['id']}", headers=bob["headers"]
        )

        assert response.status_code == 403
