"""
Integration tests for albums and family events.

Tests cover:
1. Album creation requires membership of the target family
2. Photos append after existing positions; first upload sets the cover
3. Albums accept images only
4. Only family admins delete albums; local files are removed
5. Events: ordering by start date, end-before-start rejected, delete permissions
"""

from pathlib import Path

from fastapi.testclient import TestClient


def photo(name: str, content: bytes = b"jpeg") -> tuple:
    return ("photos", (name, content, "image/jpeg"))


def create_album(client, headers, family_id, name="Holidays") -> dict:
    response = client.post(
        "/api/albums", json={"name": name, "family_id": family_id}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


# =============================================================================
# Albums
# =============================================================================


class TestAlbums:
    def test_create_and_list(self, client: TestClient, family, alice):
        album = create_album(client, alice["headers"], family["id"])

        response = client.get(f"/api/albums/family/{family['id']}", headers=alice["headers"])

        assert album["name"] == "Holidays"
        assert album["photos"] == []
        assert [a["id"] for a in response.json()["data"]] == [album["id"]]

    def test_create_requires_membership(self, client: TestClient, family, bob):
        response = client.post(
            "/api/albums", json={"name": "Sneaky", "family_id": family["id"]}, headers=bob["headers"]
        )

        assert response.status_code == 403

    def test_blank_name_rejected(self, client: TestClient, family, alice):
        response = client.post(
            "/api/albums", json={"name": "  ", "family_id": family["id"]}, headers=alice["headers"]
        )

        assert response.status_code == 400

    def test_photos_append_in_order(self, client: TestClient, family, alice):
        album = create_album(client, alice["headers"], family["id"])
        url = f"/api/albums/{album['id']}/photos"

        client.post(url, files=[photo("a.jpg"), photo("b.jpg")], headers=alice["headers"])
        response = client.post(url, files=[photo("c.jpg")], headers=alice["headers"])

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert [p["position"] for p in data["photos"]] == [0, 1, 2]
        assert data["cover_photo"] == data["photos"][0]["url"]

    def test_cover_is_stored_as_photo_reference(self, client: TestClient, family, alice):
        album = create_album(client, alice["headers"], family["id"])
        data = client.post(
            f"/api/albums/{album['id']}/photos",
            files=[photo("a.jpg"), photo("b.jpg")],
            headers=alice["headers"],
        ).json()["data"]
        second = data["photos"][1]

        chosen = client.put(
            f"/api/albums/{album['id']}",
            json={"cover_photo_id": second["id"]},
            headers=alice["headers"],
        ).json()["data"]
        custom = client.put(
            f"/api/albums/{album['id']}",
            json={"cover_photo": "https://example.com/cover.jpg"},
            headers=alice["headers"],
        ).json()["data"]

        assert data["cover_photo_id"] == data["photos"][0]["id"]
        assert chosen["cover_photo_id"] == second["id"]
        assert chosen["cover_photo"] == second["url"]
        assert custom["cover_photo_id"] is None
        assert custom["cover_photo"] == "https://example.com/cover.jpg"

    def test_cover_must_belong_to_album(self, client: TestClient, family, alice):
        first = create_album(client, alice["headers"], family["id"])
        other = create_album(client, alice["headers"], family["id"], name="Other")
        foreign = client.post(
            f"/api/albums/{other['id']}/photos", files=[photo("a.jpg")], headers=alice["headers"]
        ).json()["data"]["photos"][0]

        response = client.put(
            f"/api/albums/{first['id']}",
            json={"cover_photo_id": foreign["id"]},
            headers=alice["headers"],
        )

        assert response.status_code == 400

    def test_videos_rejected(self, client: TestClient, family, alice):
        album = create_album(client, alice["headers"], family["id"])

        response = client.post(
            f"/api/albums/{album['id']}/photos",
            files=[("photos", ("clip.mp4", b"mp4", "video/mp4"))],
            headers=alice["headers"],
        )

        assert response.status_code == 400

    def test_rename(self, client: TestClient, family, alice):
        album = create_album(client, alice["headers"], family["id"])

        response = client.put(
            f"/api/albums/{album['id']}", json={"name": "Summer"}, headers=alice["headers"]
        )

        assert response.json()["data"]["name"] == "Summer"

    def test_only_admin_deletes(
        self, client: TestClient, joined_family, alice, bob, test_settings
    ):
        album = create_album(client, bob["headers"], joined_family["id"])
        uploaded = client.post(
            f"/api/albums/{album['id']}/photos", files=[photo("a.jpg")], headers=bob["headers"]
        ).json()["data"]
        stored = Path(test_settings.local_upload_path) / uploaded["photos"][0]["filename"]
        assert stored.exists()

        denied = client.delete(f"/api/albums/{album['id']}", headers=bob["headers"])
        deleted = client.delete(f"/api/albums/{album['id']}", headers=alice["headers"])

        assert denied.status_code == 403
        assert deleted.status_code == 200
        assert not stored.exists()
        missing = client.get(f"/api/albums/{album['id']}", headers=alice["headers"])
        assert missing.status_code == 404


# =============================================================================
# Events
# =============================================================================


class TestEvents:
    def test_listed_by_start_date(self, client: TestClient, family, alice):
        url = f"/api/events/{family['id']}"
        client.post(url, json={"title": "Reunion", "start_date": "2025-08-01T10:00:00"}, headers=alice["headers"])
        client.post(
            url,
            json={"title": "Birthday", "event_type": "Birthday", "start_date": "2025-03-01T10:00:00"},
            headers=alice["headers"],
        )

        response = client.get(url, headers=alice["headers"])

        events = response.json()["data"]
        assert [e["title"] for e in events] == ["Birthday", "Reunion"]
        assert events[0]["event_type"] == "Birthday"
        assert events[1]["event_type"] == "Other"

    def test_end_before_start_rejected(self, client: TestClient, family, alice):
        response = client.post(
            f"/api/events/{family['id']}",
            json={
                "title": "Trip",
                "start_date": "2025-08-02T10:00:00",
                "end_date": "2025-08-01T10:00:00",
            },
            headers=alice["headers"],
        )

        assert response.status_code == 400

    def test_timezone_aware_dates_stored_as_utc(self, client: TestClient, family, alice):
        response = client.post(
            f"/api/events/{family['id']}",
            json={"title": "Call", "start_date": "2025-08-01T12:00:00+02:00"},
            headers=alice["headers"],
        )

        assert response.json()["data"]["start_date"].startswith("2025-08-01T10:00:00")

    def test_delete_permissions(self, client: TestClient, joined_family, alice, bob):
        created = client.post(
            f"/api/events/{joined_family['id']}",
            json={"title": "Dinner", "start_date": "2025-08-01T18:00:00"},
            headers=alice["headers"],
        ).json()["data"]

        denied = client.delete(f"/api/events/{created['id']}", headers=bob["headers"])
        deleted = client.delete(f"/api/events/{created['id']}", headers=alice["headers"])

        assert denied.status_code == 403
        assert deleted.status_code == 200

    def test_admin_deletes_member_event(self, client: TestClient, joined_family, alice, bob):
        created = client.post(
            f"/api/events/{joined_family['id']}",
            json={"title": "Game night", "start_date": "2025-08-01T18:00:00"},
            headers=bob["headers"],
        ).json()["data"]

        response = client.delete(f"/api/events/{created['id']}", headers=alice["headers"])

        assert response.status_code == 200
