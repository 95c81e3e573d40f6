"""Issue endpoints: create, browse, edit, delete and the map feed."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update

from conftest import issue_payload, make_issue, make_user
from swachh.db.models import Issue, Vote


async def _create(client: AsyncClient, headers: dict, **overrides) -> dict:
    response = await client.post("/api/v1/issues", json=issue_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _set_status(db, issue_id: int, status: str) -> None:
    await db.execute(update(Issue).where(Issue.id == issue_id).values(status=status))
    await db.commit()


class TestCreateIssue:
    async def test_create(self, client: AsyncClient, alice_headers):
        response = await client.post(
            "/api/v1/issues",
            json=issue_payload(latitude=12.97, longitude=77.59, image_url="https://img.example/p.jpg"),
            headers=alice_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Pothole on MG Road"
        assert data["status"] == "Pending"
        assert data["created_by"]["name"] == "Alice"
        assert data["latitude"] == 12.97
        assert data["longitude"] == 77.59
        assert data["votes"] == 0
        assert data["user_has_voted"] is False
        assert response.headers["x-issuelimit-limit"] == "2"
        assert response.headers["x-issuelimit-remaining"] == "1"

    async def test_create_awards_points(self, client: AsyncClient, alice_headers):
        await _create(client, alice_headers)
        response = await client.get("/api/v1/users/me/score", headers=alice_headers)
        assert response.json() == {"points": 10, "badges": ["First Issue"]}

    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/issues", json=issue_payload())
        assert response.status_code == 401

    async def test_invalid_token(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/issues", json=issue_payload(), headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "overrides",
        [
            {"category": "Parks"},
            {"title": ""},
            {"title": "x" * 101},
            {"latitude": 12.9},
            {"latitude": 91.0, "longitude": 10.0},
            {"latitude": 10.0, "longitude": -181.0},
        ],
    )
    async def test_validation(self, client: AsyncClient, alice_headers, overrides):
        response = await client.post("/api/v1/issues", json=issue_payload(**overrides), headers=alice_headers)
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"


class TestIssueQuota:
    async def test_third_issue_blocked(self, client: AsyncClient, alice_headers):
        await _create(client, alice_headers)
        second = await client.post("/api/v1/issues", json=issue_payload(), headers=alice_headers)
        assert second.headers["x-issuelimit-remaining"] == "0"

        response = await client.post("/api/v1/issues", json=issue_payload(), headers=alice_headers)
        assert response.status_code == 429
        assert response.headers["retry-after"] == str(24 * 3600)
        assert "limit" in response.json()["detail"].lower()

    async def test_quota_is_per_user(self, client: AsyncClient, alice_headers, bob_headers):
        await _create(client, alice_headers)
        await _create(client, alice_headers)
        await _create(client, bob_headers)

    async def test_window_expiry(self, client: AsyncClient, alice_headers, counter_store):
        await _create(client, alice_headers)
        await _create(client, alice_headers)
        counter_store.advance(24 * 3600)
        await _create(client, alice_headers)

    async def test_delete_frees_a_slot(self, client: AsyncClient, alice_headers):
        first = await _create(client, alice_headers)
        await _create(client, alice_headers)

        response = await client.delete(f"/api/v1/issues/{first['id']}", headers=alice_headers)
        assert response.status_code == 200

        await _create(client, alice_headers)
        blocked = await client.post("/api/v1/issues", json=issue_payload(), headers=alice_headers)
        assert blocked.status_code == 429

    async def test_counter_store_down(self, client: AsyncClient, alice_headers, counter_store, db_session):
        counter_store.down = True
        response = await client.post("/api/v1/issues", json=issue_payload(), headers=alice_headers)
        assert response.status_code == 503

        total = await db_session.execute(select(func.count()).select_from(Issue))
        assert total.scalar_one() == 0


class TestListIssues:
    @pytest.fixture
    async def seeded(self, db_session):
        asha = await make_user(db_session, "asha")
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        rows = [
            ("Broken streetlight", "Dark stretch near the school", "Electricity", "Pending"),
            ("Water leak", "Pipe burst, 100% of the lane flooded", "Water", "In Progress"),
            ("Garbage pile", "Not cleared for a week", "Sanitation", "Resolved"),
            ("Pothole", "Large pothole on the main street", "Road", "Pending"),
        ]
        issues = []
        for i, (title, description, category, status) in enumerate(rows):
            issues.append(
                await make_issue(
                    db_session,
                    asha,
                    title=title,
                    description=description,
                    category=category,
                    status=status,
                    created_at=base + timedelta(days=i),
                )
            )
        return issues

    async def test_newest_first(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues")
        assert response.status_code == 200
        data = response.json()
        assert data["total_issues"] == 4
        assert data["total_pages"] == 1
        assert data["current_page"] == 1
        assert [i["title"] for i in data["issues"]] == ["Pothole", "Garbage pile", "Water leak", "Broken streetlight"]

    async def test_oldest_first(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"sort": "oldest"})
        assert response.json()["issues"][0]["title"] == "Broken streetlight"

    async def test_invalid_sort(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"sort": "popular"})
        assert response.status_code == 422

    async def test_filter_category(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"category": "Water"})
        data = response.json()
        assert data["total_issues"] == 1
        assert data["issues"][0]["title"] == "Water leak"

    async def test_filter_status_all(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"status": "all", "category": "all"})
        assert response.json()["total_issues"] == 4

    async def test_filter_status(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"status": "Pending"})
        assert {i["title"] for i in response.json()["issues"]} == {"Broken streetlight", "Pothole"}

    async def test_search_is_case_insensitive(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"search": "STREET"})
        assert {i["title"] for i in response.json()["issues"]} == {"Broken streetlight", "Pothole"}

    async def test_search_treats_wildcards_literally(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"search": "100%"})
        assert [i["title"] for i in response.json()["issues"]] == ["Water leak"]

        response = await client.get("/api/v1/issues", params={"search": "%"})
        assert response.json()["total_issues"] == 1

    async def test_pagination(self, client: AsyncClient, seeded):
        response = await client.get("/api/v1/issues", params={"limit": 3, "page": 2})
        data = response.json()
        assert data["total_issues"] == 4
        assert data["total_pages"] == 2
        assert data["current_page"] == 2
        assert [i["title"] for i in data["issues"]] == ["Broken streetlight"]

    async def test_vote_counts_and_viewer_flag(self, client: AsyncClient, db_session, seeded, bob_headers):
        pothole = seeded[3]
        vote = await client.post(f"/api/v1/issues/{pothole.id}/vote", headers=bob_headers)
        assert vote.status_code == 200

        anonymous = (await client.get("/api/v1/issues")).json()["issues"][0]
        assert anonymous["votes"] == 1
        assert anonymous["user_has_voted"] is False

        as_bob = (await client.get("/api/v1/issues", headers=bob_headers)).json()["issues"][0]
        assert as_bob["votes"] == 1
        assert as_bob["user_has_voted"] is True


class TestGetIssue:
    async def test_detail(self, client: AsyncClient, alice_headers, bob_headers):
        created = await _create(client, alice_headers)
        await client.post(f"/api/v1/issues/{created['id']}/vote", headers=bob_headers)

        response = await client.get(f"/api/v1/issues/{created['id']}", headers=bob_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created["id"]
        assert data["votes"] == 1
        assert data["user_has_voted"] is True
        assert data["created_by"] == created["created_by"]

    async def test_not_found(self, client: AsyncClient):
        response = await client.get("/api/v1/issues/9999")
        assert response.status_code == 404
        assert response.json() == {"detail": "Issue not found"}

    async def test_mine(self, client: AsyncClient, alice_headers, bob_headers):
        await _create(client, alice_headers, title="First")
        await _create(client, alice_headers, title="Second")
        await _create(client, bob_headers, title="Bob's")

        response = await client.get("/api/v1/issues/mine", headers=alice_headers)
        assert response.status_code == 200
        assert [i["title"] for i in response.json()] == ["Second", "First"]

    async def test_mine_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/v1/issues/mine")
        assert response.status_code == 401


class TestUpdateIssue:
    async def test_partial_update(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers)
        response = await client.patch(
            f"/api/v1/issues/{created['id']}",
            json={"title": "Pothole fixed badly", "category": "Other"},
            headers=alice_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Pothole fixed badly"
        assert data["category"] == "Other"
        assert data["description"] == created["description"]
        assert data["location"] == created["location"]

    async def test_null_keeps_value(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers)
        response = await client.patch(
            f"/api/v1/issues/{created['id']}", json={"title": None}, headers=alice_headers
        )
        assert response.status_code == 200
        assert response.json()["title"] == created["title"]

    async def test_coordinates_must_pair(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers)
        response = await client.patch(
            f"/api/v1/issues/{created['id']}", json={"latitude": 10.0}, headers=alice_headers
        )
        assert response.status_code == 422

    async def test_null_clears_image(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers, image_url="https://img.example.com/pothole.jpg")
        response = await client.patch(
            f"/api/v1/issues/{created['id']}", json={"image_url": None}, headers=alice_headers
        )
        assert response.status_code == 200
        assert response.json()["image_url"] is None
        assert response.json()["title"] == created["title"]

    async def test_null_clears_coordinates(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers, latitude=12.97, longitude=77.59)
        response = await client.patch(
            f"/api/v1/issues/{created['id']}",
            json={"latitude": None, "longitude": None},
            headers=alice_headers,
        )
        assert response.status_code == 200
        assert response.json()["latitude"] is None
        assert response.json()["longitude"] is None

    async def test_clearing_one_coordinate_rejected(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers, latitude=12.97, longitude=77.59)
        response = await client.patch(
            f"/api/v1/issues/{created['id']}", json={"latitude": None}, headers=alice_headers
        )
        assert response.status_code == 422

    async def test_only_creator(self, client: AsyncClient, alice_headers, bob_headers):
        created = await _create(client, alice_headers)
        response = await client.patch(
            f"/api/v1/issues/{created['id']}", json={"title": "Mine now"}, headers=bob_headers
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Not authorized to update this issue"

    async def test_only_pending(self, client: AsyncClient, db_session, alice_headers):
        created = await _create(client, alice_headers)
        await _set_status(db_session, created["id"], "In Progress")

        response = await client.patch(
            f"/api/v1/issues/{created['id']}", json={"title": "Too late"}, headers=alice_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Only pending issues can be updated"

    async def test_missing(self, client: AsyncClient, alice_headers):
        response = await client.patch("/api/v1/issues/4242", json={"title": "x"}, headers=alice_headers)
        assert response.status_code == 404


class TestDeleteIssue:
    async def test_delete(self, client: AsyncClient, alice_headers):
        created = await _create(client, alice_headers)
        response = await client.delete(f"/api/v1/issues/{created['id']}", headers=alice_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Issue deleted successfully"}

        assert (await client.get(f"/api/v1/issues/{created['id']}")).status_code == 404

    async def test_delete_removes_votes_and_rescores(
        self, client: AsyncClient, db_session, alice_headers, bob_headers
    ):
        created = await _create(client, alice_headers)
        await client.post(f"/api/v1/issues/{created['id']}/vote", headers=bob_headers)
        assert (await client.get("/api/v1/users/me/score", headers=bob_headers)).json()["points"] == 5

        await client.delete(f"/api/v1/issues/{created['id']}", headers=alice_headers)

        votes = await db_session.execute(select(func.count()).select_from(Vote))
        assert votes.scalar_one() == 0
        assert (await client.get("/api/v1/users/me/score", headers=bob_headers)).json() == {
            "points": 0,
            "badges": [],
        }
        assert (await client.get("/api/v1/users/me/score", headers=alice_headers)).json()["points"] == 0

    async def test_only_creator(self, client: AsyncClient, alice_headers, bob_headers):
        created = await _create(client, alice_headers)
        response = await client.delete(f"/api/v1/issues/{created['id']}", headers=bob_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Not authorized to delete this issue"

    async def test_only_pending(self, client: AsyncClient, db_session, alice_headers):
        created = await _create(client, alice_headers)
        await _set_status(db_session, created["id"], "Resolved")

        response = await client.delete(f"/api/v1/issues/{created['id']}", headers=alice_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Only pending issues can be deleted"

    async def test_release_failure_does_not_fail_delete(self, client: AsyncClient, alice_headers, counter_store):
        created = await _create(client, alice_headers)
        counter_store.down = True
        response = await client.delete(f"/api/v1/issues/{created['id']}", headers=alice_headers)
        assert response.status_code == 200
        assert (await client.get(f"/api/v1/issues/{created['id']}")).status_code == 404


class TestMap:
    async def test_only_geotagged(self, client: AsyncClient, alice_headers):
        await _create(client, alice_headers, title="On the map", latitude=19.07, longitude=72.87)
        await _create(client, alice_headers, title="Nowhere")

        response = await client.get("/api/v1/map")
        assert response.status_code == 200
        data = response.json()
        assert [i["title"] for i in data] == ["On the map"]
        assert data[0]["latitude"] == 19.07
        assert data[0]["longitude"] == 72.87
