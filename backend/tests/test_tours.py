"""
Tests for tour endpoints: CRUD through the resource factory, role checks,
reports, geospatial search and image uploads.
"""

from pathlib import Path

import pytest
from httpx import AsyncClient
from PIL import Image

from natours.models.tour import Tour

from conftest import create_tour, png_bytes

NEW_TOUR = {
    "name": "The Northern Lights",
    "duration": 7,
    "max_group_size": 12,
    "difficulty": "medium",
    "price": 1497,
    "summary": "Enjoy the Northern Lights in one of the best places in the world",
    "image_cover": "tour-9-cover.jpg",
    "start_location": {"coordinates": [-147.716606, 64.837845], "address": "Fairbanks, AK"},
}


@pytest.mark.asyncio
async def test_create_tour_round_trip(client: AsyncClient, admin_headers):
    """A created tour reads back equal on every input field."""
    response = await client.post("/api/v1/tours", json=NEW_TOUR, headers=admin_headers)
    assert response.status_code == 201
    created = response.json()["data"]["data"]
    assert created["slug"] == "the-northern-lights"
    assert created["duration_weeks"] == 1
    assert created["ratings_average"] == 4.5
    assert created["ratings_quantity"] == 0

    response = await client.get(f"/api/v1/tours/{created['id']}")
    assert response.status_code == 200
    fetched = response.json()["data"]["data"]
    for key in ("name", "duration", "max_group_size", "difficulty", "price", "summary", "image_cover"):
        assert fetched[key] == NEW_TOUR[key]
    assert fetched["start_location"]["coordinates"] == NEW_TOUR["start_location"]["coordinates"]
    assert fetched["start_location"]["type"] == "Point"
    assert fetched["reviews"] == []


@pytest.mark.asyncio
async def test_lead_guide_can_create_tour(client: AsyncClient, lead_guide_headers):
    response = await client.post("/api/v1/tours", json=NEW_TOUR, headers=lead_guide_headers)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_user_cannot_create_tour(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/tours", json=NEW_TOUR, headers=auth_headers)
    assert response.status_code == 403
    assert response.json() == {
        "status": "fail",
        "message": "You do not have permission to perform this action",
    }


@pytest.mark.asyncio
async def test_anonymous_cannot_create_tour(client: AsyncClient):
    response = await client.post("/api/v1/tours", json=NEW_TOUR)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_tour_validation(client: AsyncClient, admin_headers):
    response = await client.post(
        "/api/v1/tours", json={**NEW_TOUR, "name": "Short"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid input data.")

    response = await client.post(
        "/api/v1/tours", json={**NEW_TOUR, "price_discount": 1500}, headers=admin_headers
    )
    assert response.status_code == 400
    assert "should be below regular price" in response.json()["message"]


@pytest.mark.asyncio
async def test_create_tour_with_guides(client: AsyncClient, admin_headers, guide):
    response = await client.post(
        "/api/v1/tours", json={**NEW_TOUR, "guides": [guide.id]}, headers=admin_headers
    )
    assert response.status_code == 201
    [embedded] = response.json()["data"]["data"]["guides"]
    assert embedded == {"id": guide.id, "name": "Kate Guide", "photo": "default.jpg", "role": "guide"}


@pytest.mark.asyncio
async def test_create_tour_with_unknown_guide(client: AsyncClient, admin_headers):
    response = await client.post(
        "/api/v1/tours", json={**NEW_TOUR, "guides": [9999]}, headers=admin_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_tour_name(client: AsyncClient, admin_headers, db_session):
    await create_tour(db_session, NEW_TOUR["name"])
    response = await client.post("/api/v1/tours", json=NEW_TOUR, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"].startswith("Duplicate field value:")


@pytest.mark.asyncio
async def test_malformed_id_is_bad_request(client: AsyncClient):
    response = await client.get("/api/v1/tours/not-an-id")
    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Invalid record_id: not-an-id."}


@pytest.mark.asyncio
async def test_missing_tour_is_not_found(client: AsyncClient):
    response = await client.get("/api/v1/tours/4242")
    assert response.status_code == 404
    assert response.json()["message"] == "No tour found with that ID"


@pytest.mark.asyncio
async def test_delete_tour(client: AsyncClient, admin_headers, test_tour):
    tour_id = test_tour.id
    response = await client.delete(f"/api/v1/tours/{tour_id}", headers=admin_headers)
    assert response.status_code == 204
    assert response.content == b""

    response = await client.get(f"/api/v1/tours/{tour_id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_missing_tour_is_not_found(client: AsyncClient, admin_headers):
    """Deleting twice is a 404, never a server error."""
    response = await client.delete("/api/v1/tours/4242", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["status"] == "fail"


@pytest.mark.asyncio
async def test_update_tour(client: AsyncClient, admin_headers, test_tour):
    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}",
        json={"name": "The Forest Wanderer", "duration": 14},
        headers=admin_headers,
    )
    assert response.status_code == 200
    updated = response.json()["data"]["data"]
    assert updated["slug"] == "the-forest-wanderer"
    assert updated["duration_weeks"] == 2
    assert updated["price"] == 397
    assert updated["version"] == test_tour.version + 1


@pytest.mark.asyncio
async def test_update_discount_checked_against_stored_price(client: AsyncClient, admin_headers, test_tour):
    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}", json={"price_discount": 400}, headers=admin_headers
    )
    assert response.status_code == 400
    assert "should be below regular price" in response.json()["message"]

    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}", json={"price_discount": 300}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["data"]["price_discount"] == 300


@pytest.mark.asyncio
async def test_update_tour_rejects_explicit_null(client: AsyncClient, admin_headers, test_tour):
    response = await client.patch(f"/api/v1/tours/{test_tour.id}", json={"name": None}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid input data. name must not be null"

    response = await client.patch(f"/api/v1/tours/{test_tour.id}", json={"price_discount": None}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["data"]["price_discount"] is None

    response = await client.get(f"/api/v1/tours/{test_tour.id}")
    assert response.json()["data"]["data"]["name"] == "The Forest Hiker"


@pytest.mark.asyncio
async def test_secret_tours_are_hidden(client: AsyncClient, db_session, test_tour):
    secret = await create_tour(db_session, "The Secret Valley", secret_tour=True)

    response = await client.get("/api/v1/tours")
    assert [tour["id"] for tour in response.json()["data"]["data"]] == [test_tour.id]

    response = await client.get(f"/api/v1/tours/{secret.id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_top_five_cheap(client: AsyncClient, db_session):
    for index, price in enumerate([900, 300, 700, 100, 500, 200]):
        await create_tour(db_session, f"Tour number {index:02d}", price=price)

    response = await client.get("/api/v1/tours/top-5-cheap")
    assert response.status_code == 200
    data = response.json()["data"]["data"]
    assert [tour["price"] for tour in data] == [100, 200, 300, 500, 700]
    assert set(data[0]) == {"id", "name", "price", "ratings_average", "summary", "difficulty"}


@pytest.mark.asyncio
async def test_tour_stats(client: AsyncClient, db_session):
    await create_tour(db_session, "The Sea Explorer", difficulty="medium", price=500, ratings_average=4.8)
    await create_tour(db_session, "The Snow Adventurer", difficulty="medium", price=1000, ratings_average=4.6)
    await create_tour(db_session, "The Park Camper", difficulty="easy", price=300, ratings_average=4.5)
    await create_tour(db_session, "The Sports Lover", difficulty="difficult", price=2000, ratings_average=4.0)
    await create_tour(db_session, "The Secret Valley", price=50, ratings_average=5.0, secret_tour=True)

    response = await client.get("/api/v1/tours/tour-stats")
    assert response.status_code == 200
    stats = response.json()["data"]["stats"]
    assert [row["difficulty"] for row in stats] == ["EASY", "MEDIUM"]
    medium = stats[1]
    assert medium["num_tours"] == 2
    assert medium["avg_price"] == 750
    assert medium["min_price"] == 500
    assert medium["max_price"] == 1000


@pytest.mark.asyncio
async def test_monthly_plan(client: AsyncClient, db_session, guide_headers, test_tour):
    await create_tour(
        db_session,
        "The Sea Explorer",
        start_dates=["2021-07-01T09:00:00", "2022-07-01T09:00:00"],
    )

    response = await client.get("/api/v1/tours/monthly-plan/2021", headers=guide_headers)
    assert response.status_code == 200
    plan = response.json()["data"]["plan"]
    assert plan[0] == {"month": 7, "num_tour_starts": 2, "tours": ["The Forest Hiker", "The Sea Explorer"]}
    assert [entry["month"] for entry in plan] == [7, 4, 10]


@pytest.mark.asyncio
async def test_monthly_plan_requires_staff(client: AsyncClient, auth_headers):
    response = await client.get("/api/v1/tours/monthly-plan/2021", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_tours_within(client: AsyncClient, test_tour):
    response = await client.get("/api/v1/tours/tours-within/10/center/51.2,-115.6/unit/mi")
    assert response.status_code == 200
    assert [tour["id"] for tour in response.json()["data"]["data"]] == [test_tour.id]

    # Los Angeles is far more than 200 km from Banff
    response = await client.get("/api/v1/tours/tours-within/200/center/34.111745,-118.113491/unit/km")
    assert response.json()["results"] == 0


@pytest.mark.asyncio
async def test_tours_within_rejects_bad_center(client: AsyncClient):
    response = await client.get("/api/v1/tours/tours-within/10/center/banff/unit/mi")
    assert response.status_code == 400
    assert response.json()["message"] == "Please provide latitude and longitude in the format lat,lng."


@pytest.mark.asyncio
async def test_distances(client: AsyncClient, db_session, test_tour):
    await create_tour(
        db_session,
        "The Sea Explorer",
        start_location={"type": "Point", "coordinates": [-80.185942, 25.774772]},
    )

    response = await client.get("/api/v1/tours/distances/51.178456,-115.570154/unit/km")
    assert response.status_code == 200
    distances = response.json()["data"]["data"]
    assert [row["name"] for row in distances] == ["The Forest Hiker", "The Sea Explorer"]
    assert distances[0]["distance"] == pytest.approx(0, abs=0.001)
    # Banff to Miami, roughly 4100 km
    assert 3900 < distances[1]["distance"] < 4300


@pytest.mark.asyncio
async def test_upload_tour_images(client: AsyncClient, admin_headers, test_tour, settings):
    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}",
        data={"price": "450"},
        files=[
            ("image_cover", ("cover.png", png_bytes(), "image/png")),
            ("images", ("one.png", png_bytes(), "image/png")),
            ("images", ("two.png", png_bytes(), "image/png")),
        ],
        headers=admin_headers,
    )
    assert response.status_code == 200
    tour = response.json()["data"]["data"]
    assert tour["price"] == 450
    assert tour["image_cover"].startswith(f"tour-{test_tour.id}-")
    assert tour["image_cover"].endswith("-cover.jpeg")
    assert [name.rsplit("-", 1)[-1] for name in tour["images"]] == ["1.jpeg", "2.jpeg"]

    with Image.open(Path(settings.IMAGE_ROOT) / "tours" / tour["image_cover"]) as cover:
        assert cover.size == (2000, 1333)
        assert cover.format == "JPEG"


@pytest.mark.asyncio
async def test_upload_rejects_non_images(client: AsyncClient, admin_headers, test_tour):
    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}",
        files={"image_cover": ("notes.txt", b"not an image", "text/plain")},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Not an image! Please upload only images."


@pytest.mark.asyncio
async def test_tour_model_defaults(db_session):
    tour = await create_tour(db_session)
    assert isinstance(tour, Tour)
    assert tour.ratings_average == 4.5
    assert tour.ratings_quantity == 0
    assert tour.secret_tour is False


def stored_tour_images(settings) -> list[str]:
    tours_dir = Path(settings.IMAGE_ROOT) / "tours"
    return sorted(path.name for path in tours_dir.iterdir()) if tours_dir.exists() else []


@pytest.mark.asyncio
async def test_rejected_update_leaves_no_images(client: AsyncClient, admin_headers, test_tour, settings):
    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}",
        data={"price_discount": "1000"},
        files={"image_cover": ("cover.png", png_bytes(), "image/png")},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert "should be below regular price" in response.json()["message"]
    assert stored_tour_images(settings) == []


@pytest.mark.asyncio
async def test_duplicate_name_update_leaves_no_images(client: AsyncClient, admin_headers, test_tour, db_session, settings):
    await create_tour(db_session, name="The Sea Explorer")
    response = await client.patch(
        f"/api/v1/tours/{test_tour.id}",
        data={"name": "The Sea Explorer"},
        files=[
            ("image_cover", ("cover.png", png_bytes(), "image/png")),
            ("images", ("one.png", png_bytes(), "image/png")),
        ],
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"].startswith("Duplicate field value")
    assert stored_tour_images(settings) == []

    tour = (await client.get(f"/api/v1/tours/{test_tour.id}")).json()["data"]["data"]
    assert tour["image_cover"] == "tour-1-cover.jpg"
