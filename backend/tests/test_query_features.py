"""
Tests for the query feature builder: parsing, filtering, sorting,
projection and pagination, both on the builder and through the tours list.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from natours.core.errors import CastError
from natours.models.tour import Tour
from natours.services.query_features import QueryFeatures, parse_query_string

from conftest import create_tour


def test_parse_query_string_nests_operators_and_collects_repeats():
    parsed = parse_query_string([
        ("price[gte]", "500"),
        ("price[lt]", "1500"),
        ("difficulty", "easy"),
        ("difficulty", "medium"),
        ("sort", "price"),
    ])
    assert parsed == {
        "price": {"gte": "500", "lt": "1500"},
        "difficulty": ["easy", "medium"],
        "sort": "price",
    }


def test_control_keys_are_not_filters():
    features = QueryFeatures(
        Tour, select(Tour), {"page": "2", "sort": "price", "limit": "5", "fields": "name"}
    ).filter()
    assert features.statement.whereclause is None


def test_refinements_return_new_builders():
    base = QueryFeatures(Tour, select(Tour), {"price": {"gte": "500"}})
    filtered = base.filter()
    assert filtered is not base
    assert base.statement.whereclause is None
    assert filtered.statement.whereclause is not None


def test_uncastable_value_raises_cast_error():
    with pytest.raises(CastError) as exc_info:
        QueryFeatures(Tour, select(Tour), {"price": "cheap"}).filter()
    assert exc_info.value.path == "price"
    assert exc_info.value.value == "cheap"


def test_projection_keeps_selected_fields_and_id():
    features = QueryFeatures(Tour, select(Tour), {"fields": "name,price"}).limit_fields()
    record = {"id": 1, "name": "A", "price": 10, "summary": "s", "version": 0}
    assert features.project(record) == {"id": 1, "name": "A", "price": 10}


def test_default_projection_hides_version():
    features = QueryFeatures(Tour, select(Tour), {}).limit_fields()
    assert features.project({"id": 1, "name": "A", "version": 3}) == {"id": 1, "name": "A"}


def test_exclusion_projection():
    features = QueryFeatures(Tour, select(Tour), {"fields": "-summary,-price"}).limit_fields()
    assert features.project({"id": 1, "name": "A", "price": 10, "summary": "s"}) == {"id": 1, "name": "A"}


@pytest.mark.asyncio
async def test_range_filter(client: AsyncClient, db_session):
    """price[gte]=500 behaves like price >= 500."""
    await create_tour(db_session, "The Sea Explorer", price=497)
    await create_tour(db_session, "The Snow Adventurer", price=500)
    await create_tour(db_session, "The Star Gazer", price=997)

    response = await client.get("/api/v1/tours", params={"price[gte]": "500", "sort": "price"})
    assert response.status_code == 200
    assert [tour["price"] for tour in response.json()["data"]["data"]] == [500, 997]

    response = await client.get("/api/v1/tours?price[gt]=500&price[lte]=997")
    assert [tour["name"] for tour in response.json()["data"]["data"]] == ["The Star Gazer"]


@pytest.mark.asyncio
async def test_equality_and_membership_filters(client: AsyncClient, db_session):
    await create_tour(db_session, "The Sea Explorer", difficulty="medium")
    await create_tour(db_session, "The Snow Adventurer", difficulty="difficult")
    await create_tour(db_session, "The Park Camper", difficulty="easy")

    response = await client.get("/api/v1/tours?difficulty=easy")
    assert response.json()["results"] == 1

    response = await client.get("/api/v1/tours?difficulty=easy&difficulty=medium")
    assert response.json()["results"] == 2


@pytest.mark.asyncio
async def test_unknown_field_matches_nothing(client: AsyncClient, test_tour):
    response = await client.get("/api/v1/tours?colour=blue")
    assert response.status_code == 200
    assert response.json()["results"] == 0


@pytest.mark.asyncio
async def test_pagination_skips_and_limits(client: AsyncClient, db_session):
    for index in range(25):
        await create_tour(db_session, f"Tour number {index:02d}", price=100 + index)

    response = await client.get("/api/v1/tours?sort=price&page=2&limit=10")
    data = response.json()["data"]["data"]
    assert response.json()["results"] == 10
    assert [tour["price"] for tour in data] == [110 + index for index in range(10)]

    response = await client.get("/api/v1/tours?sort=price&page=3&limit=10")
    assert response.json()["results"] == 5


@pytest.mark.asyncio
async def test_invalid_pagination_falls_back_to_defaults(client: AsyncClient, db_session):
    for index in range(3):
        await create_tour(db_session, f"Tour number {index:02d}")

    response = await client.get("/api/v1/tours?page=zero&limit=-4")
    assert response.status_code == 200
    assert response.json()["results"] == 3


@pytest.mark.asyncio
async def test_sort_descending_with_tiebreak(client: AsyncClient, db_session):
    await create_tour(db_session, "The Sea Explorer", price=497, ratings_average=4.8)
    await create_tour(db_session, "The Snow Adventurer", price=997, ratings_average=4.8)
    await create_tour(db_session, "The Park Camper", price=297, ratings_average=4.9)

    response = await client.get("/api/v1/tours?sort=-ratings_average,price")
    names = [tour["name"] for tour in response.json()["data"]["data"]]
    assert names == ["The Park Camper", "The Sea Explorer", "The Snow Adventurer"]


@pytest.mark.asyncio
async def test_fields_projection_through_api(client: AsyncClient, test_tour):
    response = await client.get("/api/v1/tours?fields=name,duration")
    [tour] = response.json()["data"]["data"]
    assert set(tour) == {"id", "name", "duration"}
