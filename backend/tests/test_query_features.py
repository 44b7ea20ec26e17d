"""
Tests for the generic listing helper.
"""

from datetime import datetime, timedelta, timezone

import pytest

from eventhub.core.exceptions import BadRequestError
from eventhub.models.event import Event
from eventhub.utils.query_features import QueryFeatures, escape_like, with_page


def features(**params) -> QueryFeatures:
    return QueryFeatures(Event, params)


@pytest.mark.asyncio
async def test_equality_and_range_filters(db_session, make_event):
    small = await make_event(capacity=5)
    medium = await make_event(capacity=50)
    await make_event(capacity=500, status="draft")

    rows, total = await features(status="published").filter().sort().fetch_page(db_session)
    assert total == 2
    assert {e.id for e in rows} == {small.id, medium.id}

    rows, _ = await QueryFeatures(Event, {"capacity[gte]": "50"}).filter().fetch_page(db_session)
    assert {e.capacity for e in rows} == {50, 500}

    rows, _ = await features(capacity__lt="50").filter().fetch_page(db_session)
    assert [e.id for e in rows] == [small.id]


@pytest.mark.asyncio
async def test_date_filter(db_session, make_event):
    soon = await make_event(
        start_date=datetime.now(timezone.utc) + timedelta(days=3),
        end_date=datetime.now(timezone.utc) + timedelta(days=4),
        registration_end_date=datetime.now(timezone.utc) + timedelta(days=2),
    )
    await make_event()

    cutoff = (datetime.now(timezone.utc) + timedelta(days=10)).isoformat()
    rows, total = await QueryFeatures(Event, {"start_date[lte]": cutoff}).filter().fetch_page(db_session)
    assert total == 1
    assert rows[0].id == soon.id


def test_unknown_and_reserved_keys_are_ignored():
    shaped = features(colour="red", page="2", sort="title", search="x", fields="title").filter()
    assert shaped.criteria == ()


def test_json_columns_are_not_filterable():
    assert features(tags="python").filter().criteria == ()


def test_reference_ids_must_be_integers():
    with pytest.raises(BadRequestError):
        features(organisation_id="not-a-number").filter()


def test_uncoercible_values_are_bad_requests():
    with pytest.raises(BadRequestError):
        features(capacity="lots").filter()
    with pytest.raises(BadRequestError):
        features(is_free="maybe").filter()


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_literal(db_session, make_event):
    await make_event(title="Intro to Python")
    discount = await make_event(title="100% Python")
    await make_event(title="Cooking class")

    _, total = await features(search="PYTHON").search().fetch_page(db_session)
    assert total == 2

    rows, total = await features(search="100%").search().fetch_page(db_session)
    assert total == 1
    assert rows[0].id == discount.id

    assert features(search="   ").search().criteria == ()


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


@pytest.mark.asyncio
async def test_sorting(db_session, make_event):
    b = await make_event(title="B", capacity=20)
    a = await make_event(title="A", capacity=20)
    c = await make_event(title="C", capacity=10)

    rows, _ = await features(sort="title").sort().fetch_page(db_session)
    assert [e.id for e in rows] == [a.id, b.id, c.id]

    rows, _ = await features(sort="-capacity,title").sort().fetch_page(db_session)
    assert [e.id for e in rows] == [a.id, b.id, c.id]

    # default is newest first
    rows, _ = await features().sort().fetch_page(db_session)
    assert [e.id for e in rows] == [c.id, a.id, b.id]

    # unknown sort fields fall back to something deterministic
    assert len(features(sort="nope").sort().ordering) == 1


@pytest.mark.asyncio
async def test_pagination_and_total(db_session, make_event):
    for _ in range(7):
        await make_event()

    shaped = features(page="2", limit="3").filter().sort().paginate()
    rows, total = await shaped.fetch_page(db_session)
    assert total == 7
    assert len(rows) == 3
    assert shaped.offset == 3
    assert shaped.page_meta(total) == {"total": 7, "page": 2, "limit": 3, "total_pages": 3}


def test_pagination_defaults_and_cap():
    assert (features().paginate().page, features().paginate().limit) == (1, 10)
    assert features(page="0", limit="-4").paginate().limit == 10
    assert features(page="abc").paginate().page == 1
    assert features(limit="100000").paginate().limit == 100


def test_count_statement_ignores_ordering_and_paging():
    shaped = features(status="published", page="3", limit="2", sort="title").filter().sort().paginate()
    sql = str(shaped.count_statement())
    assert "ORDER BY" not in sql
    assert "LIMIT" not in sql
    assert "status" in sql


def test_projection():
    data = {"id": 1, "title": "T", "status": "draft", "capacity": 5, "version": 3, "organisation_name": "Org"}

    default = features().limit_fields()
    assert "version" not in default.project(data)
    assert default.project(data)["capacity"] == 5

    narrow = features(fields="title,version,bogus").limit_fields()
    assert narrow.project(data) == {"id": 1, "title": "T", "organisation_name": "Org"}

    assert features().project(data) == data


def test_builder_is_immutable():
    base = features(status="draft")
    filtered = base.filter()
    assert base.criteria == ()
    assert filtered is not base
    assert len(filtered.criteria) == 1


def test_with_page():
    body = with_page("events", ["a", "b"], {"total": 2, "page": 1, "limit": 10, "total_pages": 1})
    assert body == {"total": 2, "page": 1, "limit": 10, "total_pages": 1, "results": 2, "events": ["a", "b"]}
