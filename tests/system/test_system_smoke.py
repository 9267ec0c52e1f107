"""
System smoke test: full API flow in-process with SQLite.
Verifies health, first-time user state, recalculation, module view,
drill-down, history, trends and error mapping.
Uses a temp file DB so all connections share the same database.
"""

import uuid
import warnings
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mastery_analytics.api.deps import get_recalculator, get_snapshot_store
from mastery_analytics.engines.progress.errors import EstimatorUnavailableError
from mastery_analytics.engines.progress.recalculator import SnapshotRecalculator
from mastery_analytics.engines.progress.snapshot_store import SnapshotStore
from mastery_analytics.main import app

PREFIX = "/api/v1/users/{user_id}/courses/{course_id}/progress"


class ScriptedEstimator:
    def __init__(self):
        self.responses = []

    async def estimate(self, user_id, course_id):
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SteppingClock:
    """Each recalculation lands one day after the previous one, ending today."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self):
        self.now += timedelta(days=1)
        return self.now


@pytest.fixture
def estimator():
    return ScriptedEstimator()


@pytest_asyncio.fixture
async def client(session_maker, estimator):
    """Async client wired to the test DB and a scripted estimator."""
    store = SnapshotStore(session_maker)
    recalculator = SnapshotRecalculator(
        estimator,
        store,
        max_retries=0,
        clock=SteppingClock(datetime.now(timezone.utc) - timedelta(days=3)),
    )
    app.dependency_overrides[get_snapshot_store] = lambda: store
    app.dependency_overrides[get_recalculator] = lambda: recalculator
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_snapshot_store, None)
        app.dependency_overrides.pop(get_recalculator, None)


def url(user_id, course_id="2", path=""):
    return PREFIX.format(user_id=user_id, course_id=course_id) + path


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["taxonomy_version"]


@pytest.mark.asyncio
async def test_first_time_user(client):
    """No snapshots yet: defined empty states, not errors."""
    user_id = uuid.uuid4()

    latest = await client.get(url(user_id, path="/snapshots/latest"))
    assert latest.status_code == 200
    assert latest.json()["snapshot"] is None

    modules = await client.get(url(user_id, path="/modules"))
    assert modules.status_code == 200
    body = modules.json()
    assert body["no_data_policy"] == "placeholder"
    assert len(body["modules"]) == 8
    assert all(m["progress"] == 1 and not m["has_data"] for m in body["modules"])

    trends = await client.get(url(user_id, path="/trends"))
    assert trends.status_code == 200
    assert trends.json()["status"] == "no_data"


@pytest.mark.asyncio
async def test_recalculate_and_read_back(client, estimator):
    user_id = uuid.uuid4()
    estimator.responses = [
        [
            {"topic": "1.1 Натуральные и целые числа", "prob": 0.5},
            {"topic": "6.2 Вероятность", "prob": 0.2},
            {"задача ФИПИ": "3", "prob": 0.4},
        ],
        [
            {"topic": "1.1 Натуральные и целые числа", "prob": 0.9},
            {"topic": "6.2 Вероятность", "prob": 0.3},
            {"задача ФИПИ": "3", "prob": 0.7},
        ],
    ]

    first = await client.post(url(user_id, path="/recalculate"))
    assert first.status_code == 201
    data = first.json()
    assert data["snapshot"]["general_progress"] == pytest.approx(0.35)
    # Fresh recalculation reports modules without data as 0
    progress = {m["module_id"]: m["progress"] for m in data["modules"]}
    assert progress[1] == 50
    assert progress[6] == 20
    assert progress[2] == 0

    second = await client.post(url(user_id, path="/recalculate"))
    assert second.status_code == 201

    history = await client.get(url(user_id, path="/snapshots"))
    assert history.json()["total"] == 2

    latest = (await client.get(url(user_id, path="/snapshots/latest"))).json()["snapshot"]
    assert [t["code"] for t in latest["topics"]] == ["1.1", "6.2"]
    assert latest["tasks"] == [{"id": "3", "prob": 0.7}]

    modules = (await client.get(url(user_id, path="/modules"))).json()["modules"]
    by_id = {m["module_id"]: m for m in modules}
    assert by_id[1]["progress"] == 90
    assert by_id[1]["mastered_count"] == 1
    assert by_id[2]["progress"] == 1

    topics = await client.get(url(user_id, path="/modules/6/topics"))
    assert topics.status_code == 200
    rows = {r["code"]: r for r in topics.json()["topics"]}
    assert rows["6.2"]["name"] == "Вероятность"
    assert rows["6.2"]["progress"] == 30
    assert rows["6.1"]["progress"] is None

    trends = await client.get(url(user_id, path="/trends"), params={"period": "7d", "mode": "topics"})
    body = trends.json()
    assert body["status"] == "ok"
    assert body["delta"] == pytest.approx(25)
    assert [i["id"] for i in body["items"]] == ["1.1", "6.2"]

    selected = await client.get(url(user_id, path="/trends"), params={"mode": "tasks", "item": "3"})
    assert [p["value"] for p in selected.json()["series"]] == pytest.approx([40, 70])

    top = await client.get(url(user_id, path="/trends/top"), params={"mode": "topics", "k": 1, "direction": "up"})
    assert [i["id"] for i in top.json()["items"]] == ["1.1"]


@pytest.mark.asyncio
async def test_estimator_failure_maps_to_502(client, estimator):
    user_id = uuid.uuid4()
    estimator.responses = [EstimatorUnavailableError("estimator down")]

    response = await client.post(url(user_id, course_id="1", path="/recalculate"))
    assert response.status_code == 502
    assert "Recalculation failed" in response.json()["detail"]

    latest = await client.get(url(user_id, course_id="1", path="/snapshots/latest"))
    assert latest.json()["snapshot"] is None


@pytest.mark.asyncio
async def test_unknown_course_and_module(client):
    user_id = uuid.uuid4()
    assert (await client.get(url(user_id, course_id="99", path="/modules"))).status_code == 404
    assert (await client.get(url(user_id, path="/modules/42/topics"))).status_code == 404


@pytest.mark.asyncio
async def test_invalid_parameters(client):
    user_id = uuid.uuid4()
    response = await client.get(url(user_id, path="/trends"), params={"period": "90d"})
    assert response.status_code == 422
    assert (await client.get(url("not-a-uuid", path="/modules"))).status_code == 422


@pytest.mark.asyncio
async def test_validation_error_response(client):
    """Validation errors carry the request id and raise no deprecation warnings."""
    user_id = uuid.uuid4()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        response = await client.get(url(user_id, path="/trends"), params={"mode": "skills"})

    assert response.status_code == 422
    assert response.json()["request_id"] == response.headers["X-Request-ID"]
    assert not [w for w in caught if issubclass(w.category, DeprecationWarning) and "422" in str(w.message)]
