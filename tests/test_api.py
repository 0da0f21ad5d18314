import inspect

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.services import LeaderboardService, StatesService, get_leaderboard_service, get_states_service
from db import ConfigurationError


@pytest.fixture
def client(repository):
    app.dependency_overrides[get_leaderboard_service] = lambda: LeaderboardService(repository)
    app.dependency_overrides[get_states_service] = lambda: StatesService(repository)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()['status'] == "healthy"


def test_contract_leaderboard(client):
    response = client.post("/api/leaderboard", json={
        'mode': "contract",
        'selection': {'plan_type_group': "all"},
        'top_limit': 2,
        'measure_codes': ["c01"],
    })
    assert response.status_code == 200

    body = response.json()
    assert body['mode'] == "contract"
    assert body['filters']['top_limit'] == 5
    assert body['data_year'] == 2025
    assert [section['key'] for section in body['sections']] == ["overall", "partC", "partD", "measure-C01"]

    leader = body['sections'][0]['top_performers'][0]
    assert leader['entity_id'] == "H1111"
    assert leader['rank'] == 1
    assert leader['value_label'] == "4.5"


def test_organization_leaderboard(client):
    response = client.post("/api/leaderboard", json={'mode': "organization", 'selection': {'blue_only': "true"}})
    assert response.status_code == 200

    overall = response.json()['sections'][0]
    assert [entry['entity_id'] for entry in overall['top_performers']] == ["Alpha Corp"]
    assert overall['top_performers'][0]['metadata'] == {'contract_count': 2, 'blue_contract_count': 1}


def test_empty_leaderboard_keeps_filters(client):
    response = client.post("/api/leaderboard", json={
        'mode': "contract",
        'selection': {'state_option': "state", 'state': "fl"},
    })
    assert response.status_code == 200
    body = response.json()
    assert body['sections'] == []
    assert body['filters']['state'] == "FL"


@pytest.mark.parametrize("payload", [
    {'mode': "contract", 'selection': {'state_option': "state"}},
    {'mode': "contract", 'selection': {'state_option': "state", 'state': "ZZ"}},
    {'mode': "county"},
])
def test_bad_leaderboard_requests(client, payload):
    response = client.post("/api/leaderboard", json=payload)
    assert response.status_code == 400
    assert "error" in response.json()


def test_state_rollup(client):
    response = client.get("/api/leaderboard/states", params={'measure': "C01"})
    assert response.status_code == 200

    body = response.json()
    assert [item['code'] for item in body['states']] == ["CA", "TX"]
    assert body['states'][0]['measure']['average'] == 80.0
    assert body['measure']['stats']['count'] == 2


def test_state_comparison(client):
    response = client.get("/api/maps/contracts", params={'state': "us", 'contract_id': "h2222"})
    assert response.status_code == 200

    body = response.json()
    assert body['geography_type'] == "national"
    assert body['contract_count'] == 4
    assert body['target']['contract']['contract_id'] == "H2222"
    assert body['target']['percentiles']['overall'] == 33.33


def test_state_comparison_requires_state(client):
    assert client.get("/api/maps/contracts").status_code == 400


def test_state_comparison_unknown_state(client):
    response = client.get("/api/maps/contracts", params={'state': "ZZ"})
    assert response.status_code == 400


def test_measure_overview(client):
    response = client.get("/api/measures/c28")
    assert response.status_code == 200
    assert response.json()['direction'] == "lower"


def test_unknown_measure_is_404(client):
    assert client.get("/api/measures/Z99").status_code == 404


def test_missing_store_configuration_is_503(repository):
    def unconfigured():
        raise ConfigurationError("No data source configured")

    app.dependency_overrides[get_leaderboard_service] = unconfigured
    try:
        response = TestClient(app).post("/api/leaderboard", json={'mode': "contract"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()['code'] == "STORE_CONFIG_MISSING"


def test_leaderboard_with_every_measure(client):
    response = client.post("/api/leaderboard", json={'mode': "contract", 'include_measures': "true"})
    assert response.status_code == 200

    keys = [section['key'] for section in response.json()['sections']]
    assert keys[3:] == ["domain-other", "domain-staying-healthy", "measure-C01", "measure-C28"]


def test_store_reads_run_off_the_event_loop():
    handlers = {route.path: route.endpoint for route in app.routes if route.path.startswith("/api/")}
    assert handlers
    assert not any(inspect.iscoroutinefunction(handler) for handler in handlers.values())
