"""
Smoke tests for the Shift Planner API.
These tests use FastAPI's TestClient without a dispatch backend, checking the
public endpoints, the auth gate and the route table.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fastapi.testclient import TestClient

from api.main import app

client = TestClient(app)


class TestRootEndpoint:
    def test_root_returns_service_info(self):
        r = client.get('/api')
        assert r.status_code == 200
        data = r.json()
        assert data['service'] == 'Shift Planner API'
        assert 'version' in data


class TestVersionEndpoint:
    def test_version(self):
        r = client.get('/api/version')
        assert r.status_code == 200
        assert r.json()['version'] == app.version


class TestShiftTypesEndpoint:
    def test_catalogue_shape(self):
        r = client.get('/api/shift-types')
        assert r.status_code == 200
        for entry in r.json():
            for key in ('value', 'kind', 'label', 'start_hour', 'end_hour', 'overnight'):
                assert key in entry, f"Missing key: {key}"


class TestAuthGate:
    def test_protected_routes_need_token(self):
        for method, path in [
            ('GET', '/api/planner'),
            ('POST', '/api/planner/save'),
            ('GET', '/api/shifts'),
            ('GET', '/api/shifts/summary'),
            ('GET', '/api/people'),
            ('GET', '/api/export/schedule'),
            ('GET', '/api/events'),
        ]:
            r = client.request(method, path)
            assert r.status_code == 401, f"{method} {path} returned {r.status_code}"


class TestRouteTable:
    def test_all_routes_registered(self):
        paths = {route.path for route in app.routes}
        for path in (
            '/api/planner/sessions', '/api/planner/sessions/current', '/api/planner',
            '/api/planner/person', '/api/planner/week', '/api/planner/days/{day}',
            '/api/planner/clear', '/api/planner/save', '/api/people', '/api/shift-types',
            '/api/shifts', '/api/shifts/summary', '/api/export/schedule',
            '/api/export/supervisors', '/api/events', '/api/health',
        ):
            assert path in paths, f"Missing route: {path}"

    def test_openapi_schema(self):
        r = client.get('/openapi.json')
        assert r.status_code == 200
        assert r.json()['info']['title'] == 'Shift Planner API'
