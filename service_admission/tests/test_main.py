"""
Unit tests for the admission HTTP service.
"""

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_admission.app.decision import AdmissionDecision, AdmissionReason
from service_admission.app.cache.connection import ConnectionPool
from service_admission.app.main import AdmissionService, build_controller, create_app, main
from service_admission.app.orchestrator import AdmissionController
from shared.errors import ConfigError
from shared.test_helpers import create_test_config


class TestAdmissionService:
    """Test cases for AdmissionService."""

    @pytest.fixture
    def config(self):
        """Config pointing at a closed cache port."""
        return create_test_config(cache_port=1)

    @pytest.fixture
    def admission_service(self, config):
        return AdmissionService(config=config)

    @pytest.fixture
    def client(self, admission_service):
        """Create test client."""
        return TestClient(admission_service.app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "admission"

    def test_controller_wired_from_config(self, admission_service, config):
        controller = admission_service.controller
        assert controller.enforcer.max_devices == config.max_devices_per_tenant
        assert controller.enforcer.block_duration == 1800
        assert controller.validation_engine.valid_ttl == 43200
        assert controller.validation_engine.negative_ttl == 3600
        assert controller.validation_engine.api_client.api_base == "http://validator.test"
        assert admission_service.pool.timeout == 0.5

    @patch('service_admission.app.main.AdmissionService._check_dependencies', new_callable=AsyncMock)
    def test_health_ok(self, mock_check_deps, client):
        mock_check_deps.return_value = {"cache": "ok"}

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["cache"] == "ok"

    def test_health_degraded_when_cache_unreachable(self, client):
        response = client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["dependencies"]["cache"] == "error"

    @patch('service_admission.app.main.AdmissionController.evaluate', new_callable=AsyncMock)
    def test_evaluate_allowed(self, mock_evaluate, client):
        mock_evaluate.return_value = AdmissionDecision.allow(AdmissionReason.SAME_DEVICE)

        response = client.post(
            "/admission/evaluate",
            json={"tenant_code": "acme", "client_address": "10.0.0.1"}
        )

        assert response.status_code == 200
        assert response.json() == {"allowed": True, "reason": "same_device"}
        mock_evaluate.assert_awaited_once_with("acme", "10.0.0.1")

    @patch('service_admission.app.main.AdmissionController.evaluate', new_callable=AsyncMock)
    def test_evaluate_denied(self, mock_evaluate, client):
        mock_evaluate.return_value = AdmissionDecision.deny(AdmissionReason.INVALID_TENANT)

        response = client.post("/admission/evaluate", json={"tenant_code": "bogus", "client_address": "10.0.0.1"})

        assert response.status_code == 200
        assert response.json() == {"allowed": False, "reason": "invalid_tenant"}

    def test_evaluate_without_tenant_code(self, client):
        response = client.post("/admission/evaluate", json={"client_address": "10.0.0.1"})

        assert response.status_code == 200
        assert response.json() == {"allowed": False, "reason": "no_tenant_code"}

    def test_evaluate_sets_request_id_header(self, client):
        response = client.post(
            "/admission/evaluate",
            json={"tenant_code": "bad code"},
            headers={"X-Request-ID": "req-42"}
        )

        assert response.json()["reason"] == "invalid_format"
        assert response.headers["X-Request-ID"] == "req-42"

    @patch('service_admission.app.main.ValidationEngine.bind_device', new_callable=AsyncMock)
    def test_bind_device(self, mock_bind, client):
        mock_bind.return_value = True

        response = client.post("/admission/bind", json={"tenant_code": "acme", "client_address": "10.0.0.1"})

        assert response.status_code == 200
        assert response.json() == {"bound": True}
        mock_bind.assert_awaited_once_with("acme", "10.0.0.1")

    @patch('service_admission.app.main.AdmissionController.unblock', new_callable=AsyncMock)
    def test_unblock(self, mock_unblock, client):
        mock_unblock.return_value = True

        response = client.post("/admin/unblock", headers={"X-Tenant-Code": "acme"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "tenant_code": "acme"}
        mock_unblock.assert_awaited_once_with("acme")

    def test_unblock_requires_header(self, client):
        response = client.post("/admin/unblock")

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_unblock_rejects_invalid_code(self, client):
        response = client.post("/admin/unblock", headers={"X-Tenant-Code": "acme corp"})

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["details"]["tenant_code"] == "acme corp"

    def test_metrics_endpoint(self, client):
        client.post("/admission/evaluate", json={"tenant_code": ""})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'admission_decisions_total{allowed="false",reason="no_tenant_code"} 1.0' in response.text

    def test_build_controller_returns_pool_and_controller(self, config):
        pool, controller = build_controller(config)

        assert isinstance(pool, ConnectionPool)
        assert isinstance(controller, AdmissionController)
        assert controller.cache.pool is pool

    def test_create_app(self, config):
        app = create_app(config)
        assert app.state.admission_service.config is config


class TestMain:
    """Startup entry point."""

    @patch('service_admission.app.main.load_config')
    def test_refuses_to_start_without_config(self, mock_load_config):
        mock_load_config.side_effect = ConfigError("Invalid configuration for admission", details={"fields": ["api_base"]})

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
