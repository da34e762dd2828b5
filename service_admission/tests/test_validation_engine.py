"""
Unit tests for the validation engine and the authority client.
"""

import pytest
import httpx
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_admission.app.cache.operations import CacheOperations
from service_admission.app.validation.api_client import ValidationApiClient, parse_validity
from service_admission.app.validation.engine import ValidationEngine, is_valid_tenant_code
from shared.errors import ExternalServiceError
from shared.metrics import MetricsCollector
from shared.test_helpers import api_response


class TestTenantCodeFormat:
    """Tenant code shape check."""

    @pytest.mark.parametrize("code", ["acme", "ACME-01", "a_b", "0", "x" * 64])
    def test_accepted(self, code):
        assert is_valid_tenant_code(code)

    @pytest.mark.parametrize("code", ["", None, "acme corp", "acme!", "a:b", "ünï", "acme\n"])
    def test_rejected(self, code):
        assert not is_valid_tenant_code(code)


class TestParseValidity:
    """Decoding of authority response bodies."""

    @pytest.mark.parametrize("body,expected", [
        ('{"valid": true}', True),
        ('{"valid": false}', False),
        ('{"valid": 1}', True),
        ('{"valid": 0}', False),
        ('{"valid": "1"}', True),
        ('{"valid": "0"}', False),
        ('{"success": true}', True),
        ('{"status": 1}', True),
        ('{"status": "0"}', False),
    ])
    def test_recognised_values(self, body, expected):
        verdict = parse_validity(body)
        assert verdict is not None
        assert verdict.valid is expected

    def test_field_order(self):
        verdict = parse_validity('{"status": 0, "success": true, "valid": false}')
        assert verdict.valid is False
        assert verdict.field == "valid"

    def test_unrecognised_field_value_falls_through(self):
        verdict = parse_validity('{"valid": "yes", "success": 1}')
        assert verdict.valid is True
        assert verdict.field == "success"

    @pytest.mark.parametrize("body", [
        "",
        "not json",
        "[true]",
        "true",
        '{"ok": true}',
        '{"valid": "true"}',
        '{"valid": 2}',
        '{"valid": null}',
    ])
    def test_unparseable(self, body):
        assert parse_validity(body) is None


class TestValidationApiClient:
    """Test cases for ValidationApiClient."""

    @pytest.fixture
    def api_client(self):
        return ValidationApiClient("http://validator.test/", "/validate", "/bind-device", timeout=2.0)

    @pytest.mark.asyncio
    async def test_validate_sends_code_parameter(self, api_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_get = AsyncMock(return_value=api_response(200, {"valid": True}))
            mock_client.return_value.__aenter__.return_value.get = mock_get

            body = await api_client.validate("acme")

            assert parse_validity(body).valid is True
            mock_client.assert_called_once_with(timeout=2.0)
            mock_get.assert_called_once_with("http://validator.test/validate", params={"code": "acme"})

    @pytest.mark.asyncio
    async def test_bind_device_sends_code_and_ip(self, api_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_get = AsyncMock(return_value=api_response(200, {"success": True}))
            mock_client.return_value.__aenter__.return_value.get = mock_get

            await api_client.bind_device("acme", "10.0.0.1")

            mock_get.assert_called_once_with(
                "http://validator.test/bind-device",
                params={"code": "acme", "ip": "10.0.0.1"}
            )

    @pytest.mark.asyncio
    async def test_non_200_raises(self, api_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(503, {"valid": True})
            )

            with pytest.raises(ExternalServiceError) as exc_info:
                await api_client.validate("acme")
            assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, api_client):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                side_effect=httpx.ConnectTimeout("timed out")
            )

            with pytest.raises(ExternalServiceError):
                await api_client.validate("acme")


class TestValidationEngine:
    """Test cases for ValidationEngine."""

    @pytest.fixture
    def mock_cache(self):
        cache = AsyncMock(spec=CacheOperations)
        cache.get.return_value = None
        cache.exists.return_value = False
        cache.set.return_value = True
        return cache

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("admission")

    @pytest.fixture
    def engine(self, mock_cache, metrics):
        api_client = ValidationApiClient("http://validator.test", "/validate", "/bind-device", timeout=1.0)
        return ValidationEngine(mock_cache, api_client, valid_ttl=43200, negative_ttl=3600, metrics=metrics)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_api(self, engine, mock_cache, metrics):
        mock_cache.get.return_value = True

        with patch('httpx.AsyncClient') as mock_client:
            assert await engine.validate("acme") is True
            mock_client.assert_not_called()

        mock_cache.get.assert_awaited_once_with("v:acme")
        mock_cache.set.assert_not_called()
        assert metrics.get_sample_value("validation_cache_lookups_total", {"result": "hit"}) == 1

    @pytest.mark.asyncio
    async def test_cached_negative_skips_api(self, engine, mock_cache):
        mock_cache.get.return_value = False

        with patch('httpx.AsyncClient') as mock_client:
            assert await engine.validate("bogus") is False
            mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_response_cached_with_valid_ttl(self, engine, mock_cache, metrics):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(200, {"valid": True})
            )

            assert await engine.validate("acme") is True

        mock_cache.set.assert_awaited_once_with("v:acme", True, 43200)
        assert metrics.get_sample_value("validation_cache_lookups_total", {"result": "miss"}) == 1
        assert metrics.get_sample_value("validation_api_calls_total", {"outcome": "valid"}) == 1

    @pytest.mark.asyncio
    async def test_invalid_response_cached_with_negative_ttl(self, engine, mock_cache):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(200, {"valid": False})
            )

            assert await engine.validate("bogus") is False

        mock_cache.set.assert_awaited_once_with("v:bogus", False, 3600)

    @pytest.mark.asyncio
    async def test_unparseable_response_is_invalid(self, engine, mock_cache, metrics):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(200, "<html>oops</html>")
            )

            assert await engine.validate("acme") is False

        mock_cache.set.assert_awaited_once_with("v:acme", False, 3600)
        assert metrics.get_sample_value("validation_api_calls_total", {"outcome": "unparseable"}) == 1

    @pytest.mark.asyncio
    async def test_api_error_status_caches_negative(self, engine, mock_cache, metrics):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(500, {"valid": True})
            )

            assert await engine.validate("acme") is False

        mock_cache.set.assert_awaited_once_with("v:acme", False, 3600)
        assert metrics.get_sample_value("validation_api_calls_total", {"outcome": "error"}) == 1

    @pytest.mark.asyncio
    async def test_api_unreachable_caches_negative(self, engine, mock_cache):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                side_effect=httpx.ConnectError("Connection refused")
            )

            assert await engine.validate("acme") is False

        mock_cache.set.assert_awaited_once_with("v:acme", False, 3600)

    @pytest.mark.asyncio
    async def test_non_boolean_cache_entry_treated_as_miss(self, engine, mock_cache):
        mock_cache.get.return_value = "garbage"

        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(200, {"valid": False})
            )

            assert await engine.validate("acme") is False

        mock_cache.set.assert_awaited_once_with("v:acme", False, 3600)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "acme corp", "acme;DROP", "a/b"])
    async def test_malformed_code_does_no_io(self, engine, mock_cache, code):
        with patch('httpx.AsyncClient') as mock_client:
            assert await engine.validate(code) is False
            mock_client.assert_not_called()

        mock_cache.get.assert_not_called()
        mock_cache.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_bind_device_memoizes_success(self, engine, mock_cache):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(200, {"success": True}, url="http://validator.test/bind-device")
            )

            assert await engine.bind_device("acme", "10.0.0.1") is True

        mock_cache.exists.assert_awaited_once_with("b:acme:10.0.0.1")
        mock_cache.set.assert_awaited_once_with("b:acme:10.0.0.1", True, 43200)

    @pytest.mark.asyncio
    async def test_bind_device_already_bound(self, engine, mock_cache):
        mock_cache.exists.return_value = True

        with patch('httpx.AsyncClient') as mock_client:
            assert await engine.bind_device("acme", "10.0.0.1") is True
            mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_bind_device_failure_not_cached(self, engine, mock_cache):
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=api_response(502, "bad gateway", url="http://validator.test/bind-device")
            )

            assert await engine.bind_device("acme", "10.0.0.1") is False

        mock_cache.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_bind_device_rejects_bad_input(self, engine, mock_cache):
        assert await engine.bind_device("acme corp", "10.0.0.1") is False
        assert await engine.bind_device("acme", "") is False
        mock_cache.exists.assert_not_called()
