from __future__ import annotations

import pytest

from groundcover_sdk.config import DEFAULT_RETRY_STATUSES, RetryConfig, TransportConfig
from groundcover_sdk.exceptions import GroundcoverValidationError
from groundcover_sdk.security import sanitize_headers, validate_base_url


def test_retry_defaults() -> None:
    config = RetryConfig()

    assert config.retry_count == 3
    assert config.min_wait == 1.0
    assert config.max_wait == 30.0
    assert config.retry_statuses == frozenset({503, 429, 504, 502})


def test_zero_values_fall_back_to_defaults() -> None:
    config = RetryConfig(retry_count=0, min_wait=0, max_wait=0, retry_statuses=frozenset())

    assert config == RetryConfig()


def test_negative_values_fall_back_to_defaults() -> None:
    config = RetryConfig(retry_count=-1, min_wait=-1.0, max_wait=-1.0)

    assert config.retry_count == 3
    assert config.min_wait == 1.0
    assert config.max_wait == 30.0


def test_explicit_values_are_kept() -> None:
    config = RetryConfig(2, 0.01, 0.05, [503])

    assert config.retry_count == 2
    assert config.min_wait == 0.01
    assert config.max_wait == 0.05
    assert config.retry_statuses == frozenset({503})


def test_retry_config_rejects_inverted_waits() -> None:
    with pytest.raises(GroundcoverValidationError, match="min_wait"):
        RetryConfig(min_wait=5.0, max_wait=1.0)


def test_retry_config_rejects_negative_jitter() -> None:
    with pytest.raises(GroundcoverValidationError, match="jitter_ratio"):
        RetryConfig(jitter_ratio=-0.1)


def test_configs_are_immutable() -> None:
    config = TransportConfig(api_key="k", backend_id="b")

    with pytest.raises(AttributeError):
        config.api_key = "other"  # type: ignore[misc]
    with pytest.raises(AttributeError):
        RetryConfig().retry_count = 10  # type: ignore[misc]
    assert "api_key='k'" not in repr(config)
    assert DEFAULT_RETRY_STATUSES == RetryConfig().retry_statuses


def test_sanitize_headers_redacts_credentials() -> None:
    headers = sanitize_headers({"Authorization": "Bearer x", "X-Backend-Id": "b", "Accept": "application/json"})

    assert headers == {"Authorization": "[REDACTED]", "X-Backend-Id": "[REDACTED]", "Accept": "application/json"}


@pytest.mark.parametrize(
    "url",
    ["ftp://api.example.com", "api.example.com", "http://api.example.com"],
)
def test_validate_base_url_rejects(url: str) -> None:
    with pytest.raises(GroundcoverValidationError):
        validate_base_url(url)


def test_validate_base_url_allows_local_http() -> None:
    validate_base_url("http://localhost:8080")
    validate_base_url("http://api.example.com", allow_http=True)
