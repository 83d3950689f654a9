"""Pytest configuration and shared fixtures."""

import random

import pytest

from src.models.config import PipelineConfig
from tests.fixtures.recipes import FakeClock


@pytest.fixture(scope="session")
def deterministic_seed():
    """Set a fixed random seed for deterministic test results."""
    random.seed(42)
    return 42


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sample_config(tmp_path):
    """Provide a fast configuration writing into a temporary directory."""
    return PipelineConfig(
        concurrency=3,
        batch_size=10,
        inter_task_delay_ms=0,
        task_timeout_ms=5000,
        fetch_timeout_ms=2000,
        fetch_max_retries=2,
        retry_base_delay_ms=0,
        domain_pacing_ms=0,
        cache_ttl_ms=60000,
        circuit_failure_threshold=3,
        render_timeout_ms=1000,
        qa_log_path=str(tmp_path / "qa_log.jsonl"),
        output_directory=str(tmp_path / "out"),
        sites_file=str(tmp_path / "sites.yaml"),
        log_level="WARNING",
    )
