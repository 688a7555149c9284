"""Unit test fixtures for isolated, fast test execution.

This conftest provides fixtures specifically for unit tests that:
- Run in complete isolation (no PowerShell, no real hub)
- Execute quickly (settle and poll delays are zero)
- Keep every file they write under pytest's tmp_path
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Generator

import pytest

from hub_port_mapper.core.mapping import CalibrationStore
from tests.infrastructure.mocks.device_mocks import (
    PRIMARY_CHIP,
    FakeDeviceSource,
    ScriptedPrompter,
    make_drive,
)


# =============================================================================
# Isolated Environment Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Run the test from a clean working directory with its own state dir.

    The calibration document defaults to the working directory, so this keeps
    tests from touching a real ``calibration.json``.
    """
    work_dir = tmp_path / "work"
    work_dir.mkdir()

    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("HUB_PORT_MAPPER_STATE_DIR", str(tmp_path / "state"))

    original_cwd = os.getcwd()
    os.chdir(work_dir)

    yield work_dir

    os.chdir(original_cwd)


# =============================================================================
# Calibration Fixtures
# =============================================================================

@pytest.fixture
def calibration_path(tmp_path: Path) -> Path:
    return tmp_path / "calibration.json"


@pytest.fixture
def store(calibration_path: Path) -> CalibrationStore:
    return CalibrationStore(calibration_path)


@pytest.fixture
def full_mappings() -> Dict[str, int]:
    """One key per physical port on the primary chip."""
    return {f"{PRIMARY_CHIP}|{port}": port for port in range(1, 8)}


@pytest.fixture
def write_calibration(calibration_path: Path) -> Callable[..., Path]:
    """Factory writing a raw calibration document to ``calibration_path``.

    Example:
        def test_loads(write_calibration):
            write_calibration(mappings={"9&238498F1|1": 1})
    """
    def factory(mappings: Dict[str, int] = None, **overrides: Any) -> Path:
        document: Dict[str, Any] = {
            "version": "1.0",
            "createdAt": "2025-01-12T09:30:00+00:00",
            "updatedAt": "2025-01-12T09:34:10+00:00",
            "hubInfo": {"primaryChip": PRIMARY_CHIP, "secondaryChip": None},
            "mappings": mappings if mappings is not None else {},
        }
        document.update(overrides)
        calibration_path.write_text(json.dumps(document), encoding="utf-8")
        return calibration_path

    return factory


# =============================================================================
# Mock Factory Fixtures
# =============================================================================

@pytest.fixture
def drive_factory() -> Callable[..., Any]:
    """Factory for drive observations (see ``make_drive``)."""
    return make_drive


@pytest.fixture
def prompter_factory() -> Callable[..., ScriptedPrompter]:
    def factory(*answers: str, token=None) -> ScriptedPrompter:
        return ScriptedPrompter(answers, token=token)
    return factory


@pytest.fixture
def source_factory() -> Callable[..., FakeDeviceSource]:
    def factory(*drive_results, hubs=None, default=None) -> FakeDeviceSource:
        return FakeDeviceSource(drive_results, hubs=hubs, default=default)
    return factory
