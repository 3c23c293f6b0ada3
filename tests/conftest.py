"""Pytest configuration and shared fixtures."""

import json
import os
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment
os.environ.setdefault("TASKHERO_DEBUG", "true")
os.environ.setdefault("TASKHERO_LOG_LEVEL", "DEBUG")


@pytest.fixture
def mock_settings() -> Generator:
    """Clear cached settings around a test."""
    from taskhero.core.config import clear_settings_cache

    # Clear any cached settings
    clear_settings_cache()

    yield

    # Clear again after test
    clear_settings_cache()


@pytest.fixture
def sample_tasks() -> list:
    """Provide a small project: one requirement, a parent in progress."""
    from taskhero.scheduling.models import WorkItem

    source = {"prdId": "prd_001", "fileName": "auth.md"}
    return [
        WorkItem.model_validate(
            {
                "id": 1,
                "title": "Initialize project",
                "description": "Set up project structure",
                "status": "done",
                "priority": "high",
                "dependencies": [],
                "prdSource": source,
            }
        ),
        WorkItem.model_validate(
            {
                "id": 2,
                "title": "Create User model",
                "description": "Define the User model",
                "status": "in-progress",
                "priority": "medium",
                "dependencies": [1],
                "prdSource": source,
                "subtasks": [
                    {"id": 1, "title": "Add fields", "status": "done", "dependencies": []},
                    {"id": 2, "title": "Add validation", "status": "pending", "dependencies": [1]},
                    {"id": 3, "title": "Add migrations", "status": "pending", "dependencies": [2]},
                ],
            }
        ),
        WorkItem.model_validate(
            {
                "id": 3,
                "title": "Implement auth service",
                "description": "Create authentication service",
                "status": "pending",
                "priority": "high",
                "dependencies": [2],
                "prdSource": source,
            }
        ),
        WorkItem.model_validate(
            {
                "id": 4,
                "title": "Write README",
                "description": "Document the project",
                "status": "pending",
                "priority": "low",
                "dependencies": [1],
            }
        ),
    ]


@pytest.fixture
def sample_requirements() -> list:
    """Provide requirement documents matching ``sample_tasks``."""
    from taskhero.scheduling.models import RequirementDocument

    return [
        RequirementDocument(id="prd_001", title="Authentication", file_name="auth.md", status="pending"),
        RequirementDocument(id="prd_002", title="Billing", file_name="billing.md", status="pending"),
    ]


@pytest.fixture
def complex_description() -> str:
    """Provide a long, structured task description."""
    return (
        "Build the notification platform. It must support email and SMS. "
        "Messages are queued for delivery. Retries use exponential backoff. "
        "Templates are rendered per locale. Delivery status is tracked. "
        "Operators can replay failed messages.\n"
        "- Design the database schema for notifications\n"
        "- Implement the delivery service with async workers\n"
        "- Configure the message queue and caching layer\n"
        "1. Create the API module\n"
        "2. Add integration tests for multiple providers\n"
    )


@pytest.fixture
def mock_decomposition_service() -> MagicMock:
    """Provide a mock decomposition service."""
    from taskhero.scheduling.models import ComplexityReport, WorkItem

    async def decompose(item, directive):
        return [
            WorkItem(id=i, title=f"{item.title} part {i}")
            for i in range(1, directive.num_subtasks + 1)
        ]

    service = MagicMock()
    service.analyze = AsyncMock(return_value=ComplexityReport())
    service.decompose = AsyncMock(side_effect=decompose)
    return service


@pytest.fixture
def project_dir(tmp_path: Path, sample_tasks: list, sample_requirements: list) -> Path:
    """Write ``sample_tasks`` and ``sample_requirements`` in project layout."""
    tasks_file = tmp_path / ".taskmaster" / "tasks" / "tasks.json"
    tasks_file.parent.mkdir(parents=True)
    tasks_file.write_text(
        json.dumps({"tasks": [t.to_dict() for t in sample_tasks]}, indent=2),
        encoding="utf-8",
    )

    prds_file = tmp_path / ".taskmaster" / "prd" / "prds.json"
    prds_file.parent.mkdir(parents=True)
    prds_file.write_text(
        json.dumps(
            {
                "prds": [r.to_dict() for r in sample_requirements],
                "metadata": {"lastUpdated": "2024-01-01T00:00:00", "totalPrds": 2},
            },
            indent=2,
        ),
        encoding="utf-8",
    )
    return tmp_path


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
