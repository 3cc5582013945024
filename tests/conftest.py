import os
import sys

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from core.schema_validator import GraphSchema  # noqa: E402
from data_access.staging_store import StagingStore  # noqa: E402
from tests.fakes.fake_age_manager import FakeAgeManager  # noqa: E402

SCHEMA_DEFINITION = {
    "version": "1.0.0",
    "vertices": {
        "Person": {
            "properties": {
                "id": {"type": "string"},
                "name": {"type": "string", "stringConstraints": {"minLength": 1}},
                "age": {"type": "integer", "nullable": True, "numberConstraints": {"minimum": 0}},
            },
            "required": ["id", "name"],
        },
        "Company": {
            "properties": {
                "id": {"type": "string"},
                "name": {"type": "string"},
            },
            "required": ["id", "name"],
        },
    },
    "edges": {
        "KNOWS": {
            "fromVertex": "Person",
            "toVertex": "Person",
            "properties": {"since": {"type": "integer"}},
        },
        "WORKS_AT": {
            "fromVertex": "Person",
            "toVertex": "Company",
            "properties": {"role": {"type": "string"}},
        },
    },
}


@pytest.fixture
def schema() -> GraphSchema:
    return GraphSchema.from_dict(SCHEMA_DEFINITION)


@pytest.fixture
def fake_age() -> FakeAgeManager:
    return FakeAgeManager()


@pytest.fixture
def store(fake_age: FakeAgeManager) -> StagingStore:
    return StagingStore(fake_age, schema_name="age_schema_client", table_name="age_params")
