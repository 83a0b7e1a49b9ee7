"""
Test configuration and fixtures for snippet-integrity tests.
"""
import pytest

from snippet_integrity.config import IntegrityConfig
from snippet_integrity.core import (
    DependencyValidator,
    StoreDuplicateValidator,
    StoreSnapshot,
    ValidationContext,
    ValidationWorkflowManager,
)


@pytest.fixture
def basic_snapshot():
    """One store with a single snippet that has no dependencies."""
    return StoreSnapshot.from_dict({"store1": [{"id": "s1", "trigger": ";t", "dependencies": []}]})


@pytest.fixture
def cross_store_snapshot():
    """Two stores; personal snippets reference team snippets and each other."""
    return StoreSnapshot.from_dict({
        "personal": {
            "displayName": "Personal",
            "snippets": [
                {"id": "sig", "trigger": ";sig", "content": "Regards", "dependencies": ["team:;addr:addr"]},
                {"id": "intro", "trigger": ";intro", "dependencies": ["personal:;sig:sig"]},
                {"id": "plain", "trigger": ";plain", "dependencies": []},
            ],
        },
        "team": {
            "displayName": "Team",
            "snippets": [
                {"id": "addr", "trigger": ";addr", "content": "1 Main St", "dependencies": []},
            ],
        },
    })


@pytest.fixture
def cyclic_snapshot():
    """A -> B -> A within one store, plus an unrelated snippet."""
    return StoreSnapshot.from_dict({
        "s": [
            {"id": "A", "trigger": ";a", "dependencies": ["s:;b:B"]},
            {"id": "B", "trigger": ";b", "dependencies": ["s:;a:A"]},
            {"id": "C", "trigger": ";c", "dependencies": []},
        ],
    })


@pytest.fixture
def validator():
    """Fresh validator per test."""
    return DependencyValidator()


@pytest.fixture
def duplicate_validator():
    return StoreDuplicateValidator()


@pytest.fixture
def workflow(validator, duplicate_validator):
    return ValidationWorkflowManager(validator, duplicate_validator=duplicate_validator)


@pytest.fixture
def make_context():
    """Factory for validation contexts over a snapshot."""
    def _make(snapshot, current_store="", **kwargs):
        return ValidationContext(snapshot=snapshot, current_store=current_store, **kwargs)
    return _make


@pytest.fixture
def default_config():
    return IntegrityConfig()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Fixture providing a temporary directory for config testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir
