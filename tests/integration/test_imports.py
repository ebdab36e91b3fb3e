"""Test that all modules can be imported without circular import errors."""

import importlib

import pytest

MODULES = [
    "ispflow",
    "ispflow.background",
    "ispflow.config",
    "ispflow.currency",
    "ispflow.events",
    "ispflow.handlers",
    "ispflow.handlers.lifecycle",
    "ispflow.locks",
    "ispflow.observability",
    "ispflow.outbox",
    "ispflow.persistence",
    "ispflow.persistence.database",
    "ispflow.providers",
    "ispflow.retry",
    "ispflow.runtime",
    "ispflow.serialization",
    "ispflow.statemachine",
    "ispflow.workflows",
]


@pytest.mark.parametrize("module", MODULES)
def test_module_imports(module: str) -> None:
    assert importlib.import_module(module) is not None


def test_handlers_init_does_not_pull_in_workflows():
    """The handler registry must stay importable from the dispatcher without workflows."""
    import inspect

    from ispflow import handlers

    source = inspect.getsource(handlers)
    assert "ispflow.handlers.lifecycle import" not in source


def test_persistence_init_does_not_import_database():
    """Database depends on the outbox store, which depends on persistence."""
    import inspect

    from ispflow import persistence

    source = inspect.getsource(persistence)
    assert "from ispflow.persistence.database import" not in source


def test_top_level_import_matches_handlers_import():
    """Verify top-level and handlers imports resolve to same objects."""
    from ispflow import handles
    from ispflow.handlers import handles as h2

    assert handles is h2


def test_top_level_runtime_is_runtime_module_class():
    from ispflow import LifecycleRuntime
    from ispflow.runtime import LifecycleRuntime as runtime_class

    assert LifecycleRuntime is runtime_class
