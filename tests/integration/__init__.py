"""
Integration tests for ispflow.

These tests run the persistence layer, workflows and dispatcher against a
throwaway SQLite database (via aiosqlite) created under pytest's tmp_path.
No external services are needed.

Run integration tests:
    pytest tests/integration/ -v

Run only the SQLite-backed tests:
    pytest tests/ -v -m sqlite
"""
