"""Tests for the database engine and session management module."""

from unittest.mock import MagicMock, patch

import pytest

import location_api.core.database as db_module
from location_api.core.database import dispose_engine, get_session_factory, init_engine


class TestGetSessionFactory:
    """Tests for get_session_factory."""

    def test_raises_when_not_initialized(self) -> None:
        original_factory = db_module._session_factory
        db_module._session_factory = None
        try:
            with pytest.raises(RuntimeError, match="Session factory not initialized"):
                get_session_factory()
        finally:
            db_module._session_factory = original_factory

    async def test_factory_bound_to_initialized_engine(self) -> None:
        engine = init_engine("sqlite+aiosqlite:///:memory:")
        try:
            factory = get_session_factory()
            async with factory() as session:
                assert session.bind is engine
        finally:
            await dispose_engine()


class TestInitEngine:
    """Tests for init_engine."""

    def test_postgres_gets_pool_defaults(self) -> None:
        with patch("location_api.core.database.create_async_engine", return_value=MagicMock()) as mock_create:
            init_engine("postgresql+asyncpg://localhost/db", echo=False)
            mock_create.assert_called_once_with(
                "postgresql+asyncpg://localhost/db", echo=False, pool_size=5, max_overflow=5
            )

    def test_sqlite_skips_pool_defaults(self) -> None:
        with patch("location_api.core.database.create_async_engine", return_value=MagicMock()) as mock_create:
            init_engine("sqlite+aiosqlite:///:memory:")
            mock_create.assert_called_once_with("sqlite+aiosqlite:///:memory:")

    def test_schema_sets_search_path(self) -> None:
        with patch("location_api.core.database.create_async_engine", return_value=MagicMock()) as mock_create:
            init_engine("postgresql+asyncpg://localhost/db", schema="pr_42")
            _, kwargs = mock_create.call_args
            assert kwargs["connect_args"] == {"server_settings": {"search_path": "pr_42,public"}}

    def test_schema_rejects_non_dict_connect_args(self) -> None:
        with pytest.raises(TypeError, match="connect_args"):
            init_engine("postgresql+asyncpg://localhost/db", schema="pr_42", connect_args="bad")


class TestDisposeEngine:
    """Tests for dispose_engine."""

    async def test_disposes_engine(self) -> None:
        init_engine("sqlite+aiosqlite:///:memory:")
        await dispose_engine()
        assert db_module._engine is None
        assert db_module._session_factory is None

    async def test_dispose_without_engine_is_noop(self) -> None:
        db_module._engine = None
        db_module._session_factory = None
        await dispose_engine()
        assert db_module._engine is None
