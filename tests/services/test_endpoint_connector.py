"""Tests for the endpoint connector."""

import pytest
from sqlalchemy.exc import ArgumentError

from leaveadmin.services.endpoint_connector import (
    EndpointConnector,
    connect_args_for,
    to_async_url,
)


class TestAsyncUrl:
    """Test async driver selection."""

    @pytest.mark.parametrize(
        ("connection_string", "drivername"),
        [
            ("postgresql://u:p@host/db", "postgresql+asyncpg"),
            ("postgres://u:p@host/db", "postgresql+asyncpg"),
            ("postgresql+psycopg2://u:p@host/db", "postgresql+asyncpg"),
            ("sqlite:///data/school.db", "sqlite+aiosqlite"),
            ("sqlite+aiosqlite:///data/school.db", "sqlite+aiosqlite"),
            ("mysql+aiomysql://u:p@host/db", "mysql+aiomysql"),
        ],
    )
    def test_driver_upgrade(self, connection_string, drivername):
        """Test plain URLs are upgraded to their async driver."""
        assert to_async_url(connection_string).drivername == drivername

    def test_sslmode_becomes_ssl(self):
        """Test libpq sslmode is passed to asyncpg as ssl."""
        url = to_async_url("postgresql://u:p@host/db?sslmode=require")

        assert url.query == {"ssl": "require"}

    def test_invalid_url(self):
        """Test unparseable strings raise ArgumentError."""
        with pytest.raises(ArgumentError):
            to_async_url("definitely not a url")

    def test_connect_args(self):
        """Test each driver receives its connect timeout argument."""
        assert connect_args_for(to_async_url("postgresql://h/db"), 5.0) == {"timeout": 5.0}
        assert connect_args_for(to_async_url("sqlite:///x.db"), 5.0) == {"timeout": 5.0}
        assert connect_args_for(to_async_url("mysql+aiomysql://h/db"), 5.0) == {
            "connect_timeout": 5
        }


class TestEndpointConnector:
    """Test suite for EndpointConnector."""

    @pytest.mark.asyncio
    async def test_probe_success(self, target_url):
        """Test probing a reachable SQLite endpoint."""
        # Execute
        result = await EndpointConnector(connect_timeout_seconds=5.0).probe(target_url)

        # Assert
        assert result["success"] is True
        assert result["status"] == "success"
        assert result["version"].startswith("sqlite ")
        assert result["latency_ms"] >= 0

    @pytest.mark.asyncio
    async def test_probe_failure(self, tmp_path):
        """Test probing an unreachable endpoint reports instead of raising."""
        # Execute
        result = await EndpointConnector(connect_timeout_seconds=5.0).probe(
            f"sqlite:///{tmp_path / 'missing' / 'db.sqlite'}"
        )

        # Assert
        assert result["success"] is False
        assert result["status"] == "failed"
        assert result["message"].startswith("Cannot connect to database")
        assert result["version"] is None

    @pytest.mark.asyncio
    async def test_probe_invalid_url(self):
        """Test an invalid URL is reported as a failed probe."""
        # Execute
        result = await EndpointConnector().probe("nonsense")

        # Assert
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_missing_tables(self, make_endpoint, metadata_factory):
        """Test tables absent from the endpoint are listed."""
        # Setup
        url = await make_endpoint("partial.db", metadata_factory(omit=("fee_configs",)))
        connector = EndpointConnector()

        # Execute
        async with connector.open(url) as engine:
            missing = await connector.missing_tables(engine, ["users", "fee_configs", "grades"])

        # Assert
        assert missing == ["fee_configs"]
