"""
Shared fixtures.

Integration fixtures use real SQLite files through aiosqlite: a control store
for the registry and history, and source/target endpoints carrying the
business tables.
"""

from datetime import date, datetime

import pytest
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    insert,
    select,
)
from sqlalchemy.ext.asyncio import create_async_engine

from leaveadmin.core.config import DatabaseSettings
from leaveadmin.repositories.database_connection_repository import DatabaseConnectionRepository
from leaveadmin.repositories.switch_history_repository import SwitchHistoryRepository
from leaveadmin.repositories.system_config_repository import SystemConfigRepository
from leaveadmin.services.backup_generator import BackupGenerator
from leaveadmin.services.credential_cipher import CredentialCipher
from leaveadmin.services.database_manager import DatabaseManager
from leaveadmin.services.database_switch_service import DatabaseSwitchService
from leaveadmin.services.endpoint_connector import EndpointConnector
from leaveadmin.services.maintenance_gate import MaintenanceGate
from leaveadmin.services.sequence_sync import SequenceSynchronizer

TEST_KEY = "8f1c3a5e7b9d0f2a4c6e8a0b2d4f6a8c0e2a4c6e8b0d2f4a6c8e0a2c4e6a8b0d"


def build_business_metadata(
    omit: tuple[str, ...] = (), extra_user_column: bool = False
) -> MetaData:
    """Business tables as deployed on an endpoint."""
    metadata = MetaData()

    user_columns = [
        Column("id", Integer, primary_key=True),
        Column("username", String(50), nullable=False),
        Column("full_name", Text, nullable=True),
        Column("is_active", Boolean, nullable=False, default=True),
        Column("created_at", DateTime, nullable=True),
    ]
    if extra_user_column:
        user_columns.append(Column("email", String(100), nullable=False))
    Table("users", metadata, *user_columns)

    Table(
        "semesters",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(50), nullable=False),
        Column("start_date", Date),
        Column("end_date", Date),
    )
    Table(
        "grades",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(50), nullable=False),
    )
    Table(
        "classes",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("grade_id", Integer, ForeignKey("grades.id")),
        Column("head_teacher_id", Integer, ForeignKey("users.id"), nullable=True),
        Column("name", String(50), nullable=False),
    )
    Table(
        "students",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("class_id", Integer, ForeignKey("classes.id")),
        Column("student_no", String(20), nullable=False),
        Column("name", String(50), nullable=False),
    )
    Table(
        "leave_records",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("student_id", Integer, ForeignKey("students.id")),
        Column("semester_id", Integer, ForeignKey("semesters.id")),
        Column("reason", Text),
        Column("leave_days", Integer, nullable=False),
        Column("approved", Boolean, nullable=True),
        Column("created_at", DateTime),
    )
    Table(
        "fee_configs",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("semester_id", Integer, ForeignKey("semesters.id")),
        Column("amount_cents", Integer, nullable=False),
    )
    Table(
        "notifications",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("user_id", Integer, ForeignKey("users.id")),
        Column("message", Text, nullable=False),
        Column("is_read", Boolean, nullable=False, default=False),
    )
    Table(
        "system_config",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("config_key", String(255), nullable=False, unique=True),
        Column("config_value", Text),
        Column("description", Text),
        Column("updated_at", DateTime),
    )
    Table(
        "operation_logs",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("user_id", Integer, ForeignKey("users.id"), nullable=True),
        Column("action", String(100), nullable=False),
        Column("details", JSON),
        Column("created_at", DateTime),
        sqlite_autoincrement=True,
    )

    for name in omit:
        metadata.remove(metadata.tables[name])
    return metadata


BUSINESS_METADATA = build_business_metadata()

SAMPLE_USERS = [
    {
        "id": 1,
        "username": "admin",
        "full_name": None,
        "is_active": True,
        "created_at": datetime(2024, 1, 15, 8, 30, 0),
    },
    {
        "id": 3,
        "username": "teacher",
        "full_name": "Mary O'Brien; -- head of year\nSecond line",
        "is_active": False,
        "created_at": datetime(2024, 2, 1, 12, 0, 5, 250000),
    },
    {
        "id": 7,
        "username": "clerk",
        "full_name": "it's a 'quoted' name",
        "is_active": True,
        "created_at": None,
    },
]


async def create_endpoint(path, metadata: MetaData = BUSINESS_METADATA) -> str:
    """Create a SQLite endpoint with ``metadata`` and return its plain URL."""
    url = f"sqlite:///{path}"
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    await engine.dispose()
    return url


async def seed_sample_data(url: str) -> None:
    """Populate an endpoint with a small, type-diverse data set."""
    tables = BUSINESS_METADATA.tables
    engine = create_async_engine(url.replace("sqlite://", "sqlite+aiosqlite://", 1))
    async with engine.begin() as conn:
        await conn.execute(insert(tables["users"]), SAMPLE_USERS)
        await conn.execute(
            insert(tables["semesters"]),
            [{"id": 1, "name": "2024 Spring", "start_date": date(2024, 2, 1), "end_date": None}],
        )
        await conn.execute(insert(tables["grades"]), [{"id": 1, "name": "Grade 1"}])
        await conn.execute(
            insert(tables["classes"]),
            [{"id": 1, "grade_id": 1, "head_teacher_id": 3, "name": "1-A"}],
        )
        await conn.execute(
            insert(tables["students"]),
            [{"id": 1, "class_id": 1, "student_no": "S001", "name": "Li Lei"}],
        )
        await conn.execute(
            insert(tables["leave_records"]),
            [
                {
                    "id": 1,
                    "student_id": 1,
                    "semester_id": 1,
                    "reason": "Fever; doctor's note attached",
                    "leave_days": 2,
                    "approved": None,
                    "created_at": datetime(2024, 3, 4, 9, 15, 0),
                }
            ],
        )
        await conn.execute(
            insert(tables["fee_configs"]), [{"id": 1, "semester_id": 1, "amount_cents": 120000}]
        )
        await conn.execute(
            insert(tables["notifications"]),
            [{"id": 1, "user_id": 1, "message": "Welcome", "is_read": False}],
        )
        await conn.execute(
            insert(tables["system_config"]),
            [
                {
                    "id": 1,
                    "config_key": "school.name",
                    "config_value": "Sunrise Primary",
                    "description": None,
                    "updated_at": datetime(2024, 1, 1, 0, 0, 0),
                }
            ],
        )
        await conn.execute(
            insert(tables["operation_logs"]),
            [
                {
                    "id": 1,
                    "user_id": 1,
                    "action": "login",
                    "details": {"ip": "10.0.0.1", "tags": ["web"]},
                    "created_at": datetime(2024, 3, 4, 9, 0, 0),
                }
            ],
        )
    await engine.dispose()


async def fetch_rows(url: str, table_name: str) -> list[dict]:
    """All rows of a business table ordered by id."""
    table = BUSINESS_METADATA.tables[table_name]
    engine = create_async_engine(url.replace("sqlite://", "sqlite+aiosqlite://", 1))
    async with engine.connect() as conn:
        result = await conn.execute(select(table).order_by(table.c.id))
        rows = [dict(row) for row in result.mappings()]
    await engine.dispose()
    return rows


@pytest.fixture
def business_metadata():
    """Business table definitions shared by endpoint fixtures."""
    return BUSINESS_METADATA


@pytest.fixture
async def control_store(tmp_path):
    """Initialized control store on a SQLite file."""
    manager = DatabaseManager(DatabaseSettings(url=f"sqlite:///{tmp_path / 'control.db'}"))
    await manager.initialize()

    yield manager

    await manager.close()


@pytest.fixture
def cipher():
    """Cipher with a fixed test key."""
    return CredentialCipher(TEST_KEY)


@pytest.fixture
def connection_repository(control_store, cipher):
    return DatabaseConnectionRepository(control_store.session_factory, cipher)


@pytest.fixture
def history_repository(control_store):
    return SwitchHistoryRepository(control_store.session_factory)


@pytest.fixture
def config_repository(control_store):
    return SystemConfigRepository(control_store.session_factory)


@pytest.fixture
def maintenance_gate(config_repository):
    return MaintenanceGate(config_repository)


@pytest.fixture
def backup_generator(tmp_path):
    return BackupGenerator(tmp_path / "backups" / "db-switch", SequenceSynchronizer())


@pytest.fixture
def switch_service(
    connection_repository, history_repository, maintenance_gate, backup_generator
):
    """Switch service wired to real repositories and SQLite endpoints."""
    return DatabaseSwitchService(
        connection_repository=connection_repository,
        history_repository=history_repository,
        maintenance_gate=maintenance_gate,
        backup_generator=backup_generator,
        endpoint_connector=EndpointConnector(connect_timeout_seconds=5.0),
        sequence_synchronizer=SequenceSynchronizer(),
    )


@pytest.fixture
def make_endpoint(tmp_path):
    """Factory creating SQLite endpoints under the test's temporary directory."""

    async def _make(name: str, metadata: MetaData = BUSINESS_METADATA) -> str:
        return await create_endpoint(tmp_path / name, metadata)

    return _make


@pytest.fixture
def read_rows():
    """Coroutine function returning a table's rows as dicts."""
    return fetch_rows


@pytest.fixture
async def source_url(make_endpoint):
    """Seeded source endpoint."""
    url = await make_endpoint("source.db")
    await seed_sample_data(url)
    return url


@pytest.fixture
async def target_url(make_endpoint):
    """Empty target endpoint with matching tables."""
    return await make_endpoint("target.db")


@pytest.fixture
async def registered(connection_repository, source_url, target_url):
    """Source registered and active, target registered and inactive."""
    source = await connection_repository.create_connection(
        name="Primary", connection_string=source_url, environment="production"
    )
    target = await connection_repository.create_connection(
        name="Replacement", connection_string=target_url, environment="staging"
    )
    await connection_repository.set_active(source["id"], actor_id=1)
    return {"source_id": source["id"], "target_id": target["id"]}


@pytest.fixture
def sample_users():
    """Users seeded on the source endpoint."""
    return SAMPLE_USERS


@pytest.fixture
def metadata_factory():
    """Builder for endpoint schemas that differ from the default."""
    return build_business_metadata


@pytest.fixture
def seed_endpoint():
    """Coroutine function seeding an endpoint with the sample data set."""
    return seed_sample_data
