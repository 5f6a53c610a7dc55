"""Service registration for the database switchover services."""

import logging

from leaveadmin.core.config import Settings
from leaveadmin.core.service_registry import ServiceRegistry
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

logger = logging.getLogger(__name__)


async def register_database_switch_services(
    service_registry: ServiceRegistry, settings: Settings
) -> None:
    """
    Build and register the switchover stack.

    Repositories receive the control store session factory; services receive
    repositories. Nothing reaches for global state.
    """

    # ========== Control store ==========

    database_manager = DatabaseManager(settings.database)
    await database_manager.initialize()
    service_registry.register_service(
        "database_manager", database_manager, shutdown=database_manager.close
    )

    cipher = CredentialCipher(settings.security.db_encryption_key)
    service_registry.register_service("credential_cipher", cipher)

    # ========== Repositories ==========

    session_factory = database_manager.session_factory
    connection_repository = DatabaseConnectionRepository(session_factory, cipher)
    history_repository = SwitchHistoryRepository(session_factory)
    config_repository = SystemConfigRepository(session_factory)

    service_registry.register_service("database_connection_repository", connection_repository)
    service_registry.register_service("switch_history_repository", history_repository)
    service_registry.register_service("system_config_repository", config_repository)

    # ========== Services ==========

    maintenance_gate = MaintenanceGate(config_repository)
    sequence_synchronizer = SequenceSynchronizer()
    backup_generator = BackupGenerator(
        settings.switchover.get_backup_dir(), sequence_synchronizer
    )
    endpoint_connector = EndpointConnector(settings.switchover.connect_timeout_seconds)

    service_registry.register_service("maintenance_gate", maintenance_gate)
    service_registry.register_service("backup_generator", backup_generator)
    service_registry.register_service("endpoint_connector", endpoint_connector)
    service_registry.register_service(
        "database_switch_service",
        DatabaseSwitchService(
            connection_repository=connection_repository,
            history_repository=history_repository,
            maintenance_gate=maintenance_gate,
            backup_generator=backup_generator,
            endpoint_connector=endpoint_connector,
            sequence_synchronizer=sequence_synchronizer,
            default_batch_size=settings.switchover.default_batch_size,
            default_tables=settings.switchover.default_tables,
        ),
    )

    logger.info("Database switchover services registered")
