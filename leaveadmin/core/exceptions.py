"""
Core exceptions for the backend application.

The switchover engine raises the ``SwitchoverError`` family. Request
validation errors are reported back to the caller before any state change;
everything raised after that point is caught by the engine, which disables
maintenance mode and records a failed switch attempt.
"""


class ServiceNotAvailableError(Exception):
    """
    Raised when a requested service has not been registered.

    Results in a 503 Service Unavailable response.
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(f"Service '{service_name}' is not available in this deployment")


class ConfigurationError(Exception):
    """Raised at startup when settings are present but unusable."""


class CredentialDecryptionError(Exception):
    """Raised when a stored connection string is malformed or fails authentication."""


class ActiveConnectionDeletionError(Exception):
    """Raised when deleting the connection that currently serves traffic."""

    def __init__(self, connection_id: int):
        self.connection_id = connection_id
        super().__init__(
            f"Connection {connection_id} is active; switch to another database before deleting it"
        )


class SwitchoverError(Exception):
    """Base class for database switchover failures."""


class RequestValidationError(SwitchoverError):
    """A switch request was rejected before any state changed."""


class SameTargetError(RequestValidationError):
    """The requested target is already the active connection."""

    def __init__(self, connection_id: int):
        self.connection_id = connection_id
        super().__init__("Target database is the same as the current database")


class ConnectionNotFoundError(RequestValidationError):
    """No connection record exists for the given id."""

    def __init__(self, connection_id: int):
        self.connection_id = connection_id
        super().__init__(f"Database connection {connection_id} does not exist")


class UnknownTableError(RequestValidationError):
    """One or more requested tables are not in the allow-list."""

    def __init__(self, tables: list[str]):
        self.tables = tables
        super().__init__(f"Unknown tables requested: {', '.join(tables)}")


class ConnectivityError(SwitchoverError):
    """The target endpoint could not be reached."""


class SchemaMismatchError(SwitchoverError):
    """A table expected on the target endpoint is missing."""

    def __init__(self, missing_tables: list[str]):
        self.missing_tables = missing_tables
        super().__init__(
            f"Target database is missing tables: {', '.join(missing_tables)}. "
            "Create the table structure on the target before switching"
        )


class TransferError(SwitchoverError):
    """Copying rows from source to target failed."""

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Data transfer failed for table {table}: {reason}")


class MigrationValidationError(SwitchoverError):
    """Post-transfer validation found the target inconsistent with the source."""

    def __init__(self, mismatches: list[str]):
        self.mismatches = mismatches
        super().__init__(f"Post-migration validation failed: {'; '.join(mismatches)}")


class RestoreError(SwitchoverError):
    """Replaying a backup script failed; the restore transaction was rolled back."""
