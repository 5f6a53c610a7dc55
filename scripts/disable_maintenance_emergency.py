#!/usr/bin/env python3
"""
EMERGENCY SCRIPT: Disable Maintenance Mode

Clears the persisted maintenance flag in the control store. Run this if a
database switch was interrupted (process killed, host rebooted) and ordinary
users are still being answered with 503.
"""

import asyncio
import sys

from dotenv import load_dotenv

from leaveadmin.core.config import get_settings
from leaveadmin.repositories.system_config_repository import SystemConfigRepository
from leaveadmin.services.credential_cipher import mask_connection_string
from leaveadmin.services.database_manager import DatabaseManager
from leaveadmin.services.maintenance_gate import MAINTENANCE_MODE_KEY, MaintenanceGate


async def disable_maintenance() -> bool:
    """Disable maintenance mode in the configured control store."""
    settings = get_settings()
    database_manager = DatabaseManager(settings.database)
    try:
        await database_manager.initialize()
        gate = MaintenanceGate(SystemConfigRepository(database_manager.session_factory))

        was_enabled = await gate.is_enabled()
        await gate.disable()
    finally:
        await database_manager.close()

    print("SUCCESS: Maintenance mode has been DISABLED")
    print(f"   Control store: {mask_connection_string(settings.database.url)}")
    print(f"   {MAINTENANCE_MODE_KEY} was {'true' if was_enabled else 'already false'}")
    print("\nNext steps:")
    print("   1. Check /api/database/history for the interrupted switch attempt")
    print("   2. Verify the active connection with /api/database/status")
    return True


def main() -> int:
    load_dotenv()
    print("=" * 60)
    print("EMERGENCY: Disabling Maintenance Mode")
    print("=" * 60)
    try:
        asyncio.run(disable_maintenance())
    except Exception as e:
        print(f"ERROR: Failed to disable maintenance mode: {e}")
        print("\nManual fix:")
        print(
            "   UPDATE system_config SET config_value = 'false' "
            f"WHERE config_key = '{MAINTENANCE_MODE_KEY}';"
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
