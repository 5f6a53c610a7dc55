#!/usr/bin/env python3
"""Generate a key for encrypting stored database connection strings."""

from leaveadmin.services.credential_cipher import generate_key


def main() -> None:
    key = generate_key()
    print("Add this to your environment or .env file:")
    print()
    print(f"LEAVEADMIN_SECURITY__DB_ENCRYPTION_KEY={key}")
    print()
    print("Keep it secret. Connections registered under one key cannot be read with another.")


if __name__ == "__main__":
    main()
