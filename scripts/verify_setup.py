#!/usr/bin/env python3
"""
Setup Verification Script

Validates configuration and external connections before running Slotbook.
Run this after setting up your .env file to ensure everything is configured correctly.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Load environment variables before settings are read
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def mask(value: str) -> str:
    return f"{value[:4]}...{value[-2:]}" if len(value) > 8 else "***"


def check_env_file() -> bool:
    """Check if .env file exists. Missing is fine: defaults apply."""
    exists = (project_root / ".env").exists()
    print_result(".env file", True, "Found" if exists else "Not found, using defaults")
    return exists


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "sqlalchemy",
        "aiosqlite",
        "httpx",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    print_result("Python packages", True, "All required packages installed")
    return True


def check_settings() -> bool:
    """Validate business settings and the catalog."""
    from slotbook.config import get_settings
    from slotbook.core.scheduling.catalog import get_catalog

    settings = get_settings()
    ok = True

    try:
        ZoneInfo(settings.timezone)
        print_result("TIMEZONE", True, settings.timezone)
    except ZoneInfoNotFoundError:
        print_result("TIMEZONE", False, f"Unknown time zone {settings.timezone!r}")
        ok = False

    try:
        catalog = get_catalog()
        print_result(
            "Catalog",
            True,
            f"{len(catalog.providers)} providers, {len(catalog.services)} services, "
            f"{len(catalog.time_slots)} slots",
        )
    except (OSError, ValueError, KeyError) as e:
        print_result("Catalog", False, f"{settings.catalog_path}: {e}")
        ok = False

    if settings.webhook_token:
        print_result("WEBHOOK_TOKEN", True, f"Set ({mask(settings.webhook_token)})")
    elif settings.is_development:
        print_result("WEBHOOK_TOKEN", True, "Not set (accepted in development only)")
    else:
        print_result("WEBHOOK_TOKEN", False, f"Required when APP_ENV={settings.app_env}")
        ok = False

    admins = settings.master_admin_ids_list
    print_result("MASTER_ADMIN_IDS", True, f"{len(admins)} master admins")
    return ok


async def check_database() -> bool:
    """Verify database connection and create/migrate tables."""
    from slotbook.config import get_settings
    from slotbook.infra.database import check_db_health, close_db, init_db

    url = get_settings().database_url
    try:
        await init_db()
        healthy = await check_db_health()
    except Exception as e:
        print_result("Database", False, str(e)[:60])
        return False
    finally:
        await close_db()

    print_result("Database", healthy, url.split("://", 1)[0])
    return healthy


async def check_calendar() -> bool:
    """Read today's busy intervals from every provider calendar."""
    from slotbook.core.scheduling.calendar_client import get_calendar_client
    from slotbook.core.scheduling.catalog import get_catalog

    client = get_calendar_client()
    if not client.is_configured:
        print_result("Calendar", True, "Not configured (bookings carry no calendar event)")
        return True

    ok = True
    try:
        for provider in get_catalog().providers:
            result = await client.list_busy_intervals(
                provider.calendar_id, client.clock.today_str()
            )
            if result.success:
                print_result(
                    f"Calendar {provider.name}", True, f"{len(result.intervals)} busy today"
                )
            else:
                print_result(f"Calendar {provider.name}", False, result.error_code)
                ok = False
    finally:
        await client.close()
    return ok


def check_messaging() -> bool:
    """Report the outbound messaging configuration."""
    from slotbook.infra.notifications import get_notification_service

    service = get_notification_service()
    if service.is_configured:
        print_result("Messaging", True, service.base_url)
    else:
        print_result("Messaging", True, "Not configured (messages are only logged)")
    return True


async def main() -> int:
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Slotbook - Setup Verification")
    print("="*60)

    print_header("Environment File")
    check_env_file()

    print_header("Python Dependencies")
    if not check_dependencies():
        print("\n  Install the project first: pip install -e .")
        return 1

    print_header("Settings")
    critical_failed = not check_settings()

    print_header("Service Connections")
    if not await check_database():
        critical_failed = True
    calendar_ok = await check_calendar()
    check_messaging()

    print_header("Summary")
    if critical_failed:
        print("\n  \033[91mCRITICAL: Some required checks failed.\033[0m")
        print("  Please fix the issues above before running the application.\n")
        return 1
    if not calendar_ok:
        print("\n  \033[93mWARNING: Calendar checks failed.\033[0m")
        print("  Bookings will be aborted while the calendar cannot be written.\n")
        return 0

    print("\n  \033[92mAll checks passed!\033[0m")
    print("  You can start the application with:")
    print("    uvicorn slotbook.main:app --reload\n")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
