"""Database client factory.

Profiles come from ``db.toml`` in the working directory.  The active
profile is chosen by:

1. ``{env_prefix}DB_PROFILE`` env var (for initial connect or CI/CD)
2. ``.db-profile`` lock file written by a successful ``db-mirror connect``

Sync runs name two profiles (source and destination) explicitly or via the
``[sync]`` section of ``db.toml``.
"""

import os
from pathlib import Path
from urllib.parse import quote

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from db_mirror.adapters import AsyncPostgresAdapter
from db_mirror.catalog import list_tables
from db_mirror.config import DatabaseConfig, DatabaseProfile, load_db_config
from db_mirror.config.models import ConnectionResult

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection check.
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Args:
        env_prefix: Prefix for the env var, e.g. ``"APP_"`` reads
            ``APP_DB_PROFILE``.

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_prefix}DB_PROFILE=<name> db-mirror connect\n"
        "or:  db-mirror connect <name>"
    )


def _lookup_profile(config: DatabaseConfig, profile_name: str) -> DatabaseProfile:
    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )
    return config.profiles[profile_name]


def get_active_profile(env_prefix: str = "") -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in db.toml
    """
    profile_name = get_active_profile_name(env_prefix)
    config = load_db_config()
    return profile_name, _lookup_profile(config, profile_name)


# ============================================================================
# URLs
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    The password is percent-encoded so that ``@`` or ``/`` in it cannot
    break the URL.
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def mask_url(url: str) -> str:
    """Return ``url`` with the password replaced by ``***`` for logs and output."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable url>"


def resolve_sync_profiles(
    source: str | None = None,
    destination: str | None = None,
    config: DatabaseConfig | None = None,
) -> tuple[str, str]:
    """Pick source and destination profile names.

    Explicit arguments win over the ``[sync]`` section of db.toml.

    Raises:
        ProfileNotFoundError: If either side is not configured anywhere
        KeyError: If a name is not a profile in db.toml
    """
    config = config or load_db_config()
    source = source or config.sync.source
    destination = destination or config.sync.destination
    if not source or not destination:
        raise ProfileNotFoundError(
            "Sync needs a source and a destination profile.\n"
            "Pass --from/--to or set [sync] source/destination in db.toml."
        )
    _lookup_profile(config, source)
    _lookup_profile(config, destination)
    return source, destination


# ============================================================================
# Connection and Validation
# ============================================================================


async def connect_and_validate(
    profile_name: str | None = None,
    env_prefix: str = "",
    validate_only: bool = False,
) -> ConnectionResult:
    """Connect to a profile's database and check that every catalog table exists.

    On success the profile is written to the lock file (unless
    ``validate_only``), so later commands use it by default.

    Example:
        >>> result = await connect_and_validate("dev")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
        ... else:
        ...     print(f"Failed: {result.error}")
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    try:
        config = load_db_config()
        profile = _lookup_profile(config, profile_name)
    except FileNotFoundError as e:
        return ConnectionResult(success=False, error=str(e))
    except KeyError:
        available = ", ".join(config.profiles.keys())
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Profile '{profile_name}' not found. Available: {available}",
        )

    adapter = AsyncPostgresAdapter(database_url=resolve_url(profile))
    try:
        await adapter.test_connection()
        existing = await adapter.table_names()
    except Exception as e:
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            target=adapter.target,
            error=f"Failed to connect to database: {e}",
        )
    finally:
        await adapter.close()

    missing = [t.name for t in list_tables() if t.name not in existing]
    if missing:
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            target=adapter.target,
            missing_tables=missing,
            error=f"Database is missing {len(missing)} catalog tables",
        )

    if not validate_only:
        write_profile_lock(profile_name)

    return ConnectionResult(success=True, profile_name=profile_name, target=adapter.target)


# ============================================================================
# Database Adapter Factory
# ============================================================================


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
) -> AsyncPostgresAdapter:
    """Create an adapter; the caller owns it and must ``await adapter.close()``.

    Resolution order:

    1. ``database_url`` if given
    2. ``profile_name`` looked up in db.toml
    3. the active profile (env var, then lock file)

    Raises:
        ProfileNotFoundError: If no profile is configured
        KeyError: If the profile is not in db.toml

    Example:
        >>> adapter = await get_adapter("production")
        >>> rows = await adapter.select_all("users")
        >>> await adapter.close()
    """
    if database_url is not None:
        return AsyncPostgresAdapter(database_url=database_url)

    if profile_name is None:
        _, profile = get_active_profile(env_prefix)
    else:
        profile = _lookup_profile(load_db_config(), profile_name)
    return AsyncPostgresAdapter(database_url=resolve_url(profile))
