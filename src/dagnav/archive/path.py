"""Path utilities for locating settings and fixture archives."""

import os
from pathlib import Path

from .settings import DagnavSettings, SETTINGS_DIRECTORY, SETTING_FIXTURES_DIR

FIXTURES_ENVIRONMENT_VARIABLE = 'DAGNAV_FIXTURES'
DEFAULT_FIXTURES_DIRECTORY = 'fixtures'


def find_settings_root(start_path: Path) -> Path | None:
    """Find the nearest ancestor directory containing a .dagnav subdirectory.

    Args:
        start_path: The file or directory to search upward from

    Returns:
        The directory where .dagnav is a direct child, or None if no ancestor has one
    """
    # os.path.normpath() removes . and .. without following symlinks
    current = start_path if start_path.is_absolute() else Path.cwd() / start_path
    current = Path(os.path.normpath(str(current)))

    while True:
        if (current / SETTINGS_DIRECTORY).is_dir():
            return current

        parent = current.parent
        if parent == current:
            return None
        current = parent


def get_fixtures_dir(settings: DagnavSettings | None = None) -> Path:
    """Determine the directory fixture archives are looked up in.

    Order of precedence: the DAGNAV_FIXTURES environment variable, the
    fixtures.dir setting, the fixtures directory next to .dagnav, and finally
    ./fixtures under the working directory.
    """
    from_environment = os.environ.get(FIXTURES_ENVIRONMENT_VARIABLE)
    if from_environment:
        return Path(from_environment)

    if settings is not None:
        configured = settings.get_path(SETTING_FIXTURES_DIR)
        if configured is not None:
            return configured
        if settings.root is not None:
            return settings.root / DEFAULT_FIXTURES_DIRECTORY

    return Path.cwd() / DEFAULT_FIXTURES_DIRECTORY


def resolve_fixture_path(file: str | os.PathLike, fixtures_dir: Path) -> Path:
    """Resolve a fixture name to an archive path.

    Names starting with ./ and absolute paths are used as given; anything else
    is looked up in the fixtures directory.

    Examples:
        >>> resolve_fixture_path('dir.car', Path('/fixtures'))
        PosixPath('/fixtures/dir.car')
        >>> resolve_fixture_path('./local.car', Path('/fixtures'))
        PosixPath('local.car')
    """
    name = os.fspath(file)
    if name.startswith('./') or os.path.isabs(name):
        return Path(name)
    return fixtures_dir / name
