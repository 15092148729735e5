from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib  # pyright: ignore[reportMissingImports]


SETTINGS_DIRECTORY = '.dagnav'

# Settings key constants
SETTING_FIXTURES_DIR = 'fixtures.dir'
SETTING_INDEX_PATH = 'index.path'
SETTING_LOGGING_PATH = 'logging.path'
SETTING_LOGGING_LEVEL = 'logging.level'


class DagnavSettings:
    """Settings manager for fixture navigation.

    Provides a read-only key-value interface to access settings from
    .dagnav/settings.toml. Paths in settings are relative to the directory
    holding .dagnav (the settings root).

    Example:
        settings = DagnavSettings(project_path)
        fixtures_dir = settings.get_path(SETTING_FIXTURES_DIR)
        level = settings.get(SETTING_LOGGING_LEVEL, 'INFO')
    """

    def __init__(self, root: Path | None):
        """Initialize settings from TOML file.

        Loads settings from <root>/.dagnav/settings.toml if it exists. If root is
        None or the file does not exist, an empty settings dictionary is used, and
        all get() calls will return their defaults.

        Args:
            root: Directory containing .dagnav, or None for empty settings
        """
        self._root = root
        self._settings = {}

        if root is not None:
            settings_file = root / SETTINGS_DIRECTORY / 'settings.toml'
            if settings_file.exists():
                with open(settings_file, 'rb') as f:
                    self._settings = tomllib.load(f)

    @property
    def root(self) -> Path | None:
        return self._root

    def get(self, key: str, default=None):
        """Get a setting value by key with optional default.

        Dot notation accesses nested tables ('index.path' reads
        settings['index']['path']). Returns the default value if the key path
        does not exist or if any intermediate value is not a table.

        Examples:
            >>> settings.get(SETTING_INDEX_PATH)
            '.dagnav/index'
            >>> settings.get('nonexistent.key', 'fallback')
            'fallback'
        """
        keys = key.split('.')
        value = self._settings

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_path(self, key: str) -> Path | None:
        """Get a path setting resolved against the settings root."""
        value = self.get(key)
        if value is None:
            return None

        path = Path(value).expanduser()
        if not path.is_absolute() and self._root is not None:
            path = self._root / path
        return path
