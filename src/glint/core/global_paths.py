"""Per-user directories for Glint.

Resolved through platformdirs so config and logs land where the host
platform expects them.
"""

import os
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "glint"


class GlobalPath:
    """Global path lookup for Glint directories."""

    @classmethod
    def data(cls) -> str:
        return user_data_dir(APP_NAME)

    @classmethod
    def log(cls) -> str:
        """Log file directory."""
        return str(Path(cls.data()) / "log")

    @classmethod
    def config(cls) -> str:
        """Configuration directory holding the global glint.json."""
        return os.environ.get("GLINT_CONFIG_DIR") or user_config_dir(APP_NAME)
