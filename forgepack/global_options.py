"""
Machine-wide preferences stored in ~/.forgepackrc.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import PreferencesError

logger = logging.getLogger(__name__)

RC_FILE = ".forgepackrc"


class SuggestionSettings(BaseModel):
    """Per-plugin suggestion behavior."""

    model_config = ConfigDict(extra="ignore")

    always_apply: bool = Field(
        default=False,
        description="Apply the suggestion without prompting"
    )


class GlobalOptions(BaseModel):
    """Schema of the preference file. Unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore")

    package_manager: Optional[Literal["pip", "uv", "poetry", "pdm"]] = Field(
        default=None,
        description="Package manager used to install plugins"
    )
    use_registry_mirror: Optional[bool] = Field(
        default=None,
        description="Install from the configured registry mirror"
    )
    suggestions: Optional[Dict[str, SuggestionSettings]] = Field(
        default=None,
        description="Suggestion settings keyed by plugin id"
    )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def get_rc_path() -> Path:
    configured = os.getenv("FORGEPACK_RC_PATH")
    if configured:
        return Path(configured)
    return Path.home() / RC_FILE


class GlobalOptionsStore:
    """
    Lazily loaded preferences with an explicit lifecycle.

    load() reads the file once; save() writes and replaces the cached value.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else get_rc_path()
        self._cached: Optional[GlobalOptions] = None

    def load(self) -> GlobalOptions:
        """
        Load preferences.

        Returns:
            GlobalOptions; defaults if the file does not exist

        Raises:
            PreferencesError: If the file can't be parsed or fails validation
        """
        if self._cached is not None:
            return self._cached

        if not self.path.exists():
            self._cached = GlobalOptions()
            return self._cached

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PreferencesError(
                f"Error loading saved preferences: {self.path} may be corrupted or have syntax errors. "
                f"Please fix/delete it and re-run forgepack.\n({e})"
            ) from e

        try:
            self._cached = GlobalOptions.model_validate(data)
        except ValidationError as e:
            raise PreferencesError(
                f"{self.path} may be outdated. Please delete it and re-run forgepack.\n({e})"
            ) from e
        return self._cached

    def save(self, to_save: Dict[str, Any]) -> GlobalOptions:
        """
        Merge values into the saved preferences and write them.

        Args:
            to_save: Values to set; keys outside the schema are dropped

        Returns:
            The new preferences, which also replace the cached value
        """
        merged = self.load().to_dict()
        merged.update(to_save)
        try:
            options = GlobalOptions.model_validate(merged)
        except ValidationError as e:
            raise PreferencesError(f"Invalid preferences: {e}") from e

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(options.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise PreferencesError(
                f"Error saving preferences: make sure you have write access to {self.path}.\n({e})"
            ) from e

        self._cached = options
        logger.debug(f"Saved preferences to {self.path}")
        return options

    def invalidate(self) -> None:
        self._cached = None
