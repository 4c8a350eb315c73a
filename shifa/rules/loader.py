"""YAML triage configuration loader with integrity verification."""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml

from shifa.core.config import settings
from shifa.core.exceptions import ConfigError
from shifa.rules.models import TriageConfig

logger = logging.getLogger(__name__)


def compute_ruleset_hash(content: str) -> str:
    """Compute SHA256 hash of ruleset content.

    Used for audit trail to ensure ruleset hasn't been modified.

    Args:
        content: Raw YAML content string

    Returns:
        SHA256 hex digest
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def load_ruleset(
    filename: str,
    rulesets_dir: Path | None = None,
) -> tuple[dict[str, Any], str]:
    """Load a ruleset YAML file and compute its hash.

    Args:
        filename: Name of the ruleset file (e.g., "mass-casualty-triage-v1.0.0.yaml")
        rulesets_dir: Directory containing rulesets (defaults to settings.rulesets_dir)

    Returns:
        Tuple of (parsed ruleset dict, SHA256 hash)

    Raises:
        ConfigError: If the file is missing, unreadable or not valid YAML
    """
    if rulesets_dir is None:
        rulesets_dir = settings.rulesets_dir

    filepath = Path(rulesets_dir) / filename

    if not filepath.exists():
        raise ConfigError(f"Ruleset not found: {filepath}")

    try:
        content = filepath.read_text(encoding="utf-8")
        ruleset = yaml.safe_load(content)
    except OSError as exc:
        raise ConfigError(f"Ruleset could not be read: {filepath}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Ruleset is not valid YAML: {filepath}") from exc

    if not isinstance(ruleset, dict):
        raise ConfigError(f"Ruleset must be a YAML mapping: {filepath}")

    return ruleset, compute_ruleset_hash(content)


class RulesetLoader:
    """Stateful ruleset loader with caching.

    Resolves named profiles (e.g. "mass-casualty", "first-responder") to
    ruleset files and builds validated TriageConfig objects from them.
    """

    def __init__(
        self,
        rulesets_dir: Path | None = None,
        profiles: dict[str, str] | None = None,
        strict: bool | None = None,
    ) -> None:
        """Initialize loader.

        Args:
            rulesets_dir: Directory containing rulesets
            profiles: Profile name -> ruleset filename
            strict: Reject malformed condition expressions
        """
        self.rulesets_dir = Path(rulesets_dir or settings.rulesets_dir)
        self.profiles = dict(profiles if profiles is not None else settings.profiles)
        self.strict = settings.strict_conditions if strict is None else strict
        self._cache: dict[str, tuple[dict[str, Any], str]] = {}
        self._configs: dict[str, TriageConfig] = {}

    def load(self, filename: str, use_cache: bool = True) -> tuple[dict[str, Any], str]:
        """Load a ruleset with optional caching.

        Args:
            filename: Ruleset filename
            use_cache: Whether to use cached version if available

        Returns:
            Tuple of (ruleset dict, hash)
        """
        if use_cache and filename in self._cache:
            return self._cache[filename]

        ruleset, ruleset_hash = load_ruleset(filename, self.rulesets_dir)
        self._cache[filename] = (ruleset, ruleset_hash)

        return ruleset, ruleset_hash

    def resolve_profile(self, profile: str) -> str:
        """Get the ruleset filename for a profile.

        Raises:
            ConfigError: If the profile is not configured
        """
        try:
            return self.profiles[profile]
        except KeyError:
            raise ConfigError(f"Unknown triage profile: {profile}") from None

    def load_config(self, profile: str, use_cache: bool = True) -> TriageConfig:
        """Load and validate the triage configuration for a profile.

        Args:
            profile: Profile name
            use_cache: Whether to reuse an already validated config

        Returns:
            Validated TriageConfig

        Raises:
            ConfigError: If the profile is unknown or its ruleset is invalid
        """
        if use_cache and profile in self._configs:
            return self._configs[profile]

        filename = self.resolve_profile(profile)
        ruleset, ruleset_hash = self.load(filename, use_cache=use_cache)
        config = TriageConfig.from_dict(ruleset, content_hash=ruleset_hash, strict=self.strict)

        for condition in config.invalid_conditions:
            logger.warning(
                f"Profile '{profile}' has an invalid condition that will never match: "
                f"{condition.error} (expression: {condition.source!r})"
            )

        logger.info(
            f"Loaded triage profile '{profile}' v{config.version} "
            f"({len(config.rules)} rules, {len(config.steps)} steps)"
        )
        self._configs[profile] = config
        return config

    async def aload_config(self, profile: str, use_cache: bool = True) -> TriageConfig:
        """Load a profile without blocking the event loop."""
        return await asyncio.to_thread(self.load_config, profile, use_cache)

    def clear_cache(self) -> None:
        """Clear the ruleset cache."""
        self._cache.clear()
        self._configs.clear()

    def list_rulesets(self) -> list[str]:
        """List available ruleset files.

        Returns:
            List of ruleset filenames
        """
        return sorted(f.name for f in self.rulesets_dir.glob("*.yaml"))

    def get_ruleset_info(self, filename: str) -> dict[str, Any]:
        """Get metadata about a ruleset.

        Args:
            filename: Ruleset filename

        Returns:
            Dict with id, version, description, hash
        """
        ruleset, ruleset_hash = self.load(filename)

        return {
            "filename": filename,
            "id": ruleset.get("id", "unknown"),
            "version": str(ruleset.get("version", "unknown")),
            "description": ruleset.get("description") or "",
            "hash": ruleset_hash,
        }
