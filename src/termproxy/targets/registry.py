"""Static registry of the remote machines clients may connect to.

Maps a logical target identifier (``vm1``, ``t1``...) to the connection
parameters of one pre-provisioned machine. The registry is built once
from configuration and never changes while the server runs.
"""

from __future__ import annotations

import logging
from pathlib import Path

from termproxy.config.settings import Settings
from termproxy.domain.errors import ConfigurationError, TargetNotFoundError
from termproxy.domain.models import TargetDescriptor, TargetValidation

logger = logging.getLogger(__name__)

# Host values that mean "not filled in yet"
PLACEHOLDER_HOST_PREFIXES = ("LINODE_IP_", "CHANGE_ME", "CHANGEME", "<")


class TargetRegistry:
    """Immutable identifier -> TargetDescriptor lookup."""

    def __init__(self, targets: list[TargetDescriptor] | None = None) -> None:
        self._targets: dict[str, TargetDescriptor] = {}
        for target in targets or []:
            if target.identifier in self._targets:
                raise ConfigurationError(f"Duplicate target identifier: {target.identifier}")
            self._targets[target.identifier] = target

    @classmethod
    def from_settings(cls, settings: Settings) -> TargetRegistry:
        """Build the registry from the ``targets`` section of the settings."""
        default_key = settings.ssh.default_private_key_path
        descriptors = [
            TargetDescriptor(
                identifier=t.id,
                host=t.host,
                port=t.port,
                username=t.username,
                credential_path=_expand(t.private_key_path or default_key),
                display_name=t.display_name,
                known_hosts=_expand(t.known_hosts),
            )
            for t in settings.targets
        ]
        registry = cls(descriptors)
        logger.debug("Loaded %d target(s): %s", len(registry), ", ".join(registry.list_identifiers()))
        return registry

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._targets

    def lookup(self, identifier: str) -> TargetDescriptor:
        """Return the descriptor for ``identifier``.

        Raises:
            TargetNotFoundError: If the identifier is not configured. The
                exception carries the list of known identifiers.
        """
        try:
            return self._targets[identifier]
        except KeyError:
            raise TargetNotFoundError(identifier, self.list_identifiers()) from None

    def list_identifiers(self) -> list[str]:
        """Known identifiers, in configuration order."""
        return list(self._targets)

    def validate_all(self) -> list[str]:
        """Check every target for obvious configuration mistakes.

        The result is informational only. A misconfigured target still
        loads and simply fails at connect time.
        """
        warnings: list[str] = []
        if not self._targets:
            warnings.append("No targets configured")

        for identifier, target in self._targets.items():
            if not target.host or target.host.upper().startswith(PLACEHOLDER_HOST_PREFIXES):
                warnings.append(f"{identifier}: Host not configured (still placeholder)")

            if not target.credential_path:
                warnings.append(f"{identifier}: Private key path not set")
            elif not Path(target.credential_path).is_file():
                warnings.append(f"{identifier}: Private key not found at {target.credential_path}")

        return warnings

    def validation_report(self) -> TargetValidation:
        warnings = self.validate_all()
        return TargetValidation(
            valid=not warnings,
            warnings=warnings,
            target_count=len(self._targets),
        )


def _expand(path: str | None) -> str | None:
    return str(Path(path).expanduser()) if path else None
