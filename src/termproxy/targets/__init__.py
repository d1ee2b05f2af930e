"""Target registry for termproxy."""

from termproxy.targets.registry import TargetRegistry

__all__ = ["TargetRegistry"]
