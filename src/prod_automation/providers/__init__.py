from __future__ import annotations

from .base import ActionProvider
from .debian import DebianActionProvider
from .fedora import FedoraActionProvider

PROVIDER_REGISTRY: dict[str, type[ActionProvider]] = {
    DebianActionProvider.name: DebianActionProvider,
    FedoraActionProvider.name: FedoraActionProvider,
}

__all__ = ["ActionProvider", "DebianActionProvider", "FedoraActionProvider", "PROVIDER_REGISTRY"]
