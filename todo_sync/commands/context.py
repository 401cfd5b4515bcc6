"""Shared wiring for commands: settings, vault, cache, gateway."""

import importlib
import inspect
import logging
import os
from typing import Callable, Dict, Optional

from ..core.config import SettingsStore
from ..core.exceptions import ConfigurationError
from ..document.vault import FolderVault
from ..remote.gateway import TodoGateway
from ..sync.delta_cache import DeltaCache
from ..sync.reconciler import Reconciler
from ..sync.registry import IdentityRegistry


def load_gateway(spec: Optional[str], store: SettingsStore) -> TodoGateway:
    """
    Import a gateway from ``module:attribute``.

    The attribute is either a TodoGateway subclass, instantiated without
    arguments, or a factory called with the settings.

    Raises:
        ConfigurationError: if the module:factory string is missing or does not yield a gateway
    """
    if not spec:
        raise ConfigurationError("No gateway configured; pass --gateway module:factory")

    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Gateway must look like module:factory, got '{spec}'")

    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Could not load gateway '{spec}': {exc}") from exc

    if inspect.isclass(target) and issubclass(target, TodoGateway):
        gateway = target()
    elif callable(target):
        gateway = target(store.settings)
    else:
        gateway = target

    if not isinstance(gateway, TodoGateway):
        raise ConfigurationError(f"'{spec}' did not produce a TodoGateway")
    return gateway


def format_changes(changes: Dict[str, int]) -> str:
    parts = [f"{name.replace('_', ' ')}: {count}" for name, count in changes.items() if count]
    return ", ".join(parts) if parts else "nothing to do"


class CommandContext:
    """Everything a command needs, built from the CLI arguments."""

    def __init__(self, store: SettingsStore, vault_path: Optional[str], cache_path: str,
                 gateway_spec: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self.store = store
        self.vault_path = vault_path
        self.cache_path = cache_path
        self.gateway_spec = gateway_spec
        self.logger = logger or logging.getLogger(__name__)

    def vault(self) -> FolderVault:
        if not self.vault_path:
            raise ConfigurationError("No vault given; pass --vault DIR")
        if not os.path.isdir(os.path.expanduser(self.vault_path)):
            raise ConfigurationError(f"Vault does not exist: {self.vault_path}")
        vault = FolderVault(self.vault_path)
        if not self.store.settings.vault_name:
            self.store.settings.vault_name = vault.name
        return vault

    def registry(self) -> IdentityRegistry:
        return IdentityRegistry(self.store)

    def cache(self, gateway: Optional[TodoGateway] = None) -> DeltaCache:
        return DeltaCache(self.cache_path, gateway=gateway, settings=self.store.settings)

    def reconciler(self, notify: Callable[[str], None] = print, with_gateway: bool = True) -> Reconciler:
        gateway = load_gateway(self.gateway_spec, self.store) if with_gateway else None
        return Reconciler(
            self.store,
            self.registry(),
            self.cache(gateway),
            gateway,
            self.vault(),
            notify=notify,
        )
