"""Static module-id -> host table."""

from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType

from pyexhaust._constants import MODULE_ORDER
from pyexhaust.exceptions import ModuleNotConfiguredError

_IPV4_RE = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}$", re.ASCII)
_INDEX_RE = re.compile(r"^\d+$", re.ASCII)


class ModuleRegistry:
    """Resolve module hosts from the configuration supplied at startup.

    The table is immutable after construction.
    """

    def __init__(self, hosts: Mapping[str, str]) -> None:
        self._hosts: Mapping[str, str] = MappingProxyType(
            {str(k).strip().upper(): v for k, v in hosts.items() if v}
        )

    @property
    def hosts(self) -> Mapping[str, str]:
        return self._hosts

    def modules(self) -> list[tuple[str, str]]:
        """Configured ``(module_id, host)`` pairs in the fixed module order."""
        return [(module_id, self._hosts[module_id]) for module_id in MODULE_ORDER if module_id in self._hosts]

    def is_configured(self, module_id: str) -> bool:
        return module_id.strip().upper() in self._hosts

    def resolve_host(self, module_id: str) -> str:
        normalized = module_id.strip().upper()
        host = self._hosts.get(normalized)
        if not host:
            raise ModuleNotConfiguredError(f"No host configured for module {module_id}", module_id=normalized)
        return host

    def resolve_by_flexible_key(self, key: str | int) -> str:
        """Resolve a host from an IPv4 literal, a 1-based index or a module id.

        * ``"192.168.0.10"`` is returned verbatim.
        * ``"3"`` is the third module in the fixed order (``B_14``).
        * ``"b_14"`` is looked up case-insensitively.
        """
        normalized = str(key).strip()

        if _IPV4_RE.match(normalized):
            return normalized

        upper = normalized.upper()
        if upper in self._hosts:
            return self._hosts[upper]

        if _INDEX_RE.match(normalized):
            index = int(normalized)
            if 1 <= index <= len(MODULE_ORDER):
                return self.resolve_host(MODULE_ORDER[index - 1])

        if upper in MODULE_ORDER:
            raise ModuleNotConfiguredError(f"No host configured for module {key}", module_id=upper)
        raise ModuleNotConfiguredError(f"Invalid module key: {key!r}", module_id=upper)
