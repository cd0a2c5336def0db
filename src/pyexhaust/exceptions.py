"""Custom exception hierarchy for pyexhaust."""

from __future__ import annotations

from typing import ClassVar


class ExhaustError(Exception):
    """Base exception for all pyexhaust errors."""


class ExhaustConfigError(ExhaustError):
    """Invalid or missing configuration."""


class ModuleNotConfiguredError(ExhaustConfigError):
    """No host is configured for the requested module."""

    def __init__(self, message: str, *, module_id: str = "") -> None:
        self.module_id = module_id
        super().__init__(message)


class UnitIdParseError(ExhaustError, ValueError):
    """Malformed unit identifier (expected ``A1``, ``A-1`` or ``A_1``)."""

    def __init__(self, message: str, *, raw_id: str = "") -> None:
        self.raw_id = raw_id
        super().__init__(message)


class ModuleOfflineError(ExhaustError):
    """The status cache shows the module as unreachable or erroring.

    Raised before any hardware call is attempted.
    """

    def __init__(
        self,
        message: str,
        *,
        module_id: str = "",
        error_code: str | None = None,
    ) -> None:
        self.module_id = module_id
        self.error_code = error_code
        super().__init__(message)


class ExhaustTransportError(ExhaustError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        host: str = "",
        command: str = "",
    ) -> None:
        self.status_code = status_code
        self.host = host
        self.command = command
        super().__init__(message)


class ModuleInitError(ExhaustError):
    """A module bring-up step failed.

    Every subclass carries the ``code`` recorded into the module status cache.
    """

    code: ClassVar[str] = "INIT_FAILED"

    def __init__(self, message: str, *, module_id: str = "") -> None:
        self.module_id = module_id
        super().__init__(message)


class StatusReadFailedError(ModuleInitError):
    """Reading ``Status`` from the module failed."""

    code = "STATUS_READ_FAILED"


class PowerOffFailedError(ModuleInitError):
    """Forcing the relays off failed."""

    code = "POWER_OFF_FAILED"


class PulseTimeReadFailedError(ModuleInitError):
    """Reading the ``PulseTime`` configuration failed."""

    code = "PULSETIME_READ_FAILED"


class PulseTimeConfigFailedError(ModuleInitError):
    """Writing a corrected ``PulseTime`` value failed."""

    code = "PULSETIME_CONFIG_FAILED"


class PulseTimeVerifyFailedError(ModuleInitError):
    """``PulseTime`` still differs from the expected value after correction."""

    code = "PULSETIME_VERIFY_FAILED"
