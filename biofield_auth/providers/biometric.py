"""Biometric confirmation provider over an injected device sensor."""

from __future__ import annotations

from biofield_auth.errors import ProviderError
from biofield_auth.logger import StructuredLogger
from biofield_auth.models.enums import IdentityProviderKind
from biofield_auth.providers.base import BiometricSensor
from biofield_auth.providers.error_map import classify_exception

_PROVIDER: str = str(IdentityProviderKind.BIOMETRIC)


class BiometricProvider:
    """Confirms the device owner with the biometric sensor.

    Parameters
    ----------
    sensor:
        Injected device sensor.
    logger:
        Structured logger.
    """

    def __init__(self, sensor: BiometricSensor, logger: StructuredLogger) -> None:
        self._sensor: BiometricSensor = sensor
        self._logger: StructuredLogger = logger

    async def is_supported(self) -> bool:
        """``True`` when the device has a usable sensor.

        A sensor that errors while probing is reported as unsupported.
        """
        try:
            return bool(await self._sensor.is_supported())
        except Exception as exc:
            self._logger.warning("Biometric support check failed: %s", exc)
            return False

    async def confirm(self, prompt: str) -> None:
        """Require an explicit confirmation gesture.

        Raises
        ------
        ProviderError
            ``NotSupported`` when the device has no sensor,
            ``AuthenticationFailed`` on a rejected gesture, or the sensor's
            own code (``UserCancel``, ``LockOut`` ...).
        """
        if not await self.is_supported():
            raise ProviderError(_PROVIDER, "NotSupported", "No biometric sensor available.")

        try:
            confirmed = await self._sensor.authenticate(prompt)
        except Exception as exc:
            raise classify_exception(IdentityProviderKind.BIOMETRIC, exc) from exc

        if not confirmed:
            raise ProviderError(
                _PROVIDER, "AuthenticationFailed", "Biometric confirmation was rejected.",
            )


class NoBiometricSensor:
    """Sensor stand-in for devices without biometric hardware."""

    async def is_supported(self) -> bool:
        return False

    async def authenticate(self, prompt: str) -> bool:
        raise ProviderError(_PROVIDER, "NotAvailable", "No biometric sensor on this device.")
