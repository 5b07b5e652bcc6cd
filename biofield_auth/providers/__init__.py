"""Identity provider contracts, concrete providers and the adapter."""

from biofield_auth.providers.adapter import IdentityProviderAdapter
from biofield_auth.providers.base import (
    BiometricSensor,
    FederatedProvider,
    FederatedSignInClient,
    PasswordProvider,
)
from biofield_auth.providers.biometric import BiometricProvider, NoBiometricSensor
from biofield_auth.providers.error_map import (
    PROVIDER_ERROR_MAP,
    classify_exception,
    to_auth_error,
)
from biofield_auth.providers.federated import (
    FacebookIdentityProvider,
    FederatedIdentityProvider,
    GoogleIdentityProvider,
)
from biofield_auth.providers.password import SupabasePasswordProvider

__all__ = [
    "BiometricProvider",
    "BiometricSensor",
    "FacebookIdentityProvider",
    "FederatedIdentityProvider",
    "FederatedProvider",
    "FederatedSignInClient",
    "GoogleIdentityProvider",
    "IdentityProviderAdapter",
    "NoBiometricSensor",
    "PROVIDER_ERROR_MAP",
    "PasswordProvider",
    "SupabasePasswordProvider",
    "classify_exception",
    "to_auth_error",
]
