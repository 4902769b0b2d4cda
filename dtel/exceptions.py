"""
Exception hierarchy for dtel.

Token errors are raised to the caller as-is. Resolver errors abort the
current resolution only.
"""


class DtelError(Exception):
    """Base exception for all dtel errors."""
    pass


class ConfigurationError(DtelError):
    """API key/secret missing or an option could not be interpreted."""
    pass


class KeyDerivationError(DtelError):
    """The API secret is not usable as raw secp256k1 key bytes."""
    pass


class MissingIdentityError(DtelError):
    """A room-join grant was signed without an identity."""
    pass


class TokenVerificationError(DtelError):
    """Base exception for token verification failures."""
    pass


class InvalidSignatureError(TokenVerificationError):
    """Signature or algorithm did not match the derived public key."""
    pass


class IssuerMismatchError(TokenVerificationError):
    """Token was issued by a different API key."""
    pass


class ExpiredTokenError(TokenVerificationError):
    """Token is past its expiration time."""
    pass


class MalformedTokenError(TokenVerificationError):
    """Token could not be parsed."""
    pass


class RegistryUnavailableError(DtelError):
    """The node registry read could not complete."""
    pass


class NoAvailableNodeError(DtelError):
    """No registry node survived the allow-list filter."""
    pass
