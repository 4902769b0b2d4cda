"""
Deterministic secp256k1 keys derived from an API secret.

The API secret is the raw private scalar, hex encoded (32 bytes). Issuers
and verifiers holding the same secret derive matching keys, so nothing is
ever persisted: keys are re-derived on every sign/verify call.
"""

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..exceptions import KeyDerivationError

CURVE = ec.SECP256K1()
SECRET_BYTES = 32

# Group order of secp256k1; valid private scalars are in [1, n - 1]
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _secret_scalar(secret: str) -> int:
    """Interpret an API secret as a secp256k1 private scalar."""
    if not isinstance(secret, str):
        raise KeyDerivationError("api secret must be a string")

    text = secret.strip()
    if text[:2].lower() == "0x":
        text = text[2:]

    try:
        raw = bytes.fromhex(text)
    except ValueError as e:
        raise KeyDerivationError("api secret is not hex encoded") from e

    if len(raw) != SECRET_BYTES:
        raise KeyDerivationError(
            f"api secret must encode {SECRET_BYTES} bytes, got {len(raw)}"
        )

    value = int.from_bytes(raw, "big")
    if not 0 < value < CURVE_ORDER:
        raise KeyDerivationError("api secret is out of range for secp256k1")
    return value


@dataclass
class KeyPair:
    """secp256k1 key pair derived from an API secret."""
    private_key: ec.EllipticCurvePrivateKey
    public_key: ec.EllipticCurvePublicKey

    @classmethod
    def from_secret(cls, secret: str) -> "KeyPair":
        """Derive the key pair for a hex encoded secret."""
        private_key = ec.derive_private_key(_secret_scalar(secret), CURVE)
        return cls(private_key=private_key, public_key=private_key.public_key())

    def private_pem(self) -> str:
        """Export private key as PKCS#8 PEM."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode("ascii")

    def public_pem(self) -> str:
        """Export public key as SubjectPublicKeyInfo PEM."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode("ascii")

    def public_bytes(self) -> bytes:
        """Export public key as a compressed SEC1 point (33 bytes)."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint
        )


def derive_key_pair(secret: str) -> KeyPair:
    return KeyPair.from_secret(secret)


def derive_private_key(secret: str) -> str:
    """Private key PEM for signing."""
    return KeyPair.from_secret(secret).private_pem()


def derive_public_key(secret: str) -> str:
    """Public key PEM for verification."""
    return KeyPair.from_secret(secret).public_pem()
