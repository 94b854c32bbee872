"""Pluggable wallet signature verification."""
from __future__ import annotations

from typing import Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from wallet_gateway.core.settings import settings

# r (32) + s (32) + v (1)
_SIGNATURE_BYTES = 65


class SignatureVerifier(Protocol):
    """Capability deciding whether ``signature`` over ``message`` came from ``address``."""

    def verify(self, address: str, message: str, signature: str) -> bool: ...


class Eip191Verifier:
    """Verify ``personal_sign`` signatures by recovering the signer address."""

    def verify(self, address: str, message: str, signature: str) -> bool:
        """Return True if the EIP-191 signature recovers to ``address``.

        Args:
            address: Expected ``0x`` wallet address, any case.
            message: Exact text the wallet signed.
            signature: Hex-encoded 65-byte signature.

        Returns:
            True if the recovered address matches; False for any mismatch or
            malformed input.
        """
        try:
            raw = bytes.fromhex(signature.removeprefix("0x"))
        except ValueError:
            return False
        if len(raw) != _SIGNATURE_BYTES:
            return False

        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=raw)
        except (ValueError, BadSignature, ValidationError):
            return False
        return str(recovered).lower() == address.lower()


class RejectAllVerifier:
    """Deny every signature; used when wallet login is switched off."""

    def verify(self, address: str, message: str, signature: str) -> bool:
        return False


def get_signature_verifier() -> SignatureVerifier:
    """Return the verifier selected by ``SIGNATURE_SCHEME``."""
    if settings.signature_scheme == "reject":
        return RejectAllVerifier()
    return Eip191Verifier()
