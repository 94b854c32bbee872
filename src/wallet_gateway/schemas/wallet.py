"""Wallet authentication Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from wallet_gateway.core.validation import is_uuid4, normalize_address


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON while using snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddressModel(CamelModel):
    """Mixin validating and normalizing ``address``."""

    address: str = Field(..., description="0x-prefixed 20-byte hex wallet address")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Reject malformed addresses and return the lower-case form."""
        return normalize_address(v)


def _uuid4(value: str, field: str) -> str:
    if not is_uuid4(value):
        raise ValueError(f"{field} must be a UUIDv4")
    return value.lower()


class ConnectRequest(AddressModel):
    """Request to open a wallet session."""

    chain_id: int = Field(..., gt=0, description="EVM chain id the wallet is connected to")
    user_agent: str | None = Field(None, max_length=512)
    ip_address: str | None = Field(None, max_length=64)


class ConnectResponse(CamelModel):
    """Challenge returned after a successful connect."""

    session_id: str = Field(..., description="UUIDv4 session identifier")
    nonce: str = Field(..., description="Single-use UUIDv4 challenge nonce")
    message: str = Field(..., description="Exact text the wallet must sign")
    expires_at: int = Field(..., description="Session expiry in epoch milliseconds")


class VerifyRequest(AddressModel):
    """Signed challenge submitted to verify wallet ownership."""

    signature: str = Field(..., min_length=1, description="Signature over ``message``")
    message: str = Field(..., min_length=1, description="The challenge text that was signed")
    nonce: str
    session_id: str

    @field_validator("nonce")
    @classmethod
    def validate_nonce(cls, v: str) -> str:
        return _uuid4(v, "nonce")

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v: str) -> str:
        return _uuid4(v, "sessionId")


class VerifyResponse(CamelModel):
    """Result of a successful verification."""

    verified: bool
    session_id: str
    wallet_address: str


class SessionQuery(AddressModel):
    """Identifies a session together with the wallet it must belong to."""

    session_id: str

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v: str) -> str:
        return _uuid4(v, "sessionId")


class SessionResponse(CamelModel):
    """Server-side session data."""

    id: str
    wallet_address: str
    chain_id: int
    created_at: int
    last_activity_at: int
    verified: bool
    verified_at: int | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DisconnectResponse(CamelModel):
    success: bool


class CsrfTokenResponse(CamelModel):
    """CSRF token bound to a verified session."""

    csrf_token: str
    expires_at: int = Field(..., description="Token expiry in epoch milliseconds")


class ConnectionStatusResponse(CamelModel):
    """Connection and verification state for a wallet."""

    connected: bool
    verified: bool
    last_connected: int | None = None
    chain_id: int | None = None
    session_id: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RateLimitStatusResponse(CamelModel):
    """Current allowance for a wallet in one rate-limit category."""

    allowed: bool
    remaining: int
    reset_time: int = Field(..., description="Window reset in epoch milliseconds")
    type: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ErrorDetail(BaseModel):
    """Stable error code plus a client-safe message."""

    error: str
    message: str
    retry_after: int | None = Field(None, alias="retryAfter")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """Error body returned for rejected wallet operations."""

    detail: ErrorDetail
