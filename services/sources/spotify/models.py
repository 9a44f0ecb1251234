"""Data model for the Spotify connect flow."""

from dataclasses import dataclass, field
from enum import Enum

PROVIDER_SPOTIFY = "spotify"
PRODUCT_PREMIUM = "premium"

MSG_SUCCESS = "success"
MSG_ERROR = "error"
# Tags posted by the popup callback page; accepted as aliases
WIRE_SUCCESS = "spotify-auth-success"
WIRE_ERROR = "spotify-auth-error"

_MESSAGE_TYPES = {
    MSG_SUCCESS: MSG_SUCCESS,
    WIRE_SUCCESS: MSG_SUCCESS,
    MSG_ERROR: MSG_ERROR,
    WIRE_ERROR: MSG_ERROR,
}


@dataclass
class SpotifyUserProfile:
    id: str
    display_name: str | None = None
    email: str | None = None
    images: list = field(default_factory=list)
    country: str | None = None
    product: str | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict | None):
        if not isinstance(data, dict):
            return None
        known = {"id", "display_name", "email", "images", "country", "product"}
        return cls(
            id=data.get("id", ""),
            display_name=data.get("display_name"),
            email=data.get("email"),
            images=list(data.get("images") or []),
            country=data.get("country"),
            product=data.get("product"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out["id"] = self.id
        for key in ("display_name", "email", "country", "product"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.images:
            out["images"] = self.images
        return out

    @property
    def is_premium(self) -> bool:
        return self.product == PRODUCT_PREMIUM


@dataclass(frozen=True)
class AuthResultMessage:
    """A message received from the popup.  `origin` comes from the transport."""
    type: str
    origin: str
    user_id: str | None = None
    access_token: str | None = None
    user_data: dict | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    error: str | None = None

    @classmethod
    def parse(cls, data, origin: str):
        """Build a message from a posted payload.  Returns None if malformed."""
        if not isinstance(data, dict):
            return None
        kind = _MESSAGE_TYPES.get(data.get("type"))
        if kind == MSG_SUCCESS:
            user_id = data.get("userId")
            token = data.get("accessToken")
            if not isinstance(user_id, str) or not isinstance(token, str):
                return None
            if not user_id or not token:
                return None
            expires_in = data.get("expiresIn")
            if not isinstance(expires_in, int) or isinstance(expires_in, bool):
                expires_in = None
            user_data = data.get("userData")
            return cls(
                type=MSG_SUCCESS,
                origin=origin,
                user_id=user_id,
                access_token=token,
                user_data=user_data if isinstance(user_data, dict) else None,
                refresh_token=data.get("refreshToken") or None,
                expires_in=expires_in,
            )
        if kind == MSG_ERROR:
            error = data.get("error")
            return cls(type=MSG_ERROR, origin=origin,
                       error=error if isinstance(error, str) and error else "Authentication failed")
        return None


@dataclass(frozen=True)
class AuthOutcome:
    success: bool
    user_id: str | None = None
    access_token: str | None = None
    user_data: dict | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    error: str | None = None

    @classmethod
    def from_message(cls, message: AuthResultMessage):
        if message.type == MSG_SUCCESS:
            return cls(
                success=True,
                user_id=message.user_id,
                access_token=message.access_token,
                user_data=message.user_data,
                refresh_token=message.refresh_token,
                expires_in=message.expires_in,
            )
        return cls(success=False, error=message.error)

    @classmethod
    def failure(cls, error: str):
        return cls(success=False, error=error)


@dataclass(frozen=True)
class LoginResult:
    success: bool
    error: str | None = None


# Linking and ensure_access report the same shape
LinkResult = LoginResult


@dataclass(frozen=True)
class Identity:
    provider: str
    id: str | None = None


@dataclass(frozen=True)
class UmbrellaUser:
    id: str
    email: str | None = None
    identities: tuple = ()

    def has_identity(self, provider: str) -> bool:
        return any(identity.provider == provider for identity in self.identities)


@dataclass(frozen=True)
class UmbrellaSession:
    """The application-level login session (independent of Spotify tokens)."""
    access_token: str
    user: UmbrellaUser | None = None

    @classmethod
    def from_dict(cls, data: dict | None):
        """Build from a Supabase-style session payload.  Returns None if absent."""
        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        user_data = data.get("user")
        user = None
        if isinstance(user_data, dict) and user_data.get("id"):
            identities = tuple(
                Identity(provider=i.get("provider", ""), id=i.get("id"))
                for i in (user_data.get("identities") or [])
                if isinstance(i, dict)
            )
            user = UmbrellaUser(id=user_data["id"], email=user_data.get("email"),
                                identities=identities)
        return cls(access_token=data["access_token"], user=user)


class AccessMethod(Enum):
    NONE = "none"
    PRIMARY = "primary"
    LINKED = "linked"


@dataclass(frozen=True)
class SpotifyAccess:
    access_method: AccessMethod
    access_token: str | None = None
    profile: SpotifyUserProfile | None = None
    needs_linking: bool = False

    @property
    def is_premium(self) -> bool:
        return self.profile is not None and self.profile.is_premium

    @property
    def usable(self) -> bool:
        return self.access_method is not AccessMethod.NONE and self.access_token is not None

    def to_dict(self) -> dict:
        return {
            "accessMethod": self.access_method.value,
            "accessToken": self.access_token,
            "profile": self.profile.to_dict() if self.profile else None,
            "isPremium": self.is_premium,
            "needsLinking": self.needs_linking,
        }
