"""Session error taxonomy.

Every per-request failure is one of these classes. The HTTP layer maps them to
a fixed set of client-facing messages (see ``shop_auth.main``), so the
sub-kinds of :class:`TokenInvalid` are only ever visible in server logs.
"""


class ShopAuthError(Exception):
    """Base class for session errors."""

    # Client-facing message; subclasses override
    public_message = "Authentication failed"


class ConfigInvalid(ShopAuthError):
    """Startup configuration is unusable (e.g. a weak signing key). Fatal."""


class BadCredentials(ShopAuthError):
    """Login failed. Never says whether the user or the password was wrong."""

    public_message = "Invalid email or password"


class MalformedRequest(ShopAuthError):
    """The Authorization header is missing or does not use the Bearer scheme."""

    public_message = "Invalid Authorization header"


class TokenInvalid(ShopAuthError):
    """Token failed validation."""

    public_message = "Invalid or expired token"


class TokenExpired(TokenInvalid):
    pass


class TokenMalformed(TokenInvalid):
    pass


class TokenBadSignature(TokenInvalid):
    pass


class TokenUnsupportedAlgorithm(TokenInvalid):
    pass


class TokenEmpty(TokenInvalid):
    pass


class TokenRevoked(ShopAuthError):
    """Token is well-formed and unexpired but has been blacklisted."""

    public_message = "Token has been revoked"


class IdentityNotFound(ShopAuthError):
    """Token is valid but its subject no longer exists."""

    public_message = "User not found"


class StoreUnavailable(ShopAuthError):
    """The revocation store could not be reached or timed out."""


class AuthenticationRequired(ShopAuthError):
    """A protected route was called without a session."""

    public_message = "Authentication required"


class AccessDenied(ShopAuthError):
    """The session lacks a role the route requires."""

    public_message = "You do not have permission to access this resource"
