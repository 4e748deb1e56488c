"""Константы клиента аутентификации."""

from typing import Final

# ===== HTTP STATUS CODES =====
HTTP_INTERNAL_SERVER_ERROR: Final[int] = 500

# ===== API ENDPOINTS =====
ENDPOINT_AUTH_LOGIN: Final[str] = "/auth/login"
ENDPOINT_AUTH_REGISTER: Final[str] = "/auth/register"
ENDPOINT_AUTH_GOOGLE: Final[str] = "/auth/google"
ENDPOINT_AUTH_APPLE: Final[str] = "/auth/apple"
ENDPOINT_AUTH_FORGOT_PASSWORD: Final[str] = "/auth/forgot-password"
ENDPOINT_AUTH_RESET_PASSWORD: Final[str] = "/auth/reset-password"
ENDPOINT_USER_PROFILE: Final[str] = "/users/profile"

# ===== TIMEOUTS =====
DEFAULT_API_TIMEOUT: Final[int] = 60
DISCOVERY_TIMEOUT: Final[int] = 10
CONSENT_TIMEOUT: Final[int] = 300

# ===== PASSWORD VALIDATION =====
MIN_PASSWORD_LENGTH: Final[int] = 8
RESET_CODE_LENGTH: Final[int] = 6

# ===== REGISTRATION DEFAULTS =====
ROLE_DOCTOR: Final[str] = "doctor"
DEFAULT_SPECIALIZATION: Final[str] = "General Medicine"

# ===== OAUTH =====
GOOGLE_SCOPES: Final[tuple] = ("openid", "profile", "email")
APPLE_SCOPE_FULL_NAME: Final[str] = "FULL_NAME"
APPLE_SCOPE_EMAIL: Final[str] = "EMAIL"
APPLE_CANCEL_CODES: Final[frozenset] = frozenset({"ERR_CANCELED", "ERR_REQUEST_CANCELED"})
APPLE_MISCONFIGURED_MARKERS: Final[tuple] = ("authorization attempt failed", "unknown reason")
SERVER_ROLE_REQUIRED_MARKER: Final[str] = "Role is required"
SERVER_EMAIL_REQUIRED_MARKER: Final[str] = "Email is required"

# ===== TOKEN STORE =====
TOKEN_FILE_MODE: Final[int] = 0o600

# ===== MESSAGES =====
MSG_EMPTY_LOGIN_FIELDS: Final[str] = "Please enter both email and password"
MSG_EMPTY_REQUIRED_FIELDS: Final[str] = "Please fill in all required fields"
MSG_PASSWORDS_MISMATCH: Final[str] = "Passwords do not match"
MSG_PASSWORD_TOO_SHORT: Final[str] = (
    f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
)
MSG_EMPTY_EMAIL: Final[str] = "Please enter your email address"
MSG_INVALID_RESET_CODE: Final[str] = f"Please enter the {RESET_CODE_LENGTH}-digit code"
MSG_EMPTY_NEW_PASSWORD: Final[str] = "Please enter a new password"
MSG_INVALID_RESPONSE: Final[str] = "Invalid response from server"
MSG_NOT_AUTHENTICATED: Final[str] = "You are not signed in"
MSG_SESSION_CLOSED: Final[str] = "Signed out while the request was in progress"
MSG_EMPTY_PROFILE_FIELDS: Final[str] = "Please fill in all fields"
MSG_INVALID_FORM: Final[str] = "Invalid form data: {fields}"
MSG_UNSUPPORTED_PROVIDER: Final[str] = "Unsupported OAuth provider: {provider}"
MSG_BUSY: Final[str] = "Another {operation} request is already in progress"
MSG_OAUTH_DISABLED: Final[str] = "OAuth sign-in is disabled"
MSG_GOOGLE_NOT_CONFIGURED: Final[str] = (
    "Google Client ID not configured for platform '{platform}'"
)
MSG_GOOGLE_NO_TOKEN: Final[str] = "No ID token received from Google"
MSG_GOOGLE_FAILED: Final[str] = "Google authentication failed"
MSG_APPLE_UNAVAILABLE: Final[str] = (
    "Apple Sign-In is not available on this device. Requires iOS 13+"
)
MSG_APPLE_NO_TOKEN: Final[str] = "No identity token received from Apple"
MSG_APPLE_FAILED: Final[str] = "Apple authentication failed"
MSG_APPLE_MISCONFIGURED: Final[str] = (
    "Apple Sign-In is not properly configured: check the signing team, "
    "the Sign in with Apple capability and the device Apple ID"
)
MSG_USER_CANCELLED: Final[str] = "User cancelled {provider} authentication"
MSG_RESET_WRONG_STEP: Final[str] = "Request a reset code first"
MSG_RESET_COMPLETED: Final[str] = "Password has already been reset"
MSG_UNEXPECTED_ERROR: Final[str] = "An unexpected error occurred"
