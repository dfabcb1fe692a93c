"""Authentication exceptions."""


class AuthenticationError(Exception):
    """Base exception for identity and session problems."""
    pass


class InvalidCredentialsError(AuthenticationError):
    """Email or password is wrong, or a sign-up input is unacceptable."""
    pass


class UserExistsError(AuthenticationError):
    """Sign-up with an email that is already registered."""
    pass


class InvalidTokenError(AuthenticationError):
    """Bearer token is malformed, expired, or names a user that no longer exists."""
    pass


class NotAuthenticatedError(AuthenticationError):
    """An owner-scoped operation was attempted without a signed-in user."""
    pass
