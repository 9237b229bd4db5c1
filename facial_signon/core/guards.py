"""Guard context managers for common validation patterns."""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from facial_signon.core.exceptions import AuthError, SignOnError, ValidationError


@contextmanager
def guard_present(value: Optional[Any], error_message: str, field: str = "value") -> Iterator[Any]:
    """Guard that ensures a value is present (not None and not blank).

    Args:
        value: The value to check
        error_message: Error message if value is missing
        field: Name of the request field, reported in the error details

    Yields:
        Any: The value, stripped when it is a string

    Raises:
        ValidationError: If value is None or a blank string

    Example:
        with guard_present(request.client_id, "Client ID is required", "client_id") as cid:
            # Use cid safely
            pass
    """
    if isinstance(value, str):
        value = value.strip()
    if value is None or value == "":
        raise ValidationError(error_message, {"field": field})
    yield value


@contextmanager
def guard_session_user(session: dict) -> Iterator[int]:
    """Guard that ensures the browser session carries a signed-in user.

    Yields:
        int: The signed-in user's id

    Raises:
        AuthError: If no user is signed in
    """
    user_id = session.get("user_id")
    if user_id is None:
        raise AuthError("No user signed in", code="not_signed_in", user_message="Not authenticated")
    yield user_id


@contextmanager
def guard_condition(condition: bool, error: SignOnError) -> Iterator[None]:
    """Guard that ensures a condition is true.

    Args:
        condition: The condition to check
        error: Exception raised if the condition is false

    Yields:
        None

    Raises:
        SignOnError: The given error, if condition is false

    Example:
        with guard_condition(body.login_method == "facial_sign_on", ValidationError("...")):
            # Proceed with a facial sign-on request
            pass
    """
    if not condition:
        raise error
    yield
