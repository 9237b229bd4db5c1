"""Browser login flow: initiate, fetch the session-scoped token, complete."""

import time

from fastapi import APIRouter, Request, status

from facial_signon.core.exceptions import AuthError
from facial_signon.core.logging import get_logger
from facial_signon.dependencies import LoginServiceDep, SessionStrategyDep
from facial_signon.models.requests import LoginInitiationRequest, SessionRequest
from facial_signon.models.responses import (
    LoginResponse,
    PushNotificationResponse,
    VerificationTokenResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/facial_sign_on", tags=["facial-sign-on"])

SESSION_TOKEN_KEY = "facial_verification_token"
SESSION_EXPIRES_KEY = "facial_verification_expires_at"
SESSION_USER_KEY = "user_id"

ERROR_EXAMPLE = {
    "success": False,
    "error": "No account found with this email address.",
    "code": "user_not_found",
    "vendor_code": None,
}


def clear_verification(session: dict) -> None:
    session.pop(SESSION_TOKEN_KEY, None)
    session.pop(SESSION_EXPIRES_KEY, None)


@router.post(
    "/push_notification",
    response_model=PushNotificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Start facial sign-on",
    description=(
        "Sends a push notification to the user's registered device. The "
        "verification token is kept in the browser session, never returned here."
    ),
    responses={
        400: {"description": "Email missing or malformed"},
        404: {
            "description": "No account, or facial sign-on not enabled",
            "content": {"application/json": {"example": ERROR_EXAMPLE}},
        },
        429: {"description": "Axiam throttled the request"},
        503: {"description": "Axiam unreachable"},
    },
)
async def push_notification(
    body: LoginInitiationRequest,
    request: Request,
    login: LoginServiceDep,
) -> PushNotificationResponse:
    """Initiate a facial sign-on attempt for the email in the request body."""
    pending = await login.initiate(body.resolved_email())

    request.session[SESSION_TOKEN_KEY] = pending.verification_token
    request.session[SESSION_EXPIRES_KEY] = pending.expires_at

    return PushNotificationResponse(expires_in=pending.expires_at - pending.created_at)


@router.get(
    "/verification_token",
    response_model=VerificationTokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Fetch the pending verification token",
    responses={
        401: {
            "description": "No pending verification in this session, or it expired",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error": "Token expired or not found",
                        "code": "token_expired",
                        "vendor_code": None,
                    }
                }
            },
        },
    },
)
async def verification_token(request: Request) -> VerificationTokenResponse:
    """Return the verification token stored in this browser session.

    A token is only ever readable from the session that initiated the login.
    """
    token = request.session.get(SESSION_TOKEN_KEY)
    expires_at = request.session.get(SESSION_EXPIRES_KEY) or 0
    now = int(time.time())

    if not token or expires_at <= now:
        clear_verification(request.session)
        raise AuthError(
            "No pending verification token in session",
            code="token_expired",
            user_message="Token expired or not found",
        )

    return VerificationTokenResponse(token=token, expires_in=expires_at - now)


@router.post(
    "/verified_login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete facial sign-on",
    responses={
        400: {"description": "Required fields missing"},
        401: {"description": "Session token replayed or not confirmed by Axiam"},
        403: {"description": "Client id does not match the account"},
        404: {"description": "No matching account"},
    },
)
async def verified_login(
    body: SessionRequest,
    request: Request,
    strategy: SessionStrategyDep,
) -> LoginResponse:
    """Sign the browser in once the relay has reported a verified event."""
    if not body.verification_token and request.session.get(SESSION_TOKEN_KEY):
        body = body.model_copy(update={"verification_token": request.session[SESSION_TOKEN_KEY]})

    outcome = await strategy.create(body)

    clear_verification(request.session)
    request.session[SESSION_USER_KEY] = outcome.user.id

    logger.info("user_signed_in", user_id=outcome.user.id, strategy=outcome.strategy)

    return LoginResponse(
        message="Successfully signed in with facial recognition",
        redirect_url=outcome.redirect_url,
    )
