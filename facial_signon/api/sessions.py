"""Sessions API for single-page clients."""

from fastapi import APIRouter, Request, status

from facial_signon.api.facial_sign_on.login import SESSION_USER_KEY, clear_verification
from facial_signon.core.exceptions import AuthError, ValidationError
from facial_signon.core.guards import guard_condition, guard_session_user
from facial_signon.core.logging import get_logger
from facial_signon.dependencies import SessionStrategyDep, UserRepoDep
from facial_signon.models.requests import ApiSessionRequest
from facial_signon.models.responses import MessageResponse, SessionResponse, SessionUser

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

FACIAL_LOGIN_METHOD = "facial_sign_on"


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Create a session after facial verification",
    responses={
        200: {
            "description": "Session created",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "message": "Session created",
                        "user": {"id": 1, "email": "user@example.com", "client_id": "cid_123"},
                    }
                }
            },
        },
        400: {"description": "Unsupported login method or missing fields"},
        401: {"description": "Session token replayed or not confirmed"},
        403: {"description": "Client id does not match the account"},
    },
)
async def create_session(
    body: ApiSessionRequest,
    request: Request,
    strategy: SessionStrategyDep,
) -> SessionResponse:
    """Create a session for ``login_method == "facial_sign_on"`` requests."""
    with guard_condition(
        body.login_method == FACIAL_LOGIN_METHOD,
        ValidationError("Invalid login method", {"field": "login_method"}),
    ):
        outcome = await strategy.create(body)

    clear_verification(request.session)
    request.session[SESSION_USER_KEY] = outcome.user.id

    logger.info("api_session_created", user_id=outcome.user.id, strategy=outcome.strategy)

    return SessionResponse(
        message="Session created",
        user=SessionUser(id=outcome.user.id, email=outcome.user.email, client_id=outcome.client_id),
    )


@router.get(
    "/current",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Current session user",
    responses={401: {"description": "Not signed in"}},
)
async def current_session(request: Request, users: UserRepoDep) -> SessionResponse:
    with guard_session_user(request.session) as user_id:
        user = await users.get_by_id(user_id)

    if user is None:
        request.session.clear()
        raise AuthError("Session user no longer exists", code="not_signed_in", user_message="Not authenticated")

    return SessionResponse(
        user=SessionUser(id=user.id, email=user.email, client_id=user.vendor_client_id)
    )


@router.delete(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign out",
)
async def destroy_session(request: Request) -> MessageResponse:
    user_id = request.session.get(SESSION_USER_KEY)
    request.session.clear()

    logger.info("user_signed_out", user_id=user_id)

    return MessageResponse(message="Signed out")
