"""JSON API used by the embeddable widget: client lookup and push by client id."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from facial_signon.core.guards import guard_present
from facial_signon.core.logging import get_logger
from facial_signon.dependencies import LoginServiceDep, VendorDep
from facial_signon.models.requests import ClientIdRequest, EmailRequest
from facial_signon.models.responses import VendorPassthrough
from facial_signon.services.login import validate_email

logger = get_logger(__name__)

router = APIRouter(prefix="/api/facial_sign_on", tags=["facial-sign-on-api"])

VENDOR_ERROR_RESPONSES = {
    400: {"description": "Invalid parameters (Axiam codes 1006, 1025)"},
    403: {"description": "Facial sign-on disabled or account locked (1002, 1013)"},
    404: {
        "description": "Client or device not found (1007, 1012)",
        "content": {
            "application/json": {
                "example": {
                    "success": False,
                    "error": "Not found.",
                    "code": "client_not_found",
                    "vendor_code": 1007,
                }
            }
        },
    },
    429: {"description": "Rate limited (1020, 1021)"},
    502: {"description": "Other Axiam failure"},
    503: {"description": "Axiam unreachable"},
}


@router.post(
    "/lookup",
    response_model=VendorPassthrough,
    status_code=status.HTTP_200_OK,
    summary="Look up the Axiam client for an email",
    responses=VENDOR_ERROR_RESPONSES,
)
async def lookup(body: EmailRequest, vendor: VendorDep) -> JSONResponse:
    email = validate_email(body.email)
    payload = await vendor.lookup_client(email)
    return JSONResponse(content=payload)


@router.post(
    "/push_notification",
    response_model=VendorPassthrough,
    status_code=status.HTTP_200_OK,
    summary="Send a push notification to an Axiam client",
    responses=VENDOR_ERROR_RESPONSES,
)
async def push_notification(
    body: ClientIdRequest,
    vendor: VendorDep,
    login: LoginServiceDep,
) -> JSONResponse:
    """Push to a client id and return Axiam's payload, verification token included.

    The token is cached so the relay accepts subscriptions for it.
    """
    with guard_present(body.client_id, "Client ID is required", "client_id") as client_id:
        result = await vendor.push_notification(client_id)

    await login.remember_token(result.verification_token, client_id)

    logger.info("widget_push_notification_sent")

    return JSONResponse(content=result.payload)
