"""Public relay routing information for the browser widget."""

from fastapi import APIRouter, status

from facial_signon.dependencies import ContextDep
from facial_signon.models.responses import SiteCredentialsResponse

router = APIRouter(prefix="/facial_sign_on", tags=["facial-sign-on"])


@router.get(
    "/site_credentials",
    response_model=SiteCredentialsResponse,
    status_code=status.HTTP_200_OK,
    summary="Relay routing information",
)
async def site_credentials(context: ContextDep) -> SiteCredentialsResponse:
    """Return the channel prefix and relay URL.

    Only routing data is exposed; Axiam keys and the relay signing secret stay
    on the server.
    """
    relay = context.settings.relay
    return SiteCredentialsResponse(channel_prefix=relay.channel_prefix, server_url=relay.server_url)
