"""FastAPI dependency injection functions.

Every dependency resolves from the ``AppContext`` stored on the application,
so a test can swap the whole context without patching module globals.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from facial_signon.context import AppContext
from facial_signon.db.repositories.users import UserRepository
from facial_signon.services.login import LoginInitiationService
from facial_signon.services.relay import RelayAuthorizer, RelayBroker
from facial_signon.services.relay_token import RelayTokenService
from facial_signon.services.revocation import RevocationService
from facial_signon.services.session_creation import SessionStrategy, build_session_strategy
from facial_signon.services.token_cache import TokenCache
from facial_signon.services.vendor import VendorClient


def get_context(connection: HTTPConnection) -> AppContext:
    """Return the application context for an HTTP request or WebSocket."""
    return connection.app.state.context


ContextDep = Annotated[AppContext, Depends(get_context)]


async def get_db(context: ContextDep) -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session, to be used as a dependency."""
    async for session in context.db.session():
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_db)]


def get_cache(context: ContextDep) -> TokenCache:
    return context.cache


def get_vendor(context: ContextDep) -> VendorClient:
    return context.vendor


def get_revocation(context: ContextDep) -> RevocationService:
    return context.revocation


def get_relay_tokens(context: ContextDep) -> RelayTokenService:
    return context.relay_tokens


def get_relay_authorizer(context: ContextDep) -> RelayAuthorizer:
    return context.relay_authorizer


def get_broker(context: ContextDep) -> RelayBroker:
    return context.broker


def get_user_repository(session: SessionDep) -> UserRepository:
    """Dependency for getting the user repository."""
    return UserRepository(session)


def get_login_service(
    context: ContextDep,
    users: Annotated[UserRepository, Depends(get_user_repository)],
) -> LoginInitiationService:
    """Dependency for getting the login initiation service."""
    return LoginInitiationService(
        users=users,
        vendor=context.vendor,
        cache=context.cache,
        site_id=context.settings.relay.site_id,
        ttl=context.settings.signon.verification_ttl,
    )


def get_session_strategy(
    context: ContextDep,
    users: Annotated[UserRepository, Depends(get_user_repository)],
    login: Annotated[LoginInitiationService, Depends(get_login_service)],
) -> SessionStrategy:
    """Dependency for the configured session creation strategy."""
    return build_session_strategy(
        context.settings.signon.session_strategy,
        users=users,
        replay_guard=context.replay_guard,
        login=login,
        vendor=context.vendor,
        settings=context.settings.signon,
    )


# Annotated dependency types
CacheDep = Annotated[TokenCache, Depends(get_cache)]
VendorDep = Annotated[VendorClient, Depends(get_vendor)]
RevocationDep = Annotated[RevocationService, Depends(get_revocation)]
RelayTokenDep = Annotated[RelayTokenService, Depends(get_relay_tokens)]
RelayAuthorizerDep = Annotated[RelayAuthorizer, Depends(get_relay_authorizer)]
BrokerDep = Annotated[RelayBroker, Depends(get_broker)]
UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
LoginServiceDep = Annotated[LoginInitiationService, Depends(get_login_service)]
SessionStrategyDep = Annotated[SessionStrategy, Depends(get_session_strategy)]
