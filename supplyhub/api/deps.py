"""
FastAPI dependencies for authentication, authorization and services.

Bearer tokens carry the user id in ``sub``; the user row supplies the role
that every route is gated on.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from supplyhub.core.clock import Clock, utcnow
from supplyhub.core.config import Settings, get_settings
from supplyhub.core.logging import get_logger, set_user_id
from supplyhub.core.security import TokenError, decode_token
from supplyhub.database.connection import get_db
from supplyhub.database.models.user import User, UserRole
from supplyhub.services.deliveries.service import DeliveryService
from supplyhub.services.notifications.service import NotificationService
from supplyhub.services.payments.service import PaymentService
from supplyhub.services.quotes.service import QuoteService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_clock() -> Clock:
    """Time source for request handlers; overridden in tests."""
    return utcnow


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DatabaseSession,
) -> User:
    """
    Validate the bearer token and load the authenticated user.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired, or
            the user does not exist or is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        payload = decode_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", code=e.code)
        raise credentials_exception from e

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        logger.warning("Authentication failed: Invalid user ID format", sub=payload.get("sub"))
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning(
            "Authentication failed: User missing or inactive",
            user_id=str(user_id),
        )
        raise credentials_exception

    set_user_id(str(user.id))
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that admits only the given roles.

    Example:
        @router.get("/all")
        async def list_all(user: Annotated[User, Depends(require_role(UserRole.ADMIN))]):
            ...
    """

    async def role_checker(current_user: CurrentUser) -> User:
        if current_user.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=str(current_user.id),
                user_role=current_user.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return role_checker


ClientUser = Annotated[User, Depends(require_role(UserRole.CLIENT))]
ManagerUser = Annotated[User, Depends(require_role(UserRole.MANAGER))]
AgentUser = Annotated[User, Depends(require_role(UserRole.DELIVERY_AGENT))]
StaffUser = Annotated[User, Depends(require_role(UserRole.MANAGER, UserRole.ADMIN))]
AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]

SettingsDep = Annotated[Settings, Depends(get_settings)]
ClockDep = Annotated[Clock, Depends(get_clock)]


def get_quote_service(db: DatabaseSession, settings: SettingsDep, clock: ClockDep) -> QuoteService:
    return QuoteService(db, settings=settings, clock=clock)


def get_delivery_service(
    db: DatabaseSession, settings: SettingsDep, clock: ClockDep
) -> DeliveryService:
    return DeliveryService(db, settings=settings, clock=clock)


def get_payment_service(db: DatabaseSession, clock: ClockDep) -> PaymentService:
    return PaymentService(db, clock=clock)


def get_notification_service(db: DatabaseSession, clock: ClockDep) -> NotificationService:
    return NotificationService(db, clock=clock)


QuoteServiceDep = Annotated[QuoteService, Depends(get_quote_service)]
DeliveryServiceDep = Annotated[DeliveryService, Depends(get_delivery_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
