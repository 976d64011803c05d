"""WebSocket API for live dashboard updates.

Provides:
- WS /ws/enrollments - Enrollment record changes
- WS /ws/audit - Audit log entries (admin only)
"""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from jose import JWTError

from src.auth.permissions import UserRole, ensure_permission, is_at_least_coordinator
from src.auth.schemas import Principal
from src.auth.security import authenticate_token
from src.config import get_settings
from src.core.context import RequestContext
from src.core.errors import PermissionDeniedError, SubscriptionError
from src.core.logging import get_logger
from src.realtime.dependencies import get_change_feed
from src.realtime.feed import ChangeFeed, EventPredicate, Subscription
from src.realtime.filters import (
    all_enrollments,
    audit_entries,
    enrollments_for_course,
    enrollments_for_student,
)


logger = get_logger(__name__)

router = APIRouter(tags=["realtime-ws"])

# Close codes
WS_AUTH_FAILED = 4001
WS_PERMISSION_DENIED = 4003
WS_TRY_AGAIN_LATER = 1013


def authenticate_websocket(token: str) -> Principal | None:
    """Authenticate WebSocket connection using JWT token.

    Returns the principal if valid, None otherwise.
    """
    try:
        return authenticate_token(token)
    except JWTError as e:
        logger.warning("websocket_auth_failed", error=str(e))
    return None


def enrollment_predicate(principal: Principal, course_id: str | None) -> EventPredicate:
    """Students see their own records; coordinators and admins see all or a course."""
    if not is_at_least_coordinator(principal.role):
        own = enrollments_for_student(principal.id)
        if course_id is None:
            return own
        in_course = enrollments_for_course(course_id)
        return lambda event: own(event) and in_course(event)

    if course_id:
        return enrollments_for_course(course_id)
    return all_enrollments()


async def forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    """Send subscription events until it closes or fails."""
    try:
        async for event in subscription:
            await websocket.send_json(event.to_message())
    except SubscriptionError as e:
        logger.warning("websocket_subscription_failed", subscription_id=subscription.id)
        await websocket.send_json({"type": "error", **e.to_dict()})
        await websocket.close(code=WS_TRY_AGAIN_LATER, reason=e.code)


async def keep_alive(websocket: WebSocket, ping_interval: float) -> None:
    """Answer client pings and ping idle clients."""
    while True:
        try:
            message = await asyncio.wait_for(
                websocket.receive_json(),
                timeout=ping_interval,
            )
            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
        except TimeoutError:
            await websocket.send_json({"type": "ping"})


async def stream_subscription(
    websocket: WebSocket,
    principal: Principal,
    subscription: Subscription,
    stream: str,
) -> None:
    """Run one accepted connection until either side stops."""
    ping_interval = get_settings().realtime_ping_interval_seconds

    with RequestContext(user_id=principal.id):
        await websocket.accept()
        logger.info("websocket_connected", stream=stream, role=principal.role.value)

        async with subscription:
            await websocket.send_json(
                {
                    "type": "connected",
                    "stream": stream,
                    "subscription_id": subscription.id,
                }
            )

            tasks = [
                asyncio.create_task(forward_events(websocket, subscription)),
                asyncio.create_task(keep_alive(websocket, ping_interval)),
            ]
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    error = task.exception()
                    if error and not isinstance(error, WebSocketDisconnect):
                        logger.warning(
                            "websocket_error",
                            stream=stream,
                            error=str(error),
                            error_type=type(error).__name__,
                        )
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("websocket_disconnected", stream=stream)


@router.websocket("/ws/enrollments")
async def enrollments_websocket(
    websocket: WebSocket,
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    token: str = Query(..., description="JWT access token"),
    course_id: str | None = Query(None, description="Limit to one course"),
) -> None:
    """WebSocket endpoint for enrollment record changes.

    Connect with: ws://host/ws/enrollments?token=<jwt_token>[&course_id=<id>]

    Messages received:
    - {"type": "change", "entity_type": "enrollment", "data": {...}, ...}
    - {"type": "error", "code": "subscription_failed", "retryable": true}
    - {"type": "ping"} - Keep-alive ping

    Messages you can send:
    - {"type": "ping"} - Answered with {"type": "pong"}
    """
    principal = authenticate_websocket(token)
    if not principal:
        await websocket.close(code=WS_AUTH_FAILED, reason="Authentication failed")
        return

    subscription = feed.subscribe(enrollment_predicate(principal, course_id))
    await stream_subscription(websocket, principal, subscription, "enrollments")


@router.websocket("/ws/audit")
async def audit_websocket(
    websocket: WebSocket,
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    token: str = Query(..., description="JWT access token"),
) -> None:
    """WebSocket endpoint for new audit log entries (admin only)."""
    principal = authenticate_websocket(token)
    if not principal:
        await websocket.close(code=WS_AUTH_FAILED, reason="Authentication failed")
        return

    try:
        ensure_permission(principal.id, principal.role, UserRole.ADMIN, "watch_audit_log")
    except PermissionDeniedError as e:
        await websocket.close(code=WS_PERMISSION_DENIED, reason=e.code)
        return

    await stream_subscription(websocket, principal, feed.subscribe(audit_entries()), "audit")
