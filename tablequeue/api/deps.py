"""Shared route dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from tablequeue.services.notification_bus import NotificationBus


def get_bus(request: Request) -> NotificationBus:
    """The process-wide bus created with the app."""
    return request.app.state.bus


Bus = Annotated[NotificationBus, Depends(get_bus)]
