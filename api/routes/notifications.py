"""
Gateway webhook route.

200 acknowledges the event (including change types this service ignores);
400 malformed payload, 404 unknown payment, 500 storage failure so the
gateway's retry policy engages.
"""
from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_notification_reconciler
from api.middleware import get_client_ip
from application.dtos.payments import PixNotification
from application.services.notification_service import NotificationReconciler
from core.exceptions import ForbiddenException
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings


router = APIRouter(prefix="/notifications", tags=["Notifications"])
logger = get_logger(__name__)


def _ip_allowed(remote_ip: str | None, allowlist: list[str]) -> bool:
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


async def verify_webhook_source(request: Request) -> None:
    allowlist = payment_settings.webhook.ip_allowlist or []
    if not allowlist:
        return
    remote_ip = get_client_ip() or (request.client.host if request.client else None)
    if not _ip_allowed(remote_ip, allowlist):
        logger.warning("webhook_ip_not_allowed", remote_ip=remote_ip)
        raise ForbiddenException("Webhook source not allowed")


@router.post("/pix", summary="PIX gateway notification", dependencies=[Depends(verify_webhook_source)])
async def pix_notification(
    payload: PixNotification,
    reconciler: NotificationReconciler = Depends(get_notification_reconciler),
):
    result = await reconciler.handle(payload)
    message = "Notification processed" if result.handled else "Notification acknowledged"
    return success_response(data=result.model_dump(mode="json"), message=message)
