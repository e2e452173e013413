"""
EduPortal Billing - Payment Webhook Service

Out-of-band confirmation channel from Razorpay. The synchronous verify
endpoint stays authoritative for activation; the webhook catches payments
that fail after an order was created when the client never comes back.

Once the signature is accepted the provider always gets an acknowledgment,
even if processing fails internally, because anything else triggers
provider retries.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.base import utcnow
from app.models.billing import Order
from app.models.billing_enums import OrderStatus
from app.services.payment_gateway import verify_webhook_signature
from app.utils.error_handling import SignatureMismatchException

logger = logging.getLogger(__name__)


ACKNOWLEDGED = {"received": True}


class WebhookService:
    """Verifies and dispatches provider webhook events."""
    
    def __init__(self, db: AsyncSession, webhook_secret: Optional[str] = None):
        self.db = db
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.razorpay_webhook_secret
        )
    
    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> None:
        """
        Check the raw-body signature when a webhook secret is configured.
        
        Without a secret, verification is skipped (development only).
        """
        if not self.webhook_secret:
            if settings.is_production:
                logger.warning("Webhook secret not configured - skipping signature verification")
            else:
                logger.debug("Webhook secret not configured - skipping signature verification")
            return
        
        if not verify_webhook_signature(raw_body, signature, self.webhook_secret):
            logger.warning("Invalid webhook signature - possible tampering")
            raise SignatureMismatchException("Invalid webhook signature")
    
    async def handle(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Process a webhook delivery.
        
        Raises:
            SignatureMismatchException: signature present but invalid (no state change)
        """
        self.verify_signature(raw_body, signature)
        
        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError:
            logger.error("Webhook body is not valid JSON; acknowledging")
            return dict(ACKNOWLEDGED)
        
        event_type = payload.get("event") if isinstance(payload, dict) else None
        
        try:
            await self.dispatch(event_type, payload)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Webhook processing error for {event_type}: {e}", exc_info=True)
        
        return dict(ACKNOWLEDGED)
    
    async def dispatch(self, event_type: Optional[str], payload: Dict[str, Any]) -> None:
        """Route an event to its handler. Unknown events are ignored."""
        logger.info(f"Received payment webhook: {event_type}")
        
        if event_type == "payment.captured":
            await self._handle_payment_captured(payload)
        elif event_type == "payment.failed":
            await self._handle_payment_failed(payload)
        else:
            logger.info(f"Ignoring unhandled webhook event: {event_type}")
    
    @staticmethod
    def _payment_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
        return ((payload.get("payload") or {}).get("payment") or {}).get("entity") or {}
    
    async def _handle_payment_captured(self, payload: Dict[str, Any]) -> None:
        """Log only; activation happens through the verify endpoint."""
        entity = self._payment_entity(payload)
        logger.info(
            f"Payment captured: {entity.get('id')} for order {entity.get('order_id')}"
        )
    
    async def _handle_payment_failed(self, payload: Dict[str, Any]) -> None:
        """Mark the order failed regardless of its current status."""
        entity = self._payment_entity(payload)
        provider_order_id = entity.get("order_id")
        if not provider_order_id:
            logger.warning("payment.failed webhook without order_id")
            return
        
        reason = entity.get("error_description")
        result = await self.db.execute(
            update(Order)
            .where(Order.provider_order_id == provider_order_id)
            .values(
                status=OrderStatus.FAILED,
                failure_reason=reason[:500] if isinstance(reason, str) else None,
                updated_at=utcnow(),
            )
        )
        await self.db.commit()
        
        if result.rowcount:
            logger.info(f"Order {provider_order_id} marked failed: {reason}")
        else:
            logger.warning(f"payment.failed for unknown order {provider_order_id}")
