"""
EduPortal Billing - Payment Gateway

Razorpay integration for portal checkout (INR, amounts sent in paise).

Razorpay API docs: https://razorpay.com/docs/api/orders/

Signature schemes:
- checkout callback: HMAC-SHA256 of "<order_id>|<payment_id>" keyed with
  the API key secret
- webhooks: HMAC-SHA256 of the raw request body keyed with the webhook secret
"""

import hashlib
import hmac
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union

import httpx

from app.utils.error_handling import PaymentGatewayException

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class ProviderOrder:
    """Order as created on the provider side."""
    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    notes: Dict[str, str] = field(default_factory=dict)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "status": self.status,
            "notes": self.notes,
        }


# =============================================================================
# HELPERS
# =============================================================================

def to_smallest_unit(amount: Union[int, Decimal]) -> int:
    """Convert whole rupees to paise. Exact for whole amounts."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_receipt() -> str:
    """Receipt id unique per order attempt (Razorpay limit is 40 characters)."""
    return f"rcpt_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def _signatures_match(expected: str, signature: str) -> bool:
    # compare_digest rejects non-ASCII str, and signatures come from the caller
    return hmac.compare_digest(
        expected.encode("ascii"),
        signature.encode("utf-8", "surrogatepass"),
    )


def generate_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Expected checkout signature for an order/payment pair."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    order_id: str,
    payment_id: str,
    signature: Optional[str],
    secret: str,
) -> bool:
    """Constant-time check of a checkout callback signature."""
    if not secret or not signature:
        return False
    expected = generate_payment_signature(order_id, payment_id, secret)
    return _signatures_match(expected, signature)


def generate_webhook_signature(payload: bytes, secret: str) -> str:
    """Expected webhook signature over the raw body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify a Razorpay webhook signature.
    
    Args:
        payload: Raw request body bytes
        signature: X-Razorpay-Signature header value
        secret: Webhook secret configured in the Razorpay dashboard
        
    Returns:
        True if signature is valid
    """
    if not secret or not signature:
        return False
    expected = generate_webhook_signature(payload, secret)
    return _signatures_match(expected, signature)


# =============================================================================
# ABSTRACT PAYMENT PROVIDER
# =============================================================================

class PaymentProvider(ABC):
    """Abstract base class for payment providers."""
    
    @property
    @abstractmethod
    def public_key(self) -> str:
        """Publishable key handed to the checkout client."""
        pass
    
    @abstractmethod
    async def create_order(
        self,
        amount_in_smallest_unit: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> ProviderOrder:
        """Create a provider-side order."""
        pass


# =============================================================================
# RAZORPAY PROVIDER
# =============================================================================

class RazorpayProvider(PaymentProvider):
    """
    Razorpay payment provider.
    
    - One bounded-timeout request per order, never retried (a retry could
      create a duplicate provider order; callers retry with a new receipt)
    - Stub mode when no key secret is configured, for local development
    """
    
    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        from app.config import settings
        
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self.base_url = (base_url or settings.razorpay_base_url).rstrip("/")
        self.timeout = timeout or settings.razorpay_timeout_seconds
        
        if not self.key_secret:
            logger.warning("RazorpayProvider initialized without key secret - using stub mode")
            self._is_stub = True
        else:
            self._is_stub = False
            logger.info(f"RazorpayProvider initialized (live={self.key_id.startswith('rzp_live_')})")
    
    @property
    def public_key(self) -> str:
        return self.key_id
    
    @property
    def is_stub(self) -> bool:
        return self._is_stub
    
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the Razorpay API.
        
        Raises:
            PaymentGatewayException: On timeouts, network errors and 4xx/5xx responses
        """
        url = f"{self.base_url}{endpoint}"
        
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    auth=(self.key_id, self.key_secret),
                    json=data,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Razorpay API timeout: {method} {endpoint}")
            raise PaymentGatewayException(
                "Payment provider timed out. Please try again.",
                original_error=e,
            )
        except httpx.RequestError as e:
            logger.error(f"Razorpay API request error: {e}")
            raise PaymentGatewayException(
                "Could not reach payment provider",
                original_error=e,
            )
        
        logger.debug(f"Razorpay {method} {endpoint}: status={response.status_code}")
        
        try:
            result = response.json()
        except ValueError:
            result = {}
        
        if response.status_code >= 400:
            error = result.get("error") or {}
            description = error.get("description") or f"HTTP {response.status_code}"
            logger.error(f"Razorpay API error: {description}")
            raise PaymentGatewayException(
                f"Payment provider error: {description}",
                details={"status_code": response.status_code, "provider_code": error.get("code")},
            )
        
        if not result.get("id"):
            raise PaymentGatewayException("Payment provider returned an invalid response")
        
        return result
    
    async def create_order(
        self,
        amount_in_smallest_unit: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> ProviderOrder:
        """
        Create a Razorpay order.
        
        Args:
            amount_in_smallest_unit: Amount in paise
            currency: ISO currency code
            receipt: Unique receipt id for this attempt
            notes: Reconciliation metadata (string values)
        """
        notes = {key: str(value) for key, value in (notes or {}).items()}
        
        if self._is_stub:
            logger.info(f"[STUB] Creating order {receipt} for {amount_in_smallest_unit} {currency}")
            return ProviderOrder(
                id=f"order_stub{uuid.uuid4().hex[:14]}",
                amount=amount_in_smallest_unit,
                currency=currency,
                receipt=receipt,
                notes=notes,
            )
        
        result = await self._make_request(
            "POST",
            "/orders",
            data={
                "amount": amount_in_smallest_unit,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            },
        )
        
        logger.info(f"Razorpay order created: {result['id']} ({receipt})")
        
        return ProviderOrder(
            id=result["id"],
            amount=result.get("amount", amount_in_smallest_unit),
            currency=result.get("currency", currency),
            receipt=result.get("receipt", receipt),
            status=result.get("status", "created"),
            notes=result.get("notes") or notes,
        )


def get_payment_provider() -> PaymentProvider:
    """FastAPI dependency for the configured payment provider."""
    return RazorpayProvider()
