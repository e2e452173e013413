"""
EduPortal Billing - Billing Email Service

Payment confirmation emails sent after a verified checkout.
"""

import logging
from datetime import datetime
from typing import List, Optional

from app.config import settings
from app.config.pricing_config import (
    get_feature_display_name,
    format_rupees,
    Portal,
    PORTAL_INFO,
)
from app.services.email_service import EmailService, EmailMessage

logger = logging.getLogger(__name__)


class BillingEmailService:
    """Service for sending billing-related transactional emails."""
    
    def __init__(self, email_service: Optional[EmailService] = None):
        self.email_service = email_service or EmailService()
        self.company_name = settings.app_name
        self.dashboard_url = f"{settings.frontend_url.rstrip('/')}/dashboard"
        self.billing_email = settings.billing_email
    
    def _portal_names(self, portals: List[str]) -> List[str]:
        names = []
        for portal_id in portals:
            try:
                names.append(PORTAL_INFO[Portal(portal_id)].name)
            except ValueError:
                names.append(portal_id)
        return names
    
    def _get_base_html_template(self, content: str) -> str:
        """Wrap content in the shared email layout."""
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{self.company_name}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        {content}
        <p style="font-size: 12px; color: #666;">
            &copy; {datetime.now().year} {self.company_name}.
            Billing questions: <a href="mailto:{self.billing_email}">{self.billing_email}</a>
        </p>
    </div>
</body>
</html>
"""
    
    # ===========================================
    # PAYMENT CONFIRMATION
    # ===========================================
    
    async def send_payment_success(
        self,
        email: str,
        name: str,
        portals: List[str],
        features: List[str],
        amount: int,
        billing_cycle: str,
        payment_id: str,
        valid_until: datetime,
    ) -> bool:
        """Send payment success confirmation email."""
        subject = f"Payment Successful - {self.company_name}"
        portal_names = self._portal_names(portals)
        feature_names = [get_feature_display_name(f) for f in features]
        valid_until_text = valid_until.strftime("%d %B %Y")
        
        feature_rows = "".join(f"<li>{feature}</li>" for feature in feature_names) or "<li>None</li>"
        content = f"""
        <h2 style="color: #16a34a;">Payment Successful!</h2>
        <p>Hi {name},</p>
        <p>Thank you for your payment. Your subscription is now active.</p>
        <p><strong>Amount paid:</strong> {format_rupees(amount)} ({billing_cycle})</p>
        <p><strong>Payment ID:</strong> {payment_id}</p>
        <p><strong>Portals:</strong> {", ".join(portal_names)}</p>
        <p><strong>Add-on features:</strong></p>
        <ul>{feature_rows}</ul>
        <p><strong>Valid until:</strong> {valid_until_text}</p>
        <p><a href="{self.dashboard_url}">Go to Dashboard</a></p>
        """
        
        body_text = (
            f"Payment Successful!\n\n"
            f"Hi {name},\n\n"
            f"Amount paid: {format_rupees(amount)} ({billing_cycle})\n"
            f"Payment ID: {payment_id}\n"
            f"Portals: {', '.join(portal_names)}\n"
            f"Add-on features: {', '.join(feature_names) or 'None'}\n"
            f"Valid until: {valid_until_text}\n\n"
            f"Dashboard: {self.dashboard_url}\n"
        )
        
        return await self.email_service.send_email(EmailMessage(
            to=[email],
            subject=subject,
            body_text=body_text,
            body_html=self._get_base_html_template(content),
        ))
