"""Allow-list gate over the email an upstream login layer has authenticated."""
import logging
import os

from fastapi import Depends, Header, HTTPException

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Authenticated-Email"


def _email_list(var_name: str) -> list[str]:
    raw = os.getenv(var_name, "")
    return [email.strip().lower() for email in raw.split(",") if email.strip()]


def get_allowed_emails() -> list[str]:
    """Emails allowed in, from the comma separated ALLOWED_EMAILS variable."""
    return _email_list("ALLOWED_EMAILS")


def is_email_allowed(email: str) -> bool:
    return email.strip().lower() in get_allowed_emails()


def is_super_admin(email: str) -> bool:
    return email.strip().lower() in _email_list("SUPER_ADMIN_EMAILS")


def require_allowed_email(
    authenticated_email: str | None = Header(default=None, alias=AUTH_HEADER),
) -> str:
    """FastAPI dependency returning the caller's email or rejecting the request."""
    if not authenticated_email or not authenticated_email.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not is_email_allowed(authenticated_email):
        logger.warning(f"Rejected request from non-allowed email: {authenticated_email}")
        raise HTTPException(status_code=403, detail="This email is not authorized to access this application")
    return authenticated_email.strip().lower()


def require_super_admin(email: str = Depends(require_allowed_email)) -> str:
    """Only super admins may change which users the sheet shows."""
    if not is_super_admin(email):
        raise HTTPException(status_code=403, detail="Only super admins can change user visibility")
    return email
