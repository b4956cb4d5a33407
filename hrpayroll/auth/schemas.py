"""Auth schemas — the authenticated caller as seen by routers."""

from pydantic import BaseModel

from hrpayroll.common.constants import UserRole


class CurrentUser(BaseModel):
    """Identity resolved from a validated access token."""

    subject: str
    role: UserRole = UserRole.employee
