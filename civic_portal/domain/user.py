"""Domain models for users, authentication and preferences."""
import re
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from civic_portal.models import UserRole

PHONE_PATTERN = re.compile(r"^9\d{9}$")


def validate_password_strength(password: str) -> str:
    """At least 8 characters with an upper-case letter, a lower-case letter and a digit."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain a lowercase letter")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain a number")
    return password


def validate_phone(phone: Optional[str]) -> Optional[str]:
    if phone in (None, ""):
        return None
    phone = phone.strip()
    if not PHONE_PATTERN.match(phone):
        raise ValueError("Phone must be a 10 digit mobile number starting with 9")
    return phone


Password = Annotated[str, AfterValidator(validate_password_strength)]
Phone = Annotated[Optional[str], AfterValidator(validate_phone)]


class UserOut(BaseModel):
    """Public view of a portal account."""
    id: str
    email: EmailStr
    full_name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRole
    ward_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "3f1c2a9e-0d4b-4c55-9b0e-5a3e3b4f9a10",
                "email": "sita@example.com",
                "full_name": "Sita Sharma",
                "phone": "9812345678",
                "role": "citizen",
                "ward_id": None,
                "is_active": True
            }
        }


class UserDetail(UserOut):
    complaint_count: int = 0
    payment_count: int = 0
    total_paid: float = 0.0


class TokenData(BaseModel):
    """JWT token payload data.

    Attributes:
        sub: Subject (user ID)
        email: User email
        role: User role
        exp: Token expiration time
        iat: Token issued at time
    """
    sub: str
    email: str
    role: str
    exp: datetime
    iat: Optional[datetime] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "email": "sita@example.com",
                "password": "Secure123"
            }
        }


class TokenResponse(BaseModel):
    """Authentication token response.

    Attributes:
        access_token: JWT access token
        token_type: Token type (always "bearer")
        expires_in: Token lifetime in seconds
        user: Authenticated user details
    """
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class RegisterRequest(BaseModel):
    email: EmailStr
    password: Password
    full_name: str = Field(min_length=2, max_length=255)
    phone: Phone = None
    ward_id: Optional[str] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    phone: Phone = None
    address: Optional[str] = Field(default=None, max_length=500)
    ward_id: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: Password


class NotificationPreferences(BaseModel):
    """Effective notification preferences (stored overrides merged over defaults)."""
    email_enabled: bool = True
    sms_enabled: bool = False
    push_enabled: bool = True
    in_app_enabled: bool = True
    notify_on_complaint_status: bool = True
    notify_on_complaint_assigned: bool = True
    notify_on_comment: bool = True
    notify_on_new_notice: bool = True
    notify_on_bill: bool = True
    notify_on_payment: bool = True
    digest_frequency: str = "immediate"
    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[str] = "22:00"
    quiet_hours_end: Optional[str] = "07:00"


class NotificationPreferencesUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    notify_on_complaint_status: Optional[bool] = None
    notify_on_complaint_assigned: Optional[bool] = None
    notify_on_comment: Optional[bool] = None
    notify_on_new_notice: Optional[bool] = None
    notify_on_bill: Optional[bool] = None
    notify_on_payment: Optional[bool] = None
    digest_frequency: Optional[str] = Field(default=None, pattern="^(immediate|daily|weekly)$")
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
    quiet_hours_end: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


class RoleUpdate(BaseModel):
    role: UserRole


class UserStatusUpdate(BaseModel):
    is_active: bool


class AdminUserCreate(RegisterRequest):
    """Account created by an admin, e.g. for staff and supervisors."""
    role: UserRole = UserRole.STAFF
