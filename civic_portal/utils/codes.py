"""Human-readable reference codes (tracking codes, bill and receipt numbers)."""
import secrets
import string
from datetime import datetime
from typing import Optional

from civic_portal.utils.time import utcnow

_ALPHABET = string.ascii_uppercase + string.digits


def _random_suffix(length: int = 6) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_tracking_code(when: Optional[datetime] = None) -> str:
    """Complaint tracking code, e.g. ``CMP-20240115-7K2QXA``."""
    when = when or utcnow()
    return f"CMP-{when:%Y%m%d}-{_random_suffix()}"


def generate_bill_number(when: Optional[datetime] = None) -> str:
    when = when or utcnow()
    return f"BILL-{when:%Y%m}-{_random_suffix(8)}"


def generate_transaction_id(when: Optional[datetime] = None) -> str:
    when = when or utcnow()
    return f"TXN-{when:%Y%m%d%H%M%S}-{_random_suffix()}"


def generate_receipt_number(when: Optional[datetime] = None) -> str:
    when = when or utcnow()
    return f"RCPT-{when:%Y%m%d}-{_random_suffix()}"


def generate_staff_code(department_code: Optional[str] = None) -> str:
    prefix = (department_code or "STF").upper()
    return f"{prefix}-{_random_suffix(5)}"
