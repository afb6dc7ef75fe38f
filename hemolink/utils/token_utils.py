# hemolink/utils/token_utils.py
import secrets
from datetime import datetime, timedelta


def generate_proposal_token() -> str:
    """Generate an unguessable token for a donor proposal (64 hex chars)."""
    return secrets.token_hex(32)


def proposal_expiry(created_at: datetime, lifetime_hours: int = 24) -> datetime:
    return created_at + timedelta(hours=lifetime_hours)
