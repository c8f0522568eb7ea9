import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from dosewatch.models.user import User, UserProfile

# Loose shape check: something@something.something, no whitespace
EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")

DEFAULT_DISPLAY_NAME = "Paciente"


@dataclass(frozen=True)
class OwnerContact:
    login_identifier: Optional[str]
    preferred_email: Optional[str] = None
    display_name: Optional[str] = None


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_PATTERN.search(value) is not None


def display_name_for(profile: Optional[UserProfile]) -> str:
    if profile is not None and profile.name:
        return f"{profile.name} {profile.last_name or ''}".strip()
    return DEFAULT_DISPLAY_NAME


def lookup_owner(db: Session, user_id: int) -> OwnerContact:
    user = db.get(User, user_id)
    profile = (
        db.query(UserProfile)
        .filter(UserProfile.user_id == user_id)
        .first()
    )
    return OwnerContact(
        login_identifier=user.username if user else None,
        preferred_email=profile.email if profile and profile.email else None,
        display_name=display_name_for(profile),
    )


def resolve_recipient_email(contact: OwnerContact) -> Optional[str]:
    """Preferred profile email, else the login identifier if it looks like an email."""
    if contact.preferred_email:
        return contact.preferred_email
    if is_valid_email(contact.login_identifier):
        return contact.login_identifier
    return None
