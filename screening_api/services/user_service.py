"""
User Service
Credential lookup, authentication and the bootstrap admin seed
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from screening_api.models.user import User
from screening_api.utils.auth import hash_password, verify_password

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.user_id == user_id).first()


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Return the user when the password matches, else None"""
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def record_login(db: Session, user: User) -> None:
    user.last_login = datetime.utcnow()
    db.commit()


def create_user(
    db: Session,
    email: str,
    password: str,
    role: str = "viewer",
    first_name: Optional[str] = None,
    last_name: Optional[str] = None
) -> User:
    user = User(
        email=email.strip().lower(),
        password_hash=hash_password(password),
        role=role,
        first_name=first_name,
        last_name=last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def seed_admin(db: Session, email: str, password: str) -> Optional[User]:
    """Create the bootstrap admin once; no-op without configured credentials"""
    if not email or not password:
        logger.info("ADMIN_SEED_EMAIL/ADMIN_SEED_PASSWORD not set; skipping admin seed")
        return None

    existing = get_user_by_email(db, email)
    if existing:
        return existing

    user = create_user(db, email, password, role="admin", first_name="System", last_name="Administrator")
    logger.info("Seeded admin user %s", user.email)
    return user


def user_summary(user: User) -> dict:
    return {
        "id": user.user_id,
        "email": user.email,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
    }
