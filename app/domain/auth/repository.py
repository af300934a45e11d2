"""User repository - Database operations for users, tenants and refresh tokens"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import RefreshToken, Tenant, User


class UserRepository:
    """Repository for user database operations"""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return (
            db.query(User)
            .options(joinedload(User.tenant))
            .filter(User.email == email.lower())
            .first()
        )

    @staticmethod
    def get_by_id(db: Session, user_id: str, tenant_id: Optional[str] = None) -> Optional[User]:
        query = db.query(User).filter(User.id == user_id)
        if tenant_id:
            query = query.filter(User.tenant_id == tenant_id)
        return query.first()

    @staticmethod
    def list_by_tenant(db: Session, tenant_id: str) -> list[User]:
        return db.query(User).filter(User.tenant_id == tenant_id).order_by(User.created_at).all()

    @staticmethod
    def slug_exists(db: Session, slug: str) -> bool:
        return db.query(Tenant.id).filter(Tenant.slug == slug).first() is not None

    @staticmethod
    def create_tenant_with_owner(db: Session, tenant: Tenant, owner: User) -> User:
        """Create tenant and owner in one transaction"""
        db.add(tenant)
        db.flush()
        owner.tenant_id = tenant.id
        db.add(owner)
        db.commit()
        db.refresh(owner)
        return owner

    @staticmethod
    def create_user(db: Session, user: User) -> User:
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def save(db: Session, user: User) -> User:
        db.commit()
        db.refresh(user)
        return user

    # Refresh tokens
    @staticmethod
    def add_refresh_token(db: Session, user_id: str, jti_hash: str, expires_at: datetime) -> None:
        db.add(RefreshToken(user_id=user_id, jti_hash=jti_hash, expires_at=expires_at))
        db.commit()

    @staticmethod
    def get_refresh_token(db: Session, jti_hash: str) -> Optional[RefreshToken]:
        return db.query(RefreshToken).filter(RefreshToken.jti_hash == jti_hash).first()

    @staticmethod
    def revoke_all_refresh_tokens(db: Session, user_id: str) -> int:
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: datetime.utcnow()}, synchronize_session=False)
        )
        db.commit()
        return count
