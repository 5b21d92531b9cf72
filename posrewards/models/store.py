"""
Store and customer models.

A store belongs to exactly one authenticated principal (the identity
provider's user id). Customers are soft-deleted so ledger and order history
keep resolving after a customer is removed from active listings.
"""
import uuid
from ..extensions import db
from ..utils.clock import utcnow


def new_uuid() -> str:
    return str(uuid.uuid4())


class SoftDeleteMixin:
    """Nullable deleted_at timestamp; set means excluded from active listings."""

    deleted_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self):
        if self.deleted_at is None:
            self.deleted_at = utcnow()

    @classmethod
    def active_query(cls):
        return cls.query.filter(cls.deleted_at.is_(None))


class StoreInfo(db.Model):
    """
    A shop using the POS.
    One per principal; every store-scoped query filters by its id.
    """
    __tablename__ = 'store_info'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))
    currency_code = db.Column(db.String(10), nullable=False, default='USD')
    timezone = db.Column(db.String(64), nullable=False, default='UTC')
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<StoreInfo {self.id}: {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'currencyCode': self.currency_code,
            'timezone': self.timezone,
        }


class Customer(SoftDeleteMixin, db.Model):
    """POS customer, the owner of a points account and its ledger."""
    __tablename__ = 'customers'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    store_id = db.Column(db.Integer, db.ForeignKey('store_info.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    store = db.relationship('StoreInfo', backref=db.backref('customers', lazy='dynamic'))

    __table_args__ = (
        db.UniqueConstraint('store_id', 'email', name='uq_customers_store_email'),
    )

    def __repr__(self):
        return f'<Customer {self.id}: {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'storeInfoId': self.store_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'deletedAt': self.deleted_at.isoformat() if self.deleted_at else None,
        }
