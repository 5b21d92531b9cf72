"""
Order models.

Totals are frozen at checkout:
    total = subtotal - discount_amount
Never recompute them from current product prices.

Promotion usage is derived from orders referencing a promotion; there is
no mutable usage counter anywhere.
"""
from enum import Enum
from ..extensions import db
from ..utils.clock import utcnow
from .store import new_uuid


class OrderStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    REFUNDED = 'refunded'
    CANCELLED = 'cancelled'


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    store_id = db.Column(db.Integer, db.ForeignKey('store_info.id'), nullable=False, index=True)
    order_number = db.Column(db.String(50), nullable=False)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    loyalty_discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    promotion_id = db.Column(db.String(36), db.ForeignKey('promotions.id'), nullable=True, index=True)
    discount_code = db.Column(db.String(50))
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=True, index=True)

    payment_method = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.COMPLETED.value)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    items = db.relationship('OrderItem', backref='order', lazy='selectin',
                            cascade='all, delete-orphan')
    promotion = db.relationship('Promotion')
    customer = db.relationship('Customer')

    __table_args__ = (
        db.UniqueConstraint('store_id', 'order_number', name='uq_orders_store_order_number'),
    )

    def __repr__(self):
        return f'<Order {self.order_number}: {self.total}>'

    def to_dict(self):
        return {
            'id': self.id,
            'storeInfoId': self.store_id,
            'orderNumber': self.order_number,
            'subtotal': float(self.subtotal),
            'discountAmount': float(self.discount_amount or 0),
            'loyaltyDiscount': float(self.loyalty_discount or 0),
            'total': float(self.total),
            'promotionId': self.promotion_id,
            'discountCode': self.discount_code,
            'customerId': self.customer_id,
            'paymentMethod': self.payment_method,
            'status': self.status,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'items': [item.to_dict() for item in self.items],
        }


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey('orders.id'), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey('products.id'), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    line_total = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    final_price = db.Column(db.Numeric(10, 2), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('order_id', 'product_id', name='uq_order_items_order_product'),
    )

    def to_dict(self):
        return {
            'productId': self.product_id,
            'productName': self.product_name,
            'quantity': self.quantity,
            'unitPrice': float(self.unit_price),
            'lineTotal': float(self.line_total),
            'discountAmount': float(self.discount_amount or 0),
            'finalPrice': float(self.final_price),
        }
