"""
Catalog models: categories and products.

Only the fields the discount engine needs (price, category) plus enough to
show a receipt line.
"""
from ..extensions import db
from ..utils.clock import utcnow
from .store import SoftDeleteMixin, new_uuid


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey('store_info.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    def __repr__(self):
        return f'<Category {self.id}: {self.name}>'


class Product(SoftDeleteMixin, db.Model):
    __tablename__ = 'products'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    store_id = db.Column(db.Integer, db.ForeignKey('store_info.id'), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    cost = db.Column(db.Numeric(10, 2), default=0)
    created_at = db.Column(db.DateTime, default=utcnow)

    category = db.relationship('Category')

    def __repr__(self):
        return f'<Product {self.id}: {self.name} @ {self.price}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': float(self.price),
            'categoryId': self.category_id,
        }
