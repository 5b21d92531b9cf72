"""
Cart line resolution.

Turns request items ({productId, quantity}) into priced lines using the
store's catalog. Prices always come from the catalog, never from the client.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models import Product
from ..utils.exceptions import ValidationError, NotFoundError


@dataclass
class CartLine:
    product_id: str
    product_name: str
    category_id: Optional[int]
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productId': self.product_id,
            'productName': self.product_name,
            'categoryId': self.category_id,
            'quantity': self.quantity,
            'unitPrice': float(self.unit_price),
            'itemTotal': float(self.line_total),
        }


def resolve_cart_lines(store_id: int, items: Any) -> List[CartLine]:
    """
    Price a list of request items against the store catalog.

    Repeated product ids are merged into one line.

    Raises:
        ValidationError: malformed item list, quantity not a positive integer
        NotFoundError: a product id not in this store's catalog
    """
    if not isinstance(items, list) or not items:
        raise ValidationError('items must be a non-empty list', field='items')

    quantities: Dict[str, int] = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f'items[{index}] must be an object', field='items')
        product_id = item.get('productId')
        if not product_id or not isinstance(product_id, str):
            raise ValidationError(f'items[{index}].productId is required', field='productId')
        quantity = item.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f'items[{index}].quantity must be a positive integer', field='quantity')
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    products = Product.active_query().filter(
        Product.store_id == store_id,
        Product.id.in_(list(quantities.keys()))
    ).all()
    by_id = {p.id: p for p in products}

    lines = []
    for product_id, quantity in quantities.items():
        product = by_id.get(product_id)
        if product is None:
            raise NotFoundError('Product', product_id)
        lines.append(CartLine(
            product_id=product.id,
            product_name=product.name,
            category_id=product.category_id,
            quantity=quantity,
            unit_price=Decimal(str(product.price)),
        ))
    return lines


def cart_subtotal(lines: List[CartLine]) -> Decimal:
    return sum((line.line_total for line in lines), Decimal('0'))
