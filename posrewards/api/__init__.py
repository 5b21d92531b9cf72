"""
API blueprints for POS Rewards.
"""
from .loyalty import loyalty_bp
from .promotions import promotions_bp
from .orders import orders_bp

__all__ = ['loyalty_bp', 'promotions_bp', 'orders_bp']
