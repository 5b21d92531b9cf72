"""Create stores, catalog, orders, promotions and loyalty ledger tables

Revision ID: a1c4e7f09b21
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c4e7f09b21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('store_info',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('currency_code', sa.String(length=10), nullable=False, server_default='USD'),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_info'))
    )
    op.create_index(op.f('ix_store_info_user_id'), 'store_info', ['user_id'], unique=True)

    op.create_table('customers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['store_info.id'], name=op.f('fk_customers_store_id_store_info')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_customers')),
        sa.UniqueConstraint('store_id', 'email', name='uq_customers_store_email')
    )
    op.create_index(op.f('ix_customers_store_id'), 'customers', ['store_id'], unique=False)

    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['store_info.id'], name=op.f('fk_categories_store_id_store_info')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_categories'))
    )
    op.create_index(op.f('ix_categories_store_id'), 'categories', ['store_id'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('cost', sa.Numeric(precision=10, scale=2), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name=op.f('fk_products_category_id_categories')),
        sa.ForeignKeyConstraint(['store_id'], ['store_info.id'], name=op.f('fk_products_store_id_store_info')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products'))
    )
    op.create_index(op.f('ix_products_store_id'), 'products', ['store_id'], unique=False)

    op.create_table('promotions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('minimum_purchase', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('maximum_discount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('customer_usage_limit', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('applicable_to_categories', sa.JSON(), nullable=True),
        sa.Column('applicable_to_products', sa.JSON(), nullable=True),
        sa.Column('buy_quantity', sa.Integer(), nullable=True),
        sa.Column('get_quantity', sa.Integer(), nullable=True),
        sa.Column('get_discount_type', sa.String(length=20), nullable=True),
        sa.Column('get_discount_value', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('time_based_type', sa.String(length=20), nullable=True),
        sa.Column('active_time_start', sa.Time(), nullable=True),
        sa.Column('active_time_end', sa.Time(), nullable=True),
        sa.Column('active_days', sa.JSON(), nullable=True),
        sa.Column('specific_dates', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['store_info.id'], name=op.f('fk_promotions_store_id_store_info')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_promotions'))
    )
    op.create_index(op.f('ix_promotions_store_id'), 'promotions', ['store_id'], unique=False)

    op.create_table('discount_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('promotion_id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['promotion_id'], ['promotions.id'], name=op.f('fk_discount_codes_promotion_id_promotions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_discount_codes')),
        sa.UniqueConstraint('promotion_id', 'code', name='uq_discount_codes_promotion_code')
    )
    op.create_index(op.f('ix_discount_codes_code'), 'discount_codes', ['code'], unique=False)
    op.create_index(op.f('ix_discount_codes_promotion_id'), 'discount_codes', ['promotion_id'], unique=False)

    op.create_table('orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('loyalty_discount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('promotion_id', sa.String(length=36), nullable=True),
        sa.Column('discount_code', sa.String(length=50), nullable=True),
        sa.Column('customer_id', sa.String(length=36), nullable=True),
        sa.Column('payment_method', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='completed'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_orders_customer_id_customers')),
        sa.ForeignKeyConstraint(['promotion_id'], ['promotions.id'], name=op.f('fk_orders_promotion_id_promotions')),
        sa.ForeignKeyConstraint(['store_id'], ['store_info.id'], name=op.f('fk_orders_store_id_store_info')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
        sa.UniqueConstraint('store_id', 'order_number', name='uq_orders_store_order_number')
    )
    op.create_index(op.f('ix_orders_store_id'), 'orders', ['store_id'], unique=False)
    op.create_index(op.f('ix_orders_promotion_id'), 'orders', ['promotion_id'], unique=False)
    op.create_index(op.f('ix_orders_customer_id'), 'orders', ['customer_id'], unique=False)
    op.create_index(op.f('ix_orders_created_at'), 'orders', ['created_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('line_total', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('final_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_order_items_order_id_orders')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_order_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_items')),
        sa.UniqueConstraint('order_id', 'product_id', name='uq_order_items_order_product')
    )
    op.create_index(op.f('ix_order_items_order_id'), 'order_items', ['order_id'], unique=False)

    op.create_table('loyalty_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('points_per_dollar', sa.Numeric(precision=10, scale=2), nullable=False, server_default='1.00'),
        sa.Column('redemption_rate', sa.Numeric(precision=10, scale=4), nullable=False, server_default='0.01'),
        sa.Column('minimum_redemption', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('points_expiry_months', sa.Integer(), nullable=True, server_default='12'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['store_info.id'], name=op.f('fk_loyalty_settings_store_id_store_info')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_loyalty_settings')),
        sa.UniqueConstraint('store_id', name=op.f('uq_loyalty_settings_store_id'))
    )

    op.create_table('loyalty_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=36), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_expired', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_adjusted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
        sa.CheckConstraint('balance >= 0', name=op.f('ck_loyalty_points_balance_non_negative')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_loyalty_points_customer_id_customers')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_loyalty_points')),
        sa.UniqueConstraint('customer_id', name=op.f('uq_loyalty_points_customer_id'))
    )

    op.create_table('loyalty_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('transaction_date', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_loyalty_transactions_customer_id_customers')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_loyalty_transactions_order_id_orders')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_loyalty_transactions'))
    )
    op.create_index(op.f('ix_loyalty_transactions_customer_id'), 'loyalty_transactions', ['customer_id'], unique=False)
    op.create_index(op.f('ix_loyalty_transactions_order_id'), 'loyalty_transactions', ['order_id'], unique=False)
    op.create_index(op.f('ix_loyalty_transactions_transaction_date'), 'loyalty_transactions', ['transaction_date'], unique=False)
    # At most one 'earned' entry per order
    op.create_index(
        'uq_loyalty_transactions_order_earned', 'loyalty_transactions', ['order_id'], unique=True,
        sqlite_where=sa.text("type = 'earned'"),
        postgresql_where=sa.text("type = 'earned'"),
    )


def downgrade():
    op.drop_index('uq_loyalty_transactions_order_earned', table_name='loyalty_transactions')
    op.drop_index(op.f('ix_loyalty_transactions_transaction_date'), table_name='loyalty_transactions')
    op.drop_index(op.f('ix_loyalty_transactions_order_id'), table_name='loyalty_transactions')
    op.drop_index(op.f('ix_loyalty_transactions_customer_id'), table_name='loyalty_transactions')
    op.drop_table('loyalty_transactions')
    op.drop_table('loyalty_points')
    op.drop_table('loyalty_settings')
    op.drop_index(op.f('ix_order_items_order_id'), table_name='order_items')
    op.drop_table('order_items')
    op.drop_index(op.f('ix_orders_created_at'), table_name='orders')
    op.drop_index(op.f('ix_orders_customer_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_promotion_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_store_id'), table_name='orders')
    op.drop_table('orders')
    op.drop_index(op.f('ix_discount_codes_promotion_id'), table_name='discount_codes')
    op.drop_index(op.f('ix_discount_codes_code'), table_name='discount_codes')
    op.drop_table('discount_codes')
    op.drop_index(op.f('ix_promotions_store_id'), table_name='promotions')
    op.drop_table('promotions')
    op.drop_index(op.f('ix_products_store_id'), table_name='products')
    op.drop_table('products')
    op.drop_index(op.f('ix_categories_store_id'), table_name='categories')
    op.drop_table('categories')
    op.drop_index(op.f('ix_customers_store_id'), table_name='customers')
    op.drop_table('customers')
    op.drop_index(op.f('ix_store_info_user_id'), table_name='store_info')
    op.drop_table('store_info')
