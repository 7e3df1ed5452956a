"""create_marketplace_tables: users, catalog, orders, affiliates and money ledgers

Revision ID: create_marketplace_tables
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_marketplace_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user_profiles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('auth_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_affiliate', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_user_profiles'),
        sa.UniqueConstraint('auth_id', name='uq_user_profiles_auth_id'),
    )
    op.create_index('ix_user_profiles_is_affiliate', 'user_profiles', ['is_affiliate'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.DECIMAL(12, 2), nullable=True),
        sa.Column('originalprice', sa.DECIMAL(12, 2), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('stock_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('product_images', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )
    op.create_index('ix_products_category', 'products', ['category'], unique=False)
    op.create_index('ix_products_is_active', 'products', ['is_active'], unique=False)

    op.create_table(
        'details',
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('specifications', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_details_product_id_products', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('product_id', name='pk_details'),
    )

    op.create_table(
        'product_variations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('size', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_adjustment', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'], name='fk_product_variations_product_id_products', ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_product_variations'),
    )
    op.create_index('ix_product_variations_product_id', 'product_variations', ['product_id'], unique=False)

    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_reviews_rating_range'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_reviews_product_id_products', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], name='fk_reviews_user_id_user_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_reviews'),
    )
    op.create_index('ix_reviews_product_id', 'reviews', ['product_id'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_completion', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], name='fk_orders_user_id_user_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variation_id', sa.Integer(), nullable=True),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('size', sa.String(50), nullable=True),
        sa.Column('product_sku', sa.String(100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=True),
        sa.Column('affiliate_code', sa.String(20), nullable=True),
        sa.Column('commission_earned', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_order_items_product_id_products'),
        sa.ForeignKeyConstraint(
            ['variation_id'], ['product_variations.id'], name='fk_order_items_variation_id_product_variations'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)
    op.create_index('ix_order_items_affiliate_code', 'order_items', ['affiliate_code'], unique=False)

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('added_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], name='fk_cart_items_user_id_user_profiles'),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'], name='fk_cart_items_product_id_products', ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_cart_items'),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_cart_user_product'),
    )
    op.create_index('ix_cart_items_user_id', 'cart_items', ['user_id'], unique=False)

    op.create_table(
        'wishlist_items',
        sa.Column('wishlist_item_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], name='fk_wishlist_items_user_id_user_profiles'),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'], name='fk_wishlist_items_product_id_products', ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('wishlist_item_id', name='pk_wishlist_items'),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_wishlist_user_product'),
    )

    op.create_table(
        'affiliate_profiles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('affiliate_code', sa.String(20), nullable=False),
        sa.Column('balance', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('total_withdrawals', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('referals_earnings', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('commission_earnings', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('referer', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], name='fk_affiliate_profiles_user_id_user_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_affiliate_profiles'),
        sa.UniqueConstraint('user_id', name='uq_affiliate_profiles_user_id'),
        sa.UniqueConstraint('affiliate_code', name='uq_affiliate_profiles_affiliate_code'),
    )
    op.create_index('ix_affiliate_profiles_referer', 'affiliate_profiles', ['referer'], unique=False)

    op.create_table(
        'sales_commission',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('affiliate_code', sa.String(20), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sale_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('commission_amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_sales_commission_order_id_orders'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_sales_commission_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_sales_commission'),
        sa.UniqueConstraint(
            'order_id', 'product_id', 'affiliate_code', name='uq_sales_commission_order_product_code'
        ),
    )
    op.create_index(
        'ix_sales_commission_affiliate_status', 'sales_commission', ['affiliate_code', 'status'], unique=False
    )
    op.create_index('ix_sales_commission_created_at', 'sales_commission', ['created_at'], unique=False)

    op.create_table(
        'referals_commission',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referer_code', sa.String(20), nullable=False),
        sa.Column('new_affiliate_code', sa.String(20), nullable=False),
        sa.Column('amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_referals_commission'),
        sa.UniqueConstraint('new_affiliate_code', name='uq_referals_commission_new_affiliate_code'),
    )
    op.create_index(
        'ix_referals_commission_referer_status', 'referals_commission', ['referer_code', 'status'], unique=False
    )

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('affiliate_code', sa.String(20), nullable=False),
        sa.Column('amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('reason_of_status', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_withdrawals'),
    )
    op.create_index('ix_withdrawals_affiliate_status', 'withdrawals', ['affiliate_code', 'status'], unique=False)

    op.create_table(
        'registration_payment',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('referer_code', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], name='fk_registration_payment_user_id_user_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_registration_payment'),
    )
    op.create_index('ix_registration_payment_user_id', 'registration_payment', ['user_id'], unique=False)
    op.create_index('ix_registration_payment_status', 'registration_payment', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_registration_payment_status', table_name='registration_payment')
    op.drop_index('ix_registration_payment_user_id', table_name='registration_payment')
    op.drop_table('registration_payment')
    op.drop_index('ix_withdrawals_affiliate_status', table_name='withdrawals')
    op.drop_table('withdrawals')
    op.drop_index('ix_referals_commission_referer_status', table_name='referals_commission')
    op.drop_table('referals_commission')
    op.drop_index('ix_sales_commission_created_at', table_name='sales_commission')
    op.drop_index('ix_sales_commission_affiliate_status', table_name='sales_commission')
    op.drop_table('sales_commission')
    op.drop_index('ix_affiliate_profiles_referer', table_name='affiliate_profiles')
    op.drop_table('affiliate_profiles')
    op.drop_table('wishlist_items')
    op.drop_index('ix_cart_items_user_id', table_name='cart_items')
    op.drop_table('cart_items')
    op.drop_index('ix_order_items_affiliate_code', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_reviews_product_id', table_name='reviews')
    op.drop_table('reviews')
    op.drop_index('ix_product_variations_product_id', table_name='product_variations')
    op.drop_table('product_variations')
    op.drop_table('details')
    op.drop_index('ix_products_is_active', table_name='products')
    op.drop_index('ix_products_category', table_name='products')
    op.drop_table('products')
    op.drop_index('ix_user_profiles_is_affiliate', table_name='user_profiles')
    op.drop_table('user_profiles')
