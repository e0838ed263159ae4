
from alembic import op
import sqlalchemy as sa

revision = "20261019120000"
down_revision = None

def _now():
    # timestamps are stored as naive UTC
    if op.get_context().dialect.name == "postgresql":
        return sa.text("(now() at time zone 'utc')")
    return sa.text("CURRENT_TIMESTAMP")

def upgrade():
    now = _now()
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_table(
        'wallets',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=now),
        sa.CheckConstraint('balance_cents >= 0', name='ck_wallets_balance_non_negative'),
    )
    op.create_table(
        'menu_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=False, index=True),
        sa.Column('price_cents', sa.BigInteger(), nullable=False),
        sa.Column('description', sa.Text(), server_default=''),
        sa.Column('image_url', sa.String(length=1024), server_default=''),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'order_numbers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('display_id', sa.Integer(), nullable=False, unique=True, index=True),
        sa.Column('external_payment_id', sa.String(length=64), nullable=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('notes', sa.Text(), server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now, index=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=now),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('unit_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
    )
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('endpoint', sa.String(length=1024), nullable=False, unique=True),
        sa.Column('p256dh', sa.String(length=255), nullable=False),
        sa.Column('auth', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
    )

def downgrade():
    op.drop_table('push_subscriptions')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('order_numbers')
    op.drop_table('menu_items')
    op.drop_table('wallets')
    op.drop_table('users')
