"""Create matching and settlement tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates offer, need, exchange_match, reward_ledger_entry, reward_rule,
pair_history and conversation_channel, and seeds the match reward rules.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Shared trigger function for updated_at columns
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    # Offers
    op.create_table(
        'offer',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('survey_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('status', sa.Text(), nullable=False, server_default='active'),
        sa.Column('expiry_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'matched', 'closed', 'cancelled', 'expired')",
            name='ck_offer_status'
        ),
    )
    op.create_index('idx_offer_community_status', 'offer', ['community_id', 'status'])
    op.create_index('idx_offer_owner', 'offer', ['owner_id'])

    # Needs
    op.create_table(
        'need',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('survey_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('urgency', sa.Text(), nullable=False, server_default='normal'),
        sa.Column('status', sa.Text(), nullable=False, server_default='active'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('active', 'matched', 'closed', 'cancelled')", name='ck_need_status'),
        sa.CheckConstraint("urgency IN ('low', 'normal', 'high', 'urgent')", name='ck_need_urgency'),
    )
    op.create_index('idx_need_community_status', 'need', ['community_id', 'status'])
    op.create_index('idx_need_owner', 'need', ['owner_id'])

    # Matches
    op.create_table(
        'exchange_match',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('offer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('need_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('offer_owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('need_owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('reasons', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('strategy', sa.Text(), nullable=False),
        sa.Column('channel_id', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='active'),
        sa.Column('closed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('closed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('closure_type', sa.Text(), nullable=True),
        sa.Column('closure_reason', sa.Text(), nullable=True),
        sa.Column('reward_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['offer_id'], ['offer.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['need_id'], ['need.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('offer_id', 'need_id', name='uq_exchange_match_offer_need'),
        sa.CheckConstraint('offer_owner_id <> need_owner_id', name='ck_exchange_match_distinct_owners'),
        sa.CheckConstraint(
            "status IN ('active', 'closed', 'cancelled', 'disputed')",
            name='ck_exchange_match_status'
        ),
        sa.CheckConstraint('score >= 0.0 AND score <= 1.0', name='ck_exchange_match_score'),
    )
    op.create_index('idx_exchange_match_community', 'exchange_match', ['community_id'])
    op.create_index('idx_exchange_match_offer_owner', 'exchange_match', ['offer_owner_id'])
    op.create_index('idx_exchange_match_need_owner', 'exchange_match', ['need_owner_id'])

    # Reward ledger (append-only)
    op.create_table(
        'reward_ledger_entry',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('source_type', sa.Text(), nullable=False),
        sa.Column('source_id', sa.Text(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('category', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='valid'),
        sa.Column('created_by', sa.Text(), nullable=False, server_default='system'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('voided_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('voided_by', sa.Text(), nullable=True),
        sa.Column('void_reason', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_type', 'source_id', 'user_id', name='uq_reward_ledger_source_user'),
        sa.CheckConstraint("status IN ('valid', 'void')", name='ck_reward_ledger_status'),
    )
    op.create_index('idx_reward_ledger_user_status', 'reward_ledger_entry', ['user_id', 'status'])
    op.create_index('idx_reward_ledger_source', 'reward_ledger_entry', ['source_type', 'source_id'])

    # Reward rules
    op.create_table(
        'reward_rule',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('source_type', sa.Text(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_type', name='uq_reward_rule_source_type'),
    )

    # Pair history (anti-abuse)
    op.create_table(
        'pair_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('user_low_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_high_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('match_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('closed_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('was_successful', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', name='uq_pair_history_match'),
        sa.CheckConstraint('user_low_id <> user_high_id', name='ck_pair_history_distinct_users'),
    )
    op.create_index('idx_pair_history_pair_closed', 'pair_history', ['user_low_id', 'user_high_id', 'closed_at'])

    # Conversation channels
    op.create_table(
        'conversation_channel',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('match_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('participant_a_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('participant_b_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='active'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('closed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', name='uq_conversation_channel_match'),
        sa.CheckConstraint("status IN ('active', 'closed')", name='ck_conversation_channel_status'),
    )

    for table in ('offer', 'need', 'exchange_match', 'reward_rule'):
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)

    # Seed match reward rules
    op.execute("""
        INSERT INTO reward_rule (source_type, amount, description, is_active) VALUES
        ('match_closed_giver', 200, 'Reward for successfully giving', true),
        ('match_closed_receiver', 50, 'Reward for completing pickup', true)
    """)


def downgrade():
    for table in ('offer', 'need', 'exchange_match', 'reward_rule'):
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")

    op.drop_table('conversation_channel')
    op.drop_index('idx_pair_history_pair_closed', table_name='pair_history')
    op.drop_table('pair_history')
    op.drop_table('reward_rule')
    op.drop_index('idx_reward_ledger_source', table_name='reward_ledger_entry')
    op.drop_index('idx_reward_ledger_user_status', table_name='reward_ledger_entry')
    op.drop_table('reward_ledger_entry')
    op.drop_index('idx_exchange_match_need_owner', table_name='exchange_match')
    op.drop_index('idx_exchange_match_offer_owner', table_name='exchange_match')
    op.drop_index('idx_exchange_match_community', table_name='exchange_match')
    op.drop_table('exchange_match')
    op.drop_index('idx_need_owner', table_name='need')
    op.drop_index('idx_need_community_status', table_name='need')
    op.drop_table('need')
    op.drop_index('idx_offer_owner', table_name='offer')
    op.drop_index('idx_offer_community_status', table_name='offer')
    op.drop_table('offer')

    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")
