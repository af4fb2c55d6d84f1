"""create registration, members, logs and game-lite tables

Revision ID: a7c41e9d2b10
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a7c41e9d2b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'registration',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('portal', sa.String(length=64), nullable=True),
        sa.Column('group_size', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('registration_id', sa.Integer(), sa.ForeignKey('registration.id'), nullable=False),
        sa.Column('rfid_card_id', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
    )
    op.create_index('ix_members_registration_id', 'members', ['registration_id'])
    op.create_index('ix_members_rfid_card_id', 'members', ['rfid_card_id'])

    op.create_table(
        'logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('log_time', sa.DateTime(), nullable=False),
        sa.Column('rfid_card_id', sa.String(length=64), nullable=False),
        sa.Column('portal', sa.String(length=64), nullable=True),
        sa.Column('label', sa.String(length=64), nullable=True),
    )
    op.create_index('ix_logs_log_time', 'logs', ['log_time'])
    op.create_index('ix_logs_rfid_card_id', 'logs', ['rfid_card_id'])

    op.create_table(
        'team_scores_lite',
        sa.Column('registration_id', sa.Integer(), sa.ForeignKey('registration.id'), primary_key=True, autoincrement=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('score >= 0', name='ck_team_scores_lite_score_non_negative'),
    )
    # Composite primary key doubles as the first-visit dedup constraint
    op.create_table(
        'member_cluster_visits_lite',
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), primary_key=True, autoincrement=False),
        sa.Column('cluster_label', sa.String(length=64), primary_key=True),
        sa.Column('first_visit_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'redemptions_lite',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('registration_id', sa.Integer(), sa.ForeignKey('registration.id'), nullable=False),
        sa.Column('cluster_label', sa.String(length=64), nullable=False),
        sa.Column('points_spent', sa.Integer(), nullable=False),
        sa.Column('redeemed_by', sa.String(length=128), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_redemptions_lite_registration_id', 'redemptions_lite', ['registration_id'])


def downgrade():
    op.drop_index('ix_redemptions_lite_registration_id', table_name='redemptions_lite')
    op.drop_table('redemptions_lite')
    op.drop_table('member_cluster_visits_lite')
    op.drop_table('team_scores_lite')
    op.drop_index('ix_logs_rfid_card_id', table_name='logs')
    op.drop_index('ix_logs_log_time', table_name='logs')
    op.drop_table('logs')
    op.drop_index('ix_members_rfid_card_id', table_name='members')
    op.drop_index('ix_members_registration_id', table_name='members')
    op.drop_table('members')
    op.drop_table('registration')
