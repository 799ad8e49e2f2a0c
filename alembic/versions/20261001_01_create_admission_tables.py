"""create beta admission tables

Revision ID: admission_init
Revises:
Create Date: 2026-10-01

"""
from alembic import op
import sqlalchemy as sa

from app.core.types import GUID

# revision identifiers, used by Alembic.
revision = 'admission_init'
down_revision = None
branch_labels = None
depends_on = None

application_status = sa.Enum('pending', 'approved', 'waitlisted', 'rejected', name='applicationstatusenum')
attribution_type = sa.Enum('signup', 'code_redemption', name='attributiontypeenum')


def upgrade():
    op.create_table(
        'applicants',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('referral_code', sa.String(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_applicants_email', 'applicants', ['email'], unique=True)
    op.create_index('ix_applicants_referral_code', 'applicants', ['referral_code'], unique=True)

    op.create_table(
        'waitlist_applications',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('applicant_id', GUID(), sa.ForeignKey('applicants.id'), nullable=False, unique=True),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scoring_version', sa.String(), nullable=False),
        sa.Column('status', application_status, nullable=False),
        sa.Column('flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rejection_reason', sa.String(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decided_by', sa.String(), nullable=True),
        sa.Column('decision_source', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_waitlist_applications_status', 'waitlist_applications', ['status'])
    op.create_index('ix_waitlist_rank', 'waitlist_applications', ['status', 'score', 'submitted_at'])

    op.create_table(
        'member_slots',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('applicant_id', GUID(), sa.ForeignKey('applicants.id'), nullable=False, unique=True),
        sa.Column('application_id', GUID(), sa.ForeignKey('waitlist_applications.id'), nullable=False, unique=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'referral_edges',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('referrer_id', GUID(), sa.ForeignKey('applicants.id'), nullable=False),
        sa.Column('referred_id', GUID(), sa.ForeignKey('applicants.id'), nullable=False, unique=True),
        sa.Column('attribution_type', attribution_type, nullable=False),
        sa.Column('code', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('referrer_id <> referred_id', name='ck_referral_not_self'),
    )
    op.create_index('ix_referral_edges_referrer_id', 'referral_edges', ['referrer_id'])
    op.create_index('ix_referral_edges_created_at', 'referral_edges', ['created_at'])

    op.create_table(
        'invite_quotas',
        sa.Column('member_id', GUID(), sa.ForeignKey('applicants.id'), primary_key=True),
        sa.Column('quota', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rewards_granted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('used <= quota', name='ck_invite_quota_used'),
        sa.CheckConstraint('used >= 0', name='ck_invite_quota_used_positive'),
    )

    op.create_table(
        'invite_codes',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('issuer_id', GUID(), sa.ForeignKey('applicants.id'), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('uses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('redeemed_by', GUID(), sa.ForeignKey('applicants.id'), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('uses <= max_uses', name='ck_invite_code_uses'),
    )
    op.create_index('ix_invite_codes_code', 'invite_codes', ['code'], unique=True)
    op.create_index('ix_invite_codes_issuer_id', 'invite_codes', ['issuer_id'])

    op.create_table(
        'invite_redemptions',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('code_id', GUID(), sa.ForeignKey('invite_codes.id'), nullable=False),
        sa.Column('redeemer_id', GUID(), sa.ForeignKey('applicants.id'), nullable=False),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('code_id', 'redeemer_id', name='uq_redemption_code_redeemer'),
    )
    op.create_index('ix_invite_redemptions_code_id', 'invite_redemptions', ['code_id'])

    op.create_table(
        'capacity_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cap', sa.Integer(), nullable=False),
        sa.Column('public_admission_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('admitted_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('cap >= 0', name='ck_capacity_cap_positive'),
        sa.CheckConstraint('admitted_count >= 0', name='ck_capacity_admitted_positive'),
    )


def downgrade():
    op.drop_table('capacity_config')
    op.drop_index('ix_invite_redemptions_code_id', table_name='invite_redemptions')
    op.drop_table('invite_redemptions')
    op.drop_index('ix_invite_codes_issuer_id', table_name='invite_codes')
    op.drop_index('ix_invite_codes_code', table_name='invite_codes')
    op.drop_table('invite_codes')
    op.drop_table('invite_quotas')
    op.drop_index('ix_referral_edges_created_at', table_name='referral_edges')
    op.drop_index('ix_referral_edges_referrer_id', table_name='referral_edges')
    op.drop_table('referral_edges')
    op.drop_table('member_slots')
    op.drop_index('ix_waitlist_rank', table_name='waitlist_applications')
    op.drop_index('ix_waitlist_applications_status', table_name='waitlist_applications')
    op.drop_table('waitlist_applications')
    op.drop_index('ix_applicants_referral_code', table_name='applicants')
    op.drop_index('ix_applicants_email', table_name='applicants')
    op.drop_table('applicants')
    attribution_type.drop(op.get_bind(), checkfirst=True)
    application_status.drop(op.get_bind(), checkfirst=True)
