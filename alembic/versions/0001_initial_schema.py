"""Initial schema: rules, organization metadata, parameters and activations

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def is_postgres() -> bool:
    """Check the database type from the migration connection."""
    return op.get_bind().dialect.name == "postgresql"


def id_type():
    return postgresql.UUID(as_uuid=True) if is_postgres() else sa.String(36)


def json_type():
    return postgresql.JSONB if is_postgres() else sa.Text


def audit_columns() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create the rule and quality profile tables."""

    # 1. Rule definitions
    op.create_table(
        'rules',
        sa.Column('id', id_type(), primary_key=True),
        sa.Column('repository_key', sa.String(255), nullable=False),
        sa.Column('rule_key', sa.String(200), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('description_format', sa.String(20), nullable=True),
        sa.Column('severity', sa.String(10), nullable=True),
        sa.Column('rule_type', sa.String(20), nullable=True),
        sa.Column('config_key', sa.String(200), nullable=True),
        sa.Column('language', sa.String(20), nullable=True),
        sa.Column('default_tags', json_type(), nullable=False),
        sa.Column('is_template', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('template_id', id_type(), nullable=True),
        sa.Column('default_remediation_function', sa.String(20), nullable=True),
        sa.Column('default_remediation_gap_multiplier', sa.String(20), nullable=True),
        sa.Column('default_remediation_base_effort', sa.String(20), nullable=True),
        *audit_columns(),
        sa.ForeignKeyConstraint(['template_id'], ['rules.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('repository_key', 'rule_key', name='uq_rules_repository_rule_key'),
    )
    op.create_index('ix_rules_language', 'rules', ['language'])

    # 2. Organization metadata
    op.create_table(
        'rules_metadata',
        sa.Column('id', id_type(), primary_key=True),
        sa.Column('rule_id', id_type(), nullable=False),
        sa.Column('organization_uuid', sa.String(40), nullable=False),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('remediation_function', sa.String(20), nullable=True),
        sa.Column('remediation_gap_multiplier', sa.String(20), nullable=True),
        sa.Column('remediation_base_effort', sa.String(20), nullable=True),
        sa.Column('system_tags', json_type(), nullable=False),
        sa.Column('note_data', sa.Text, nullable=True),
        sa.Column('note_user_login', sa.String(255), nullable=True),
        *audit_columns(),
        sa.ForeignKeyConstraint(['rule_id'], ['rules.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('rule_id', 'organization_uuid', name='uq_rules_metadata_rule_org'),
    )
    op.create_index('ix_rules_metadata_rule_id', 'rules_metadata', ['rule_id'])

    # 3. Declared parameters
    op.create_table(
        'rules_parameters',
        sa.Column('id', id_type(), primary_key=True),
        sa.Column('rule_id', id_type(), nullable=False),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('param_type', sa.String(512), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('default_value', sa.Text, nullable=True),
        *audit_columns(),
        sa.ForeignKeyConstraint(['rule_id'], ['rules.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('rule_id', 'name', name='uq_rules_parameters_rule_name'),
    )
    op.create_index('idx_rules_parameters_rule', 'rules_parameters', ['rule_id'])

    # 4. Quality profiles
    op.create_table(
        'quality_profiles',
        sa.Column('id', id_type(), primary_key=True),
        sa.Column('organization_uuid', sa.String(40), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('language', sa.String(20), nullable=False),
        *audit_columns(),
        sa.UniqueConstraint('organization_uuid', 'language', 'name',
                            name='uq_quality_profiles_org_lang_name'),
    )
    op.create_index('ix_quality_profiles_organization_uuid', 'quality_profiles', ['organization_uuid'])

    # 5. Activations
    op.create_table(
        'active_rules',
        sa.Column('id', id_type(), primary_key=True),
        sa.Column('profile_id', id_type(), nullable=False),
        sa.Column('rule_id', id_type(), nullable=False),
        sa.Column('severity', sa.String(10), nullable=True),
        *audit_columns(),
        sa.ForeignKeyConstraint(['profile_id'], ['quality_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rule_id'], ['rules.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('profile_id', 'rule_id', name='uq_active_rules_profile_rule'),
    )
    op.create_index('ix_active_rules_rule_id', 'active_rules', ['rule_id'])

    # 6. Activation parameter overrides
    op.create_table(
        'active_rule_parameters',
        sa.Column('id', id_type(), primary_key=True),
        sa.Column('active_rule_id', id_type(), nullable=False),
        sa.Column('rules_parameter_id', id_type(), nullable=False),
        sa.Column('param_key', sa.String(128), nullable=False),
        sa.Column('value', sa.Text, nullable=True),
        *audit_columns(),
        sa.ForeignKeyConstraint(['active_rule_id'], ['active_rules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rules_parameter_id'], ['rules_parameters.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('active_rule_id', 'rules_parameter_id',
                            name='uq_active_rule_parameters_param'),
    )
    op.create_index('ix_active_rule_parameters_active_rule_id',
                    'active_rule_parameters', ['active_rule_id'])


def downgrade() -> None:
    """Drop every table in reverse dependency order."""
    op.drop_table('active_rule_parameters')
    op.drop_table('active_rules')
    op.drop_table('quality_profiles')
    op.drop_table('rules_parameters')
    op.drop_table('rules_metadata')
    op.drop_table('rules')
