"""incidentdesk baseline schema"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '0001_incidentdesk_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', sa.UUID(as_uuid=True), primary_key=True)


def upgrade() -> None:
    op.create_table(
        'companies',
        _id(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False, unique=True),
        sa.Column('contact_email', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('created_by', sa.UUID(as_uuid=True)),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_companies_slug', 'companies', ['slug'])
    op.create_index('ix_companies_status', 'companies', ['status'])

    op.create_table(
        'users',
        _id(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False, server_default='frontline_worker'),
        sa.Column('company_id', sa.UUID(as_uuid=True), sa.ForeignKey('companies.id')),
        sa.Column('has_llm_access', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('profile_image_url', sa.String()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('last_login_at', sa.DateTime()),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_company_id', 'users', ['company_id'])

    op.create_table(
        'sessions',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('session_token', sa.String(), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('remember_me', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('user_agent', sa.String()),
        sa.Column('ip_address', sa.String()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('ix_sessions_session_token', 'sessions', ['session_token'])

    op.create_table(
        'password_reset_tokens',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_password_reset_tokens_token', 'password_reset_tokens', ['token'])

    op.create_table(
        'user_invitations',
        _id(),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('company_id', sa.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('invited_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('invitation_token', sa.String(), nullable=False, unique=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('accepted_at', sa.DateTime()),
    )
    op.create_index('ix_user_invitations_company_id', 'user_invitations', ['company_id'])
    op.create_index('ix_user_invitations_invitation_token', 'user_invitations', ['invitation_token'])
    op.create_index('ix_user_invitations_email_company', 'user_invitations', ['email', 'company_id'])

    op.create_table(
        'participants',
        _id(),
        sa.Column('company_id', sa.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('date_of_birth', sa.String(), nullable=False),
        sa.Column('ndis_number', sa.String(), nullable=False),
        sa.Column('contact_phone', sa.String()),
        sa.Column('emergency_contact', sa.String()),
        sa.Column('support_level', sa.String(), nullable=False),
        sa.Column('care_notes', sa.Text()),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('company_id', 'ndis_number', name='uq_participant_company_ndis'),
    )
    op.create_index('ix_participants_company_id', 'participants', ['company_id'])

    op.create_table(
        'incidents',
        _id(),
        sa.Column('company_id', sa.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('reporter_name', sa.String(), nullable=False),
        sa.Column('participant_id', sa.UUID(as_uuid=True), sa.ForeignKey('participants.id')),
        sa.Column('participant_name', sa.String(), nullable=False),
        sa.Column('event_date_time', sa.String(), nullable=False),
        sa.Column('location', sa.String(), nullable=False),
        sa.Column('capture_status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('analysis_status', sa.String(), nullable=False, server_default='not_started'),
        sa.Column('overall_status', sa.String(), nullable=False, server_default='capture_pending'),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.Column('submitted_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('submitted_at', sa.DateTime()),
        sa.Column('narrative_hash', sa.String()),
        sa.Column('questions_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('narrative_enhanced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('analysis_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_incidents_company_id', 'incidents', ['company_id'])
    op.create_index('ix_incidents_created_by', 'incidents', ['created_by'])
    op.create_index('ix_incidents_overall_status', 'incidents', ['overall_status'])

    op.create_table(
        'incident_narratives',
        _id(),
        sa.Column('incident_id', sa.UUID(as_uuid=True), sa.ForeignKey('incidents.id'), nullable=False, unique=True),
        sa.Column('before_event', sa.Text(), nullable=False, server_default=''),
        sa.Column('during_event', sa.Text(), nullable=False, server_default=''),
        sa.Column('end_event', sa.Text(), nullable=False, server_default=''),
        sa.Column('post_event', sa.Text(), nullable=False, server_default=''),
        sa.Column('before_event_extra', sa.Text()),
        sa.Column('during_event_extra', sa.Text()),
        sa.Column('end_event_extra', sa.Text()),
        sa.Column('post_event_extra', sa.Text()),
        sa.Column('consolidated_narrative', sa.Text()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.Column('enhanced_at', sa.DateTime()),
    )

    op.create_table(
        'clarification_questions',
        _id(),
        sa.Column('incident_id', sa.UUID(as_uuid=True), sa.ForeignKey('incidents.id'), nullable=False),
        sa.Column('question_id', sa.String(), nullable=False),
        sa.Column('phase', sa.String(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_order', sa.Integer(), nullable=False),
        sa.Column('narrative_hash', sa.String()),
        sa.Column('ai_model', sa.String()),
        sa.Column('prompt_version', sa.String()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('generated_at', sa.DateTime()),
    )
    op.create_index('ix_clarification_questions_incident_phase', 'clarification_questions', ['incident_id', 'phase'])

    op.create_table(
        'clarification_answers',
        _id(),
        sa.Column('incident_id', sa.UUID(as_uuid=True), sa.ForeignKey('incidents.id'), nullable=False),
        sa.Column('question_id', sa.String(), nullable=False),
        sa.Column('phase', sa.String(), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=False),
        sa.Column('answered_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('answered_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('character_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('incident_id', 'question_id', name='uq_answer_incident_question'),
    )
    op.create_index('ix_clarification_answers_incident_id', 'clarification_answers', ['incident_id'])

    op.create_table(
        'incident_analysis',
        _id(),
        sa.Column('incident_id', sa.UUID(as_uuid=True), sa.ForeignKey('incidents.id'), nullable=False, unique=True),
        sa.Column('contributing_conditions', sa.Text(), nullable=False, server_default=''),
        sa.Column('conditions_original', sa.Text()),
        sa.Column('conditions_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('analysis_status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('analyzed_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('analyzed_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.Column('ai_model', sa.String()),
        sa.Column('ai_processing_time_ms', sa.Integer()),
        sa.Column('revision_count', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'prompt_groups',
        _id(),
        sa.Column('group_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_collapsible', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('default_collapsed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
    )

    op.create_table(
        'ai_prompts',
        _id(),
        sa.Column('prompt_name', sa.String(), nullable=False),
        sa.Column('prompt_version', sa.String(), nullable=False, server_default='v1.0.0'),
        sa.Column('prompt_template', sa.Text(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('workflow_step', sa.String()),
        sa.Column('subsystem', sa.String()),
        sa.Column('ai_model', sa.String()),
        sa.Column('max_tokens', sa.Integer()),
        sa.Column('temperature', sa.Float()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('group_id', sa.UUID(as_uuid=True), sa.ForeignKey('prompt_groups.id')),
        sa.Column('display_order', sa.Integer()),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('replaced_by', sa.UUID(as_uuid=True)),
        sa.Column('replaced_at', sa.DateTime()),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_response_time', sa.Float()),
        sa.Column('success_rate', sa.Float()),
    )
    op.create_index('ix_ai_prompts_prompt_name', 'ai_prompts', ['prompt_name'])

    op.create_table(
        'ai_request_logs',
        _id(),
        sa.Column('correlation_id', sa.String(), nullable=False),
        sa.Column('operation', sa.String(), nullable=False),
        sa.Column('model', sa.String()),
        sa.Column('prompt_template', sa.String()),
        sa.Column('input_data', sa.JSON()),
        sa.Column('output_data', sa.JSON()),
        sa.Column('processing_time_ms', sa.Integer()),
        sa.Column('tokens_used', sa.Integer()),
        sa.Column('cost_usd', sa.Float()),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('error_message', sa.Text()),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('incident_id', sa.UUID(as_uuid=True), sa.ForeignKey('incidents.id')),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_ai_request_logs_correlation_id', 'ai_request_logs', ['correlation_id'])
    op.create_index('ix_ai_request_logs_operation', 'ai_request_logs', ['operation'])
    op.create_index('ix_ai_request_logs_incident_id', 'ai_request_logs', ['incident_id'])

    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('company_id', sa.UUID(as_uuid=True)),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String()),
        sa.Column('target_id', sa.UUID(as_uuid=True)),
        sa.Column('details', sa.JSON()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_audit_logs_company_id', 'audit_logs', ['company_id'])


def downgrade() -> None:
    for table in (
        'audit_logs',
        'ai_request_logs',
        'ai_prompts',
        'prompt_groups',
        'incident_analysis',
        'clarification_answers',
        'clarification_questions',
        'incident_narratives',
        'incidents',
        'participants',
        'user_invitations',
        'password_reset_tokens',
        'sessions',
        'users',
        'companies',
    ):
        op.drop_table(table)
