"""incident classifications"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '0002_incident_classifications'
down_revision: Union[str, Sequence[str], None] = '0001_incidentdesk_baseline'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'incident_classifications',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('incident_id', sa.UUID(as_uuid=True), sa.ForeignKey('incidents.id'), nullable=False),
        sa.Column('analysis_id', sa.UUID(as_uuid=True), sa.ForeignKey('incident_analysis.id'), nullable=False),
        sa.Column('classification_id', sa.String(), nullable=False),
        sa.Column('incident_type', sa.String(), nullable=False),
        sa.Column('supporting_evidence', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('user_reviewed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('user_modified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('review_notes', sa.Text()),
        sa.Column('classified_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('ai_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ai_model', sa.String()),
        sa.Column('original_ai_classification', sa.JSON()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_incident_classifications_incident_id', 'incident_classifications', ['incident_id'])
    op.create_index('ix_incident_classifications_analysis_id', 'incident_classifications', ['analysis_id'])
    op.create_index('ix_incident_classifications_incident_type', 'incident_classifications', ['incident_type'])
    op.create_index('ix_incident_classifications_severity', 'incident_classifications', ['severity'])


def downgrade() -> None:
    op.drop_index('ix_incident_classifications_severity', table_name='incident_classifications')
    op.drop_index('ix_incident_classifications_incident_type', table_name='incident_classifications')
    op.drop_index('ix_incident_classifications_analysis_id', table_name='incident_classifications')
    op.drop_index('ix_incident_classifications_incident_id', table_name='incident_classifications')
    op.drop_table('incident_classifications')
