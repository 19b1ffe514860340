"""certificate engine schema"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_certificate_engine'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('location', sa.String(length=255)),
        sa.Column('start_date', sa.Date),
        sa.Column('end_date', sa.Date),
        sa.Column('organizer_name', sa.String(length=255)),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_table(
        'registrations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=64)),
        sa.Column('organization', sa.String(length=255)),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='confirmed'),
        sa.Column('registration_code', sa.String(length=64)),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_registrations_event_id', 'registrations', ['event_id'])
    op.create_table(
        'attendance',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('registration_id', sa.Integer, sa.ForeignKey('registrations.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('checked_in_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'certificate_templates',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('file_name', sa.String(length=255)),
        sa.Column('raw_content_ref', sa.String(length=512)),
        sa.Column('placeholders', sa.JSON, nullable=False),
        sa.Column('placeholder_mapping', sa.JSON, nullable=False),
        sa.Column('canvas_spec', sa.JSON),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_table(
        'certificates',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('registration_id', sa.Integer, sa.ForeignKey('registrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('template_id', sa.Integer, sa.ForeignKey('certificate_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('certificate_code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('verification_code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('serial_number', sa.Integer, nullable=False),
        sa.Column('file_ref', sa.String(length=512), nullable=False),
        sa.Column('file_format', sa.String(length=16), nullable=False),
        sa.Column('uses_fallback_storage', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('participant_name', sa.String(length=255)),
        sa.Column('participant_email', sa.String(length=255)),
        sa.Column('event_title', sa.String(length=255)),
        sa.Column('event_date', sa.Date),
        sa.Column('event_location', sa.String(length=255)),
        sa.Column('email_sent', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('email_sent_at', sa.DateTime),
        sa.Column('issued_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('event_id', 'registration_id', name='uix_certificate_event_registration'),
    )


def downgrade() -> None:
    op.drop_table('certificates')
    op.drop_table('certificate_templates')
    op.drop_table('attendance')
    op.drop_index('ix_registrations_event_id', table_name='registrations')
    op.drop_table('registrations')
    op.drop_table('events')
