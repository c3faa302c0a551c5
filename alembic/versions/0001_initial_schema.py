"""initial schema: doctors, appointments, chat, notification and audit logs

Revision ID: 0001
Revises:
Create Date: 2025-11-02 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

doctor_status = sa.Enum('active', 'inactive', name='doctor_status')
appointment_status = sa.Enum('pending', 'approved', 'rejected', 'completed', 'cancelled', name='appointment_status')
chat_session_status = sa.Enum('active', 'completed', name='chat_session_status')
chat_sender = sa.Enum('user', 'bot', name='chat_sender')
severity = sa.Enum('low', 'medium', 'high', name='severity')
notification_type = sa.Enum('appointment_request', 'appointment_confirmation', 'appointment_rejection', name='notification_type')
notification_status = sa.Enum('pending', 'sent', 'failed', 'skipped', name='notification_status')
audit_action = sa.Enum(
    'CREATE', 'UPDATE', 'DELETE', 'APPOINTMENT_CREATE', 'APPOINTMENT_RESPOND', 'APPOINTMENT_STATUS',
    name='audit_action'
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'doctors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('specialty', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('license_number', sa.String(50), nullable=True),
        sa.Column('experience', sa.String(50), nullable=True),
        sa.Column('education', sa.String(255), nullable=True),
        sa.Column('about', sa.Text(), nullable=True),
        sa.Column('languages', sa.JSON(), nullable=True),
        sa.Column('availability', sa.JSON(), nullable=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('total_reviews', sa.Integer(), nullable=True),
        sa.Column('status', doctor_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_doctors_id', 'doctors', ['id'])
    op.create_index('ix_doctors_user_id', 'doctors', ['user_id'], unique=True)
    op.create_index('ix_doctors_specialty', 'doctors', ['specialty'])
    op.create_index('ix_doctors_status', 'doctors', ['status'])
    op.create_index('idx_doctors_status_specialty', 'doctors', ['status', 'specialty'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.String(255), nullable=False),
        sa.Column('patient_name', sa.String(255), nullable=False),
        sa.Column('patient_email', sa.String(255), nullable=False),
        sa.Column('patient_phone', sa.String(30), nullable=True),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('doctors.id', ondelete='SET NULL'), nullable=True),
        sa.Column('doctor_name', sa.String(255), nullable=True),
        sa.Column('doctor_email', sa.String(255), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('symptoms', sa.Text(), nullable=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', appointment_status, nullable=False),
        sa.Column('meeting_link', sa.String(500), nullable=True),
        sa.Column('doctor_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('ix_appointments_patient_id', 'appointments', ['patient_id'])
    op.create_index('ix_appointments_doctor_id', 'appointments', ['doctor_id'])
    op.create_index('ix_appointments_appointment_date', 'appointments', ['appointment_date'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index('idx_appointments_doctor_status', 'appointments', ['doctor_id', 'status'])
    op.create_index('idx_appointments_patient_date', 'appointments', ['patient_id', 'appointment_date'])

    op.create_table(
        'chat_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('patient_id', sa.String(255), nullable=False),
        sa.Column('status', chat_session_status, nullable=False),
        sa.Column('session_start', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('session_end', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_chat_sessions_id', 'chat_sessions', ['id'])
    op.create_index('ix_chat_sessions_patient_id', 'chat_sessions', ['patient_id'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('chat_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('sender', chat_sender, nullable=False),
        sa.Column('severity', severity, nullable=True),
        sa.Column('appointment_suggested', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_chat_messages_id', 'chat_messages', ['id'])
    op.create_index('ix_chat_messages_session_id', 'chat_messages', ['session_id'])

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('appointment_id', sa.Integer(), sa.ForeignKey('appointments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notification_type', notification_type, nullable=False),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('status', notification_status, nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_notification_logs_id', 'notification_logs', ['id'])
    op.create_index('ix_notification_logs_appointment_id', 'notification_logs', ['appointment_id'])
    op.create_index('ix_notification_logs_recipient', 'notification_logs', ['recipient'])
    op.create_index('idx_notifications_status_created', 'notification_logs', ['status', 'created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.String(255), nullable=True),
        sa.Column('actor_role', sa.String(20), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('idx_audit_actor_date', 'audit_logs', ['actor_id', 'timestamp'])
    op.create_index('idx_audit_resource', 'audit_logs', ['resource_type', 'resource_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_logs')
    op.drop_table('notification_logs')
    op.drop_table('chat_messages')
    op.drop_table('chat_sessions')
    op.drop_table('appointments')
    op.drop_table('doctors')

    bind = op.get_bind()
    for enum_type in (audit_action, notification_status, notification_type, severity,
                      chat_sender, chat_session_status, appointment_status, doctor_status):
        enum_type.drop(bind, checkfirst=True)
