"""mission engine schema

Revision ID: 7c3e1a9d0b21
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c3e1a9d0b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_SQL = "status IN ('available', 'in_progress')"


def upgrade() -> None:
    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_patients_clinic_id', 'patients', ['clinic_id'])

    op.create_table(
        'treatments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('total_aligners', sa.Integer(), nullable=True),
        sa.Column('current_aligner_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'aligners',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('treatment_id', sa.Integer(), sa.ForeignKey('treatments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('aligner_number', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.UniqueConstraint('treatment_id', 'aligner_number', name='uq_aligner_number_per_treatment'),
    )
    op.create_index('ix_aligners_treatment_id', 'aligners', ['treatment_id'])

    op.create_table(
        'mission_templates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('clinic_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('icon', sa.String(16), nullable=True),
        sa.Column('color', sa.String(7), nullable=True),
        sa.Column('category', sa.String(40), nullable=False),
        sa.Column('frequency', sa.String(40), nullable=False),
        sa.Column('completion_criteria', sa.String(40), nullable=False),
        sa.Column('target_value', sa.Integer(), nullable=False),
        sa.Column('time_unit', sa.String(40), nullable=False, server_default='hours'),
        sa.Column('base_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bonus_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active_by_default', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('requires_manual_validation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_activate', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('available_from', sa.String(32), nullable=False, server_default='start'),
        sa.Column('expires_after_days', sa.Integer(), nullable=True),
        sa.Column('scheduled_start_date', sa.Date(), nullable=True),
        sa.Column('scheduled_end_date', sa.Date(), nullable=True),
        sa.Column('active_days_of_week', sa.JSON(), nullable=True),
        sa.Column('repeat_schedule', sa.String(40), nullable=False, server_default='none'),
        sa.Column('aligner_interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('target_value > 0', name='chk_template_target_positive'),
        sa.CheckConstraint('base_points >= 0 AND bonus_points >= 0', name='chk_template_points'),
        sa.CheckConstraint('aligner_interval >= 1', name='chk_template_aligner_interval'),
    )
    op.create_index('ix_mission_templates_clinic_id', 'mission_templates', ['clinic_id'])

    op.create_table(
        'mission_programs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('clinic_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_mission_programs_clinic_id', 'mission_programs', ['clinic_id'])

    op.create_table(
        'mission_program_templates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('program_id', sa.Integer(), sa.ForeignKey('mission_programs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mission_template_id', sa.Integer(), sa.ForeignKey('mission_templates.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('aligner_interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('trigger', sa.String(40), nullable=False, server_default='on_aligner_N_start'),
        sa.Column('trigger_aligner_number', sa.Integer(), nullable=True),
        sa.Column('trigger_days_offset', sa.Integer(), nullable=True),
        sa.Column('custom_points', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index(
        'ix_program_templates_cell', 'mission_program_templates',
        ['program_id', 'mission_template_id', 'trigger_aligner_number'],
    )

    op.create_table(
        'mission_assignments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mission_template_id', sa.Integer(), sa.ForeignKey('mission_templates.id'), nullable=False),
        sa.Column('trigger', sa.String(40), nullable=False),
        sa.Column('trigger_aligner_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('trigger_days_offset', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('aligner_interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('custom_points', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(16), nullable=False, server_default='direct'),
        sa.Column('program_id', sa.Integer(), sa.ForeignKey('mission_programs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'patient_id', 'mission_template_id', 'trigger', 'trigger_aligner_number', 'trigger_days_offset',
            name='uq_assignment_trigger_config',
        ),
    )
    op.create_index('ix_mission_assignments_patient', 'mission_assignments', ['patient_id', 'is_active'])

    op.create_table(
        'patient_missions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mission_template_id', sa.Integer(), sa.ForeignKey('mission_templates.id'), nullable=False),
        sa.Column('assignment_id', sa.Integer(), sa.ForeignKey('mission_assignments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='available'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('target_value', sa.Integer(), nullable=False),
        sa.Column('trigger', sa.String(40), nullable=False),
        sa.Column('trigger_aligner_number', sa.Integer(), nullable=True),
        sa.Column('trigger_days_offset', sa.Integer(), nullable=True),
        sa.Column('auto_activated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('period_key', sa.String(64), nullable=False),
        sa.Column('custom_points', sa.Integer(), nullable=True),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('streak_last_date', sa.Date(), nullable=True),
        sa.Column('elapsed_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('validated_by', sa.String(64), nullable=True),
        sa.Column('validated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('patient_id', 'mission_template_id', 'period_key', name='uq_patient_mission_period'),
        sa.CheckConstraint('progress >= 0 AND progress <= target_value', name='chk_progress_range'),
        sa.CheckConstraint('target_value > 0', name='chk_mission_target_positive'),
        sa.CheckConstraint('points_earned >= 0', name='chk_points_earned'),
    )
    op.create_index(
        'uq_patient_mission_open', 'patient_missions', ['patient_id', 'mission_template_id'],
        unique=True,
        postgresql_where=sa.text(OPEN_SQL),
        sqlite_where=sa.text(OPEN_SQL),
    )
    op.create_index('ix_patient_missions_patient_status', 'patient_missions', ['patient_id', 'status'])

    op.create_table(
        'patient_points',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('coins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'point_transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('source', sa.String(30), nullable=False),
        sa.Column('patient_mission_id', sa.Integer(), sa.ForeignKey('patient_missions.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('amount_coins', sa.Integer(), nullable=False),
        sa.Column('amount_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_after_coins', sa.Integer(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_point_transactions_patient_created', 'point_transactions', ['patient_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_point_transactions_patient_created', table_name='point_transactions')
    op.drop_table('point_transactions')
    op.drop_table('patient_points')
    op.drop_index('ix_patient_missions_patient_status', table_name='patient_missions')
    op.drop_index('uq_patient_mission_open', table_name='patient_missions')
    op.drop_table('patient_missions')
    op.drop_index('ix_mission_assignments_patient', table_name='mission_assignments')
    op.drop_table('mission_assignments')
    op.drop_index('ix_program_templates_cell', table_name='mission_program_templates')
    op.drop_table('mission_program_templates')
    op.drop_index('ix_mission_programs_clinic_id', table_name='mission_programs')
    op.drop_table('mission_programs')
    op.drop_index('ix_mission_templates_clinic_id', table_name='mission_templates')
    op.drop_table('mission_templates')
    op.drop_index('ix_aligners_treatment_id', table_name='aligners')
    op.drop_table('aligners')
    op.drop_table('treatments')
    op.drop_index('ix_patients_clinic_id', table_name='patients')
    op.drop_table('patients')
