"""create users, profiles, reminders and scheduled jobs

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'user_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_user_profiles_id', 'user_profiles', ['id'])

    op.create_table(
        'reminders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tipo', sa.String(), nullable=True),
        sa.Column('titulo', sa.String(), nullable=True),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('fecha', sa.DateTime(), nullable=False),
        sa.Column('frecuencia', sa.String(), nullable=True),
        sa.Column('intervalo_personalizado', sa.Integer(), nullable=True),
        sa.Column('horarios', sa.JSON(), nullable=False),
        sa.Column('dosis', sa.String(), nullable=True),
        sa.Column('unidad', sa.String(), nullable=True),
        sa.Column('cantidad_disponible', sa.Integer(), nullable=True),
        sa.Column('nombre_persona', sa.String(), nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_reminders_id', 'reminders', ['id'])
    op.create_index('ix_reminders_user_id', 'reminders', ['user_id'])
    op.create_index('ix_reminders_fecha', 'reminders', ['fecha'])
    op.create_index('ix_reminders_pending_fecha', 'reminders', ['completed', 'sent', 'fecha'])
    op.create_index('ix_reminders_user_fecha', 'reminders', ['user_id', 'fecha'])

    op.create_table(
        'scheduled_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('run_at', sa.DateTime(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('reminder_key', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='scheduled'),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('fail_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_scheduled_jobs_id', 'scheduled_jobs', ['id'])
    op.create_index('ix_scheduled_jobs_status_run_at', 'scheduled_jobs', ['status', 'run_at'])
    op.create_index('ix_scheduled_jobs_name', 'scheduled_jobs', ['name'])
    op.create_index('ix_scheduled_jobs_reminder_key', 'scheduled_jobs', ['reminder_key'])
    op.create_index('ix_scheduled_jobs_status_finished_at', 'scheduled_jobs', ['status', 'finished_at'])


def downgrade() -> None:
    op.drop_index('ix_scheduled_jobs_status_finished_at', table_name='scheduled_jobs')
    op.drop_index('ix_scheduled_jobs_reminder_key', table_name='scheduled_jobs')
    op.drop_index('ix_scheduled_jobs_name', table_name='scheduled_jobs')
    op.drop_index('ix_scheduled_jobs_status_run_at', table_name='scheduled_jobs')
    op.drop_index('ix_scheduled_jobs_id', table_name='scheduled_jobs')
    op.drop_table('scheduled_jobs')
    op.drop_index('ix_reminders_user_fecha', table_name='reminders')
    op.drop_index('ix_reminders_pending_fecha', table_name='reminders')
    op.drop_index('ix_reminders_fecha', table_name='reminders')
    op.drop_index('ix_reminders_user_id', table_name='reminders')
    op.drop_index('ix_reminders_id', table_name='reminders')
    op.drop_table('reminders')
    op.drop_index('ix_user_profiles_id', table_name='user_profiles')
    op.drop_table('user_profiles')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
