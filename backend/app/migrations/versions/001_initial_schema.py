"""Initial schema: users, applications, status history, reviews and error logs.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


application_status = sa.Enum(
    'NOT_SUBMITTED', 'UNDER_REVIEW', 'SECOND_REVIEW', 'NOT_COMPLETED',
    'ACCEPTED', 'REJECTED', 'DELETED',
    name='application_status',
)
user_role = sa.Enum('APPLICANT', 'MANAGER', 'REVIEWER', name='userrole')
investigation_type = sa.Enum('EI', 'EO', name='investigation_type')
category_type = sa.Enum('GE', 'SH', 'AN', name='category_type')
error_severity = sa.Enum('INFO', 'WARNING', 'ERROR', 'CRITICAL', name='errorseverity')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('middle_name', sa.String(100), nullable=True),
        sa.Column('first_surname', sa.String(100), nullable=False),
        sa.Column('second_surname', sa.String(100), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('project_title', sa.String(500), nullable=False),
        sa.Column('investigation_type', investigation_type, nullable=False),
        sa.Column('category_type', category_type, nullable=False),
        sa.Column('sequential_number', sa.Integer(), nullable=False),
        sa.Column('codification', sa.String(100), nullable=False),
        sa.Column('status', application_status, nullable=False, server_default='NOT_SUBMITTED'),
        sa.Column('date_created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('date_submitted', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.UniqueConstraint('sequential_number', name='uq_applications_sequential_number'),
        sa.UniqueConstraint('codification', name='uq_applications_codification'),
    )
    op.create_index('ix_applications_owner_id', 'applications', ['owner_id'])
    op.create_index('ix_applications_codification', 'applications', ['codification'])
    op.create_index('ix_applications_status', 'applications', ['status'])

    op.create_table(
        'status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('application_id', sa.Integer(), sa.ForeignKey('applications.id'), nullable=False),
        sa.Column('previous_status', application_status, nullable=False),
        sa.Column('new_status', application_status, nullable=False),
        sa.Column('changed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('change_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
    )
    op.create_index('ix_status_history_application_id', 'status_history', ['application_id'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('application_id', sa.Integer(), sa.ForeignKey('applications.id'), nullable=False),
        sa.Column('reviewer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', application_status, nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('date_assigned', sa.DateTime(timezone=True), nullable=False),
        sa.Column('date_reviewed', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_reviews_application_id', 'reviews', ['application_id'])
    op.create_index('ix_reviews_reviewer_id', 'reviews', ['reviewer_id'])

    # Audit rows are insert-only at the database level too
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_audit_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% rows are append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql
    """)
    for table in ('status_history', 'reviews'):
        op.execute(f"""
            CREATE TRIGGER {table}_append_only
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION reject_audit_mutation()
        """)

    op.create_table(
        'error_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('severity', error_severity, nullable=False),
        sa.Column('error_type', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('traceback', sa.Text(), nullable=True),
        sa.Column('module', sa.String(300), nullable=True),
        sa.Column('function_name', sa.String(200), nullable=True),
        sa.Column('request_method', sa.String(10), nullable=True),
        sa.Column('request_path', sa.String(500), nullable=True),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('response_time_ms', sa.Float(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('application_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_error_logs_application_id', 'error_logs', ['application_id'])


def downgrade() -> None:
    op.drop_index('ix_error_logs_application_id', table_name='error_logs')
    op.drop_table('error_logs')
    for table in ('status_history', 'reviews'):
        op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table}")
    op.execute("DROP FUNCTION IF EXISTS reject_audit_mutation()")
    op.drop_table('reviews')
    op.drop_table('status_history')
    op.drop_table('applications')
    op.drop_table('users')
    for enum_type in (error_severity, category_type, investigation_type, user_role, application_status):
        enum_type.drop(op.get_bind(), checkfirst=True)
