"""initial schema

Revision ID: c0f1e2d3a4b5
Revises:
Create Date: 2026-10-18

Creates every table of the auth core:
  users, passwords, user_images    accounts, bcrypt hashes, avatars
  sessions                         login sessions referenced by the en_session cookie
  connections                      OAuth identities linked to users
  verifications                    TOTP secrets, one row per (target, type)
  roles, permissions               RBAC, with user_roles and role_permissions links

Seed data:
  permissions  create/read/update/delete × user/note × own/any
  roles        "user"  → every :own permission
               "admin" → every :any permission
"""
from alembic import op
import sqlalchemy as sa
import uuid

revision = 'c0f1e2d3a4b5'
down_revision = None
branch_labels = None
depends_on = None

ACTIONS = ('create', 'read', 'update', 'delete')
ENTITIES = ('user', 'note')


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at',
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text('CURRENT_TIMESTAMP'),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        _created_at(),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text('CURRENT_TIMESTAMP'),
            nullable=False,
        ),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'passwords',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('hash', sa.String(), nullable=False),
    )

    op.create_table(
        'user_images',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('alt_text', sa.String(255), nullable=True),
        sa.Column('content_type', sa.String(100), nullable=False),
        sa.Column('blob', sa.LargeBinary(), nullable=False),
        _created_at(),
    )

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('expiration_date', sa.TIMESTAMP(timezone=True), nullable=False),
        _created_at(),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])

    op.create_table(
        'connections',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('provider_name', sa.String(50), nullable=False),
        sa.Column('provider_id', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _created_at(),
        sa.UniqueConstraint('provider_name', 'provider_id', name='uq_connections_provider'),
    )
    op.create_index('ix_connections_user_id', 'connections', ['user_id'])

    op.create_table(
        'verifications',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('target', sa.String(255), nullable=False),
        sa.Column('secret', sa.String(255), nullable=False),
        sa.Column('algorithm', sa.String(20), nullable=False),
        sa.Column('digits', sa.Integer(), nullable=False),
        sa.Column('period', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint('target', 'type', name='uq_verifications_target_type'),
    )
    op.create_index('ix_verifications_target', 'verifications', ['target'])

    op.create_table(
        'roles',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('description', sa.String(255), server_default='', nullable=False),
        _created_at(),
    )

    op.create_table(
        'permissions',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity', sa.String(50), nullable=False),
        sa.Column('access', sa.String(20), nullable=False),
        sa.Column('description', sa.String(255), server_default='', nullable=False),
        sa.UniqueConstraint('action', 'entity', 'access', name='uq_permissions_triple'),
    )

    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.String(36), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'role_permissions',
        sa.Column('role_id', sa.String(36), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', sa.String(36), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # ── Seed roles & permissions ───────────────────────────────────────────
    permissions = [
        {'id': str(uuid.uuid4()), 'action': action, 'entity': entity, 'access': access, 'description': ''}
        for action in ACTIONS
        for entity in ENTITIES
        for access in ('own', 'any')
    ]
    roles = {
        'user': {'id': str(uuid.uuid4()), 'name': 'user', 'description': ''},
        'admin': {'id': str(uuid.uuid4()), 'name': 'admin', 'description': ''},
    }

    op.bulk_insert(
        sa.table(
            'permissions',
            sa.column('id',          sa.String()),
            sa.column('action',      sa.String()),
            sa.column('entity',      sa.String()),
            sa.column('access',      sa.String()),
            sa.column('description', sa.String()),
        ),
        permissions,
    )
    op.bulk_insert(
        sa.table(
            'roles',
            sa.column('id',          sa.String()),
            sa.column('name',        sa.String()),
            sa.column('description', sa.String()),
        ),
        list(roles.values()),
    )
    op.bulk_insert(
        sa.table(
            'role_permissions',
            sa.column('role_id',       sa.String()),
            sa.column('permission_id', sa.String()),
        ),
        [
            {
                'role_id': roles['user' if p['access'] == 'own' else 'admin']['id'],
                'permission_id': p['id'],
            }
            for p in permissions
        ],
    )


def downgrade() -> None:
    op.drop_table('role_permissions')
    op.drop_table('user_roles')
    op.drop_table('permissions')
    op.drop_table('roles')
    op.drop_index('ix_verifications_target', table_name='verifications')
    op.drop_table('verifications')
    op.drop_index('ix_connections_user_id', table_name='connections')
    op.drop_table('connections')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('user_images')
    op.drop_table('passwords')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
