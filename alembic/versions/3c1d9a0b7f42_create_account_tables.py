"""create account tables

Revision ID: 3c1d9a0b7f42
Revises: 
Create Date: 2024-05-17 09:12:31.504118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.orm import Session

from identity import models  # noqa: F401
from identity.database import Base
from identity.roles import seed_roles


# revision identifiers, used by Alembic.
revision: str = '3c1d9a0b7f42'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema by creating all tables and seeding the role catalog."""
    bind = op.get_bind()
    Base.metadata.create_all(bind)
    session = Session(bind=bind)
    seed_roles(session)
    session.commit()


def downgrade() -> None:
    """Downgrade schema by dropping all tables."""
    bind = op.get_bind()
    Base.metadata.drop_all(bind)
