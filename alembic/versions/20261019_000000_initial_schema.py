"""Initial schema - representatives, students and the transaction ledger.

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '000_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from SQLAlchemy model definitions."""
    from schoolpay.database.db_configs import Base

    # Import all models to ensure they're registered with Base.metadata
    from schoolpay.sqlModels import representativeEntities  # noqa: F401
    from schoolpay.sqlModels import transactionEntities  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade() -> None:
    """Drop all tables."""
    from schoolpay.database.db_configs import Base

    from schoolpay.sqlModels import representativeEntities  # noqa: F401
    from schoolpay.sqlModels import transactionEntities  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
