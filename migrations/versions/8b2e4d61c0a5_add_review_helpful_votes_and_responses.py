"""add_review_helpful_votes_and_responses

Revision ID: 8b2e4d61c0a5
Revises: 3f1c2a7b9d10
Create Date: 2026-10-16 15:02:17.381904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2e4d61c0a5'
down_revision: Union[str, Sequence[str], None] = '3f1c2a7b9d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('reviews', sa.Column('helpful_count', sa.Integer(), nullable=False, server_default='0'))
    op.add_column('reviews', sa.Column('response_message', sa.String(length=1000), nullable=True))
    op.add_column('reviews', sa.Column('response_responded_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column(
        'reviews',
        sa.Column('response_is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_check_constraint('review_helpful_count_non_negative', 'reviews', 'helpful_count >= 0')

    op.create_table(
        'review_helpful_votes',
        sa.Column('review_id', sa.Uuid(), sa.ForeignKey('reviews.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('review_helpful_votes')
    op.drop_constraint('review_helpful_count_non_negative', 'reviews', type_='check')
    op.drop_column('reviews', 'response_is_public')
    op.drop_column('reviews', 'response_responded_at')
    op.drop_column('reviews', 'response_message')
    op.drop_column('reviews', 'helpful_count')
