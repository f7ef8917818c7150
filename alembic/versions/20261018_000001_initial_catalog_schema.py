"""initial_catalog_schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

Providers, catalog content (live channels, movies, series/anime with seasons
and episodes), program guide, user data referencing content by surrogate id,
and the background job table.
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20261018_initial'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ID = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')
JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def _provider_fk(table: str) -> sa.Column:
    return sa.Column(
        'provider_id',
        ID,
        sa.ForeignKey('providers.id', ondelete='CASCADE', name=f'fk_{table}_provider_id_providers'),
        nullable=False,
    )


def upgrade() -> None:
    """Create the catalog schema."""
    op.create_table(
        'providers',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        sa.Column('user_id', ID, nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=True),
        sa.Column('password', sa.String(length=255), nullable=True),
        sa.Column('provider_type', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        sa.Column('gindex_url', sa.Text(), nullable=True),
        sa.Column('gindex_drives', JSON, nullable=True),
        sa.Column('sync_status', sa.String(length=16), nullable=False),
        sa.Column('live_channels_count', sa.Integer(), nullable=False),
        sa.Column('movies_count', sa.Integer(), nullable=False),
        sa.Column('series_count', sa.Integer(), nullable=False),
        sa.Column('animes_count', sa.Integer(), nullable=False),
        sa.Column('episodes_count', sa.Integer(), nullable=False),
        sa.Column('live_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('vod_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('series_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('anime_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('epg_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('epg_sync_interval_hours', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_providers'),
    )
    op.create_index('ix_providers_user_id', 'providers', ['user_id'])

    op.create_table(
        'live_channels',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        _provider_fk('live_channels'),
        sa.Column('stream_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('stream_icon', sa.Text(), nullable=True),
        sa.Column('epg_channel_id', sa.String(length=255), nullable=True),
        sa.Column('tv_archive', sa.Boolean(), nullable=False),
        sa.Column('direct_source', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_live_channels'),
        sa.UniqueConstraint('provider_id', 'stream_id', name='uq_live_channels_provider_id_stream_id'),
    )

    op.create_table(
        'movies',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        _provider_fk('movies'),
        sa.Column('stream_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('container_extension', sa.String(length=16), nullable=True),
        sa.Column('source_path', sa.Text(), nullable=True),
        sa.Column('stream_icon', sa.Text(), nullable=True),
        sa.Column('genre', sa.Text(), nullable=True),
        sa.Column('plot', sa.Text(), nullable=True),
        sa.Column('tmdb_id', sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_movies'),
        sa.UniqueConstraint('provider_id', 'stream_id', name='uq_movies_provider_id_stream_id'),
    )

    op.create_table(
        'series',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        _provider_fk('series'),
        sa.Column('series_id', sa.BigInteger(), nullable=False),
        sa.Column('content_type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('cover', sa.Text(), nullable=True),
        sa.Column('genre', sa.Text(), nullable=True),
        sa.Column('plot', sa.Text(), nullable=True),
        sa.Column('tmdb_id', sa.String(length=32), nullable=True),
        sa.Column('source_path', sa.Text(), nullable=True),
        sa.Column('season_count', sa.Integer(), nullable=False),
        sa.Column('episode_count', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_series'),
        sa.UniqueConstraint('provider_id', 'series_id', name='uq_series_provider_id_series_id'),
    )
    op.create_index('ix_series_provider_content_type', 'series', ['provider_id', 'content_type'])

    op.create_table(
        'seasons',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        sa.Column(
            'series_id',
            ID,
            sa.ForeignKey('series.id', ondelete='CASCADE', name='fk_seasons_series_id_series'),
            nullable=False,
        ),
        sa.Column('season_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('episode_count', sa.Integer(), nullable=False),
        sa.Column('source_path', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_seasons'),
        sa.UniqueConstraint('series_id', 'season_number', name='uq_seasons_series_id_season_number'),
    )

    op.create_table(
        'episodes',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        sa.Column(
            'season_id',
            ID,
            sa.ForeignKey('seasons.id', ondelete='CASCADE', name='fk_episodes_season_id_seasons'),
            nullable=False,
        ),
        sa.Column('episode_id', sa.BigInteger(), nullable=False),
        sa.Column('episode_num', sa.Integer(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('container_extension', sa.String(length=16), nullable=True),
        sa.Column('source_path', sa.Text(), nullable=True),
        sa.Column('duration_secs', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_episodes'),
        sa.UniqueConstraint('season_id', 'episode_id', name='uq_episodes_season_id_episode_id'),
        sa.UniqueConstraint('season_id', 'episode_num', name='uq_episodes_season_id_episode_num'),
    )

    op.create_table(
        'epg_programs',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        _provider_fk('epg_programs'),
        sa.Column('epg_channel_id', sa.String(length=255), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('lang', sa.String(length=16), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_epg_programs'),
        sa.UniqueConstraint(
            'provider_id',
            'epg_channel_id',
            'start_time',
            name='uq_epg_programs_provider_id_epg_channel_id_start_time',
        ),
    )
    op.create_index('ix_epg_programs_provider_end_time', 'epg_programs', ['provider_id', 'end_time'])

    op.create_table(
        'favorites',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        sa.Column('user_id', ID, nullable=False),
        sa.Column('content_type', sa.String(length=32), nullable=False),
        sa.Column('content_id', sa.BigInteger(), nullable=False),
        sa.Column('content_name', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_favorites'),
        sa.UniqueConstraint(
            'user_id', 'content_type', 'content_id', name='uq_favorites_user_id_content_type_content_id'
        ),
    )
    op.create_index('ix_favorites_user_id', 'favorites', ['user_id'])

    op.create_table(
        'watch_history',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        sa.Column('user_id', ID, nullable=False),
        sa.Column('content_type', sa.String(length=32), nullable=False),
        sa.Column('content_id', sa.BigInteger(), nullable=False),
        sa.Column('content_name', sa.Text(), nullable=True),
        sa.Column('watched_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('progress_seconds', sa.Integer(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_watch_history'),
    )
    op.create_index('ix_watch_history_user_id', 'watch_history', ['user_id'])
    op.create_index('ix_watch_history_content', 'watch_history', ['content_type', 'content_id'])

    op.create_table(
        'sync_jobs',
        sa.Column('id', ID, autoincrement=True, nullable=False),
        sa.Column('worker', sa.String(length=128), nullable=False),
        sa.Column('queue', sa.String(length=64), nullable=False),
        sa.Column('args', JSON, nullable=False),
        sa.Column('state', sa.String(length=16), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('unique_key', sa.String(length=255), nullable=True),
        sa.Column('errors', JSON, nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_sync_jobs'),
    )
    op.create_index('ix_sync_jobs_fetch', 'sync_jobs', ['queue', 'state', 'scheduled_at'])
    op.create_index('ix_sync_jobs_unique_key', 'sync_jobs', ['unique_key'])


def downgrade() -> None:
    """Drop the catalog schema."""
    op.drop_table('sync_jobs')
    op.drop_table('watch_history')
    op.drop_table('favorites')
    op.drop_table('epg_programs')
    op.drop_table('episodes')
    op.drop_table('seasons')
    op.drop_table('series')
    op.drop_table('movies')
    op.drop_table('live_channels')
    op.drop_table('providers')
