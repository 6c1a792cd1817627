import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from google.cloud import bigquery
from google.oauth2 import service_account

from feed.exceptions import StoreError
from feed.models import BehaviorEvent, BehaviorSummary, NormalizedPost, PlatformConnection


class Client:
    def __init__(self, credentials_json: Dict, project_id: str, dataset_id: str = 'data'):
        """
        Initialize BigQuery client for events, user profiles and seen posts

        Args:
            credentials_json: Service account info (parsed BIGQUERY_CREDENTIALS_JSON)
            project_id: GCP project id
            dataset_id: Dataset holding the behavior_events, users and posts tables
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.project_id = project_id
        self.dataset_id = dataset_id

        credentials = service_account.Credentials.from_service_account_info(credentials_json)
        self.client = bigquery.Client(credentials=credentials, project=project_id)
        self.logger.info(f"BigQuery client ready for {project_id}.{dataset_id}")

    def table(self, name: str) -> str:
        return f"{self.project_id}.{self.dataset_id}.{name}"

    def query(self, query: str, parameters: Optional[List] = None) -> List[Dict]:
        """
        Run a parameterized query

        Args:
            query: SQL text
            parameters: BigQuery query parameters

        Returns:
            Result rows as dictionaries

        Raises:
            StoreError: if the query fails
        """
        try:
            job_config = bigquery.QueryJobConfig(query_parameters=parameters or [])
            query_job = self.client.query(query, job_config=job_config)
            return [dict(row.items()) for row in query_job.result()]
        except Exception as e:
            self.logger.error(f"BigQuery query failed: {e}")
            raise StoreError(f"BigQuery query failed: {e}") from e

    def insert_events(self, events: List[BehaviorEvent]) -> int:
        """Append behavior events; returns the number of rows written"""
        if not events:
            return 0

        rows = [
            {
                'user_id': event.user_id,
                'post_id': event.post_id,
                'event_type': event.event_type,
                'timestamp': event.timestamp.isoformat(),
                'dwell_time_ms': event.dwell_time_ms,
                'metadata': json.dumps(event.metadata, default=str),
                'session_id': event.session_id or 'unknown',
            }
            for event in events
        ]

        try:
            errors = self.client.insert_rows_json(self.table('behavior_events'), rows)
        except Exception as e:
            self.logger.error(f"Failed to insert behavior events: {e}")
            raise StoreError(f"Failed to insert behavior events: {e}") from e

        if errors:
            self.logger.error(f"BigQuery rejected {len(errors)} event rows: {errors[:3]}")
            raise StoreError(f"BigQuery rejected {len(errors)} event rows")

        self.logger.info(f"Inserted {len(rows)} behavior events")
        return len(rows)

    def find_events(self, user_id: str, since: datetime) -> List[BehaviorEvent]:
        """Events for a user at or after ``since``, in no particular order"""
        query = f"""
        SELECT user_id, post_id, event_type, timestamp, dwell_time_ms, metadata, session_id
        FROM `{self.table('behavior_events')}`
        WHERE user_id = @user_id
        AND timestamp >= @since
        """
        rows = self.query(query, [
            bigquery.ScalarQueryParameter("user_id", "STRING", user_id),
            bigquery.ScalarQueryParameter("since", "TIMESTAMP", since),
        ])

        events = []
        for row in rows:
            metadata = row.get('metadata') or {}
            if isinstance(metadata, str):
                metadata = json.loads(metadata)
            try:
                events.append(BehaviorEvent(
                    user_id=row['user_id'],
                    post_id=row['post_id'],
                    event_type=row['event_type'],
                    timestamp=row['timestamp'],
                    dwell_time_ms=row.get('dwell_time_ms'),
                    metadata=metadata,
                    session_id=row.get('session_id'),
                ))
            except ValueError as e:
                self.logger.warning(f"Skipping malformed event row for user {user_id}: {e}")

        self.logger.info(f"Loaded {len(events)} events for user {user_id} since {since.isoformat()}")
        return events

    def update_behavior_summary(self, user_id: str, summary: BehaviorSummary):
        """Write the rolled-forward summary onto the user's profile row"""
        query = f"""
        MERGE `{self.table('users')}` AS target
        USING (
            SELECT
                @user_id AS user_id,
                PARSE_JSON(@summary) AS behavior_summary,
                @timestamp AS updated_at
        ) AS source
        ON target.user_id = source.user_id
        WHEN MATCHED THEN
            UPDATE SET behavior_summary = source.behavior_summary, updated_at = source.updated_at
        WHEN NOT MATCHED THEN
            INSERT (user_id, behavior_summary, created_at, updated_at)
            VALUES (source.user_id, source.behavior_summary, source.updated_at, source.updated_at)
        """
        self.query(query, [
            bigquery.ScalarQueryParameter("user_id", "STRING", user_id),
            bigquery.ScalarQueryParameter("summary", "STRING", json.dumps(summary.to_dict())),
            bigquery.ScalarQueryParameter("timestamp", "TIMESTAMP", datetime.now(timezone.utc)),
        ])
        self.logger.info(f"Updated behavior summary for user {user_id}")

    def get_connected_platforms(self, user_id: str) -> List[PlatformConnection]:
        query = f"""
        SELECT connected_platforms
        FROM `{self.table('users')}`
        WHERE user_id = @user_id
        LIMIT 1
        """
        rows = self.query(query, [bigquery.ScalarQueryParameter("user_id", "STRING", user_id)])
        if not rows or not rows[0].get('connected_platforms'):
            return []

        platforms = rows[0]['connected_platforms']
        if isinstance(platforms, str):
            platforms = json.loads(platforms)
        return [PlatformConnection.from_dict(item) for item in platforms]

    def upsert_posts(self, posts: List[NormalizedPost], user_id: str) -> int:
        """Idempotent upsert of seen posts keyed by post id"""
        if not posts:
            return 0

        now = datetime.now(timezone.utc)
        rows = [
            bigquery.StructQueryParameter(
                None,
                bigquery.ScalarQueryParameter("id", "STRING", post.id),
                bigquery.ScalarQueryParameter("platform", "STRING", post.platform),
                bigquery.ScalarQueryParameter("data", "STRING", json.dumps(post.to_dict())),
                bigquery.ScalarQueryParameter("time_published", "TIMESTAMP", post.published_at),
            )
            for post in posts
        ]

        query = f"""
        MERGE `{self.table('posts')}` AS target
        USING (
            SELECT p.id, p.platform, PARSE_JSON(p.data) AS data, p.time_published
            FROM UNNEST(@posts) AS p
        ) AS source
        ON target.id = source.id
        WHEN MATCHED THEN
            UPDATE SET data = source.data, last_seen_at = @timestamp, last_seen_by = @user_id
        WHEN NOT MATCHED THEN
            INSERT (id, platform, data, time_published, first_seen_at, last_seen_at, last_seen_by)
            VALUES (source.id, source.platform, source.data, source.time_published, @timestamp, @timestamp, @user_id)
        """
        self.query(query, [
            bigquery.ArrayQueryParameter("posts", "STRUCT", rows),
            bigquery.ScalarQueryParameter("user_id", "STRING", user_id),
            bigquery.ScalarQueryParameter("timestamp", "TIMESTAMP", now),
        ])
        self.logger.info(f"Upserted {len(posts)} seen posts for user {user_id}")
        return len(posts)
