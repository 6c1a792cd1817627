import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query
from pydantic import BaseModel
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from client.redis import Client as RedisClient
from client.bigQuery import Client as BigQueryClient
from client.oracle import Client as OracleClient
from client.platforms import default_fetchers
from feed.behaviorSummarizer import BehaviorSummarizer, resolve_timeframe
from feed.config import (
    DEFAULT_FEED_LIMIT, DEFAULT_INTENT, DEFAULT_SESSION_MODE, DEFAULT_TIMEFRAME, MAX_FEED_LIMIT,
    LoggingConfig, RankingSettings, SummarizerSettings
)
from feed.contentNormalizer import ContentNormalizer
from feed.feedOrchestrator import FeedService
from feed.models import RankedResult
from feed.rankingFunnel import RankingFunnel

LoggingConfig.configure_logging()
logger = logging.getLogger(__name__)

FEED_UNAVAILABLE_MESSAGE = "Feed temporarily unavailable."


class BehaviorBatch(BaseModel):
    """Events reported by a client for one user."""
    user_id: str
    events: List[Dict[str, Any]]


class FeedServer:
    def __init__(self, feed_service: FeedService, summarizer: BehaviorSummarizer, cache=None):
        """
        Initialize feed server

        Args:
            feed_service: Feed orchestration service
            summarizer: Behavior summarizer
            cache: Cache client used for health statistics
        """
        self.feed_service = feed_service
        self.summarizer = summarizer
        self.cache = cache
        self.app = FastAPI()
        self.setup_routes()

    def setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get("/")
        def root():
            return {"status": "healthy", "service": "feed-server"}

        @self.app.get("/health")
        def health_check():
            try:
                stats = self.cache.get_stats() if self.cache else {}
                return {
                    "status": "healthy",
                    "redis_memory": stats.get('used_memory_human', '0B'),
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }
            except Exception as e:
                logger.error(f"Health check failed: {e}")
                return {"status": "unhealthy", "error": str(e)}

        @self.app.get("/feed")
        def get_feed(
            user_id: str,
            limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=MAX_FEED_LIMIT),
            offset: int = Query(0, ge=0),
            intent: str = DEFAULT_INTENT,
            mode: str = DEFAULT_SESSION_MODE,
        ):
            try:
                result = self.feed_service.get_feed(
                    user_id, limit=limit, offset=offset, intent=intent, mode=mode
                )
                logger.info(f"Served {len(result.posts)} posts to user {user_id}")
                return result.to_dict()
            except Exception as e:
                logger.error(f"Error serving feed for user {user_id}: {e}")
                return RankedResult(message=FEED_UNAVAILABLE_MESSAGE).to_dict()

        @self.app.post("/behavior")
        def record_behavior(batch: BehaviorBatch):
            accepted = self.feed_service.record_events(batch.user_id, batch.events)
            return {
                "accepted": accepted,
                "rejected": len(batch.events) - accepted,
            }

        @self.app.get("/behavior/summary")
        def get_behavior_summary(user_id: str, timeframe: str = DEFAULT_TIMEFRAME):
            summary = self.summarizer.generate_summary(user_id, timeframe)
            return {"userId": user_id, "timeframe": resolve_timeframe(timeframe), "summary": summary.to_dict()}

        @self.app.get("/behavior/insights")
        def get_behavior_insights(user_id: str, timeframe: Optional[str] = None):
            return {"userId": user_id, "insights": self.summarizer.get_behavioral_insights(user_id, timeframe)}


def build_feed_server() -> FeedServer:
    """Construct every collaborator once from the environment and wire them together"""
    redis_client = RedisClient()

    credentials_json = json.loads(os.environ['BIGQUERY_CREDENTIALS_JSON'])
    bq_client = BigQueryClient(credentials_json, os.environ['BIGQUERY_PROJECT_ID'])

    try:
        oracle = OracleClient()
    except Exception as e:
        logger.warning(f"Ranking oracle disabled: {e}")
        oracle = None

    summarizer = BehaviorSummarizer(
        event_store=bq_client,
        cache=redis_client,
        profile_store=bq_client,
        settings=SummarizerSettings.from_env(),
    )
    funnel = RankingFunnel(
        oracle=oracle,
        cache=redis_client,
        post_store=bq_client,
        settings=RankingSettings.from_env(),
    )
    feed_service = FeedService(
        summarizer=summarizer,
        funnel=funnel,
        normalizer=ContentNormalizer(),
        fetchers=default_fetchers(),
        cache=redis_client,
        connection_store=bq_client,
    )
    return FeedServer(feed_service, summarizer, cache=redis_client)


def create_app() -> FastAPI:
    return build_feed_server().app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv('PORT', 8080))
    host = os.getenv('HOST', '0.0.0.0')

    logger.info(f"Starting feed server on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)
