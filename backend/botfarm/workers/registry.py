"""
Bot registry - build a behavior by name with its collaborators
"""
import logging
from typing import Optional, Dict, Callable

from openai import AsyncOpenAI

from ..config.settings import Settings
from ..config.database import OracleConfig
from ..repositories.store import Store
from ..services.oracle_client import OracleClient
from ..services.quality_scoring import QualityScorer
from ..services.vector_index import PgVectorIndex
from .bot_runner import BotBehavior
from .relevance_bot import RelevanceBot
from .summary_bot import SummaryBot
from .duplicate_bot import DuplicateBot
from .gap_scanner import GapScanner

logger = logging.getLogger(__name__)


def _oracle(settings: Settings, oracle: Optional[OracleClient]) -> OracleClient:
    # A fresh client per run keeps the circuit breaker scoped to the run
    return oracle or OracleClient.from_config(OracleConfig.from_settings(settings))


def _relevance(store: Store, settings: Settings, oracle: Optional[OracleClient]) -> BotBehavior:
    return RelevanceBot(store, QualityScorer(_oracle(settings, oracle)))


def _summary(store: Store, settings: Settings, oracle: Optional[OracleClient]) -> BotBehavior:
    return SummaryBot(store, _oracle(settings, oracle))


def _duplicate(store: Store, settings: Settings, oracle: Optional[OracleClient]) -> BotBehavior:
    index = None
    if settings.vector_index_enabled:
        config = OracleConfig.from_settings(settings)
        index = PgVectorIndex(
            store.db_pool,
            AsyncOpenAI(api_key=config.api_key),
            model=config.embedding_model,
        )
        logger.info("🧭 Duplicate detection using pgvector index")
    return DuplicateBot(store, index=index)


def _gap_scanner(store: Store, settings: Settings, oracle: Optional[OracleClient]) -> BotBehavior:
    return GapScanner(store)


BOTS: Dict[str, Callable[[Store, Settings, Optional[OracleClient]], BotBehavior]] = {
    RelevanceBot.name: _relevance,
    SummaryBot.name: _summary,
    DuplicateBot.name: _duplicate,
    GapScanner.name: _gap_scanner,
}


def build_behavior(
    name: str,
    store: Store,
    settings: Settings,
    oracle: Optional[OracleClient] = None,
) -> BotBehavior:
    """
    Raises:
        KeyError: unknown bot name
    """
    if name not in BOTS:
        raise KeyError(f"Unknown bot: {name} (available: {', '.join(sorted(BOTS))})")
    return BOTS[name](store, settings, oracle)
