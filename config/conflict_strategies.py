"""
Fact Conflict Strategy Configuration.

Maps fact types to the strategy used when a new observation disagrees with
the current fact for the same entity and key.

Overrides are loaded from config/conflict_strategies.yaml (optional):

    default: highest_confidence
    strategies:
      headcount: latest_wins
      bio: merge
"""
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

LATEST_WINS = "latest_wins"
HIGHEST_CONFIDENCE = "highest_confidence"
USER_CONFIRM = "user_confirm"
MERGE = "merge"

VALID_STRATEGIES = {LATEST_WINS, HIGHEST_CONFIDENCE, USER_CONFIRM, MERGE}

DEFAULT_STRATEGY = HIGHEST_CONFIDENCE

BUILTIN_STRATEGIES: dict[str, str] = {
    # Contact info - a person should confirm changes
    "email": USER_CONFIRM,
    "phone": USER_CONFIRM,
    "linkedIn": USER_CONFIRM,

    # Metrics change over time, newest observation wins
    "MRR": LATEST_WINS,
    "ARR": LATEST_WINS,
    "burn_rate": LATEST_WINS,
    "runway": LATEST_WINS,
    "team_size": LATEST_WINS,
    "valuation": LATEST_WINS,

    # Free text - keep every version with attribution
    "notes": MERGE,
    "description": MERGE,

    # High-stakes deal terms
    "valuation_cap": USER_CONFIRM,
    "ownership": USER_CONFIRM,
    "investment_amount": USER_CONFIRM,
}


def _load_strategy_overrides(config_path: Path) -> tuple[dict[str, str], str]:
    """
    Load strategy overrides from a YAML file.

    Returns:
        Tuple of (strategy table, default strategy)
    """
    strategies = dict(BUILTIN_STRATEGIES)
    default = DEFAULT_STRATEGY

    if not config_path.exists():
        return strategies, default

    try:
        import yaml
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Failed to load {config_path.name}: {e}, using built-in strategies")
        return strategies, default

    if not isinstance(config, dict):
        logger.warning(f"{config_path.name} must be a mapping, using built-in strategies")
        return strategies, default

    table = config.get("strategies") or {}
    if not isinstance(table, dict):
        logger.warning(f"Ignoring non-mapping 'strategies' in {config_path.name}")
        table = {}

    for fact_type, strategy in table.items():
        if not isinstance(strategy, str) or strategy not in VALID_STRATEGIES:
            logger.warning(f"Ignoring unknown strategy '{strategy}' for fact type '{fact_type}'")
            continue
        strategies[str(fact_type)] = strategy

    configured_default = config.get("default")
    if configured_default:
        if isinstance(configured_default, str) and configured_default in VALID_STRATEGIES:
            default = configured_default
        else:
            logger.warning(f"Ignoring unknown default strategy '{configured_default}'")

    return strategies, default


CONFLICT_STRATEGIES, DEFAULT_CONFLICT_STRATEGY = _load_strategy_overrides(
    Path(__file__).parent / "conflict_strategies.yaml"
)
