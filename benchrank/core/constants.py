"""
System constants for BenchRank.

Deployment-tunable defaults for the ELO engine, the trust/quality
aggregator and the ranking orchestrator. Runtime values come from
`benchrank.config.params`; these are the fallbacks.
"""

# =============================================================================
# ELO Parameters
# =============================================================================

# Rating a model starts from on its first match
ELO_DEFAULT_RATING: float = 1500.0

# Fixed (non-adaptive) K-factor
ELO_K_FACTOR: float = 16.0

# Logistic scale of the expectation curve
ELO_SCALE: float = 400.0

# =============================================================================
# Trust / Quality Parameters
# =============================================================================

# Trust assumed for reviewers without a score in the previous epoch
NEUTRAL_TRUST: float = 0.5

# Relative weight of a full review vs. a quick thumbs up/down
REVIEW_WEIGHT: float = 1.0
QUICK_FEEDBACK_WEIGHT: float = 0.5

# Pseudo-count pulling sparse scores toward the neutral 0.5
PRIOR_STRENGTH: float = 1.0

# Benchmarks with fewer scored prompts report an unavailable score
MIN_BENCHMARK_PROMPTS: int = 3

# Contributor role weights
AUTHOR_WEIGHT: float = 1.0
COLLABORATOR_WEIGHT: float = 0.5

# Contributor credit per comment written
COMMENT_WEIGHT: float = 0.1

# Opinions needed on a prompt before a consensus exists
MIN_CONSENSUS_REVIEWERS: int = 2

# =============================================================================
# Orchestration Parameters
# =============================================================================

# Largest tolerated share of skipped (malformed) signals
MAX_SKIP_RATIO: float = 0.05

# Seconds after which a held run lock is considered stale
LOCK_STALE_SECONDS: float = 900.0

# Prompts below this quality are excluded from derived matches
MIN_PROMPT_QUALITY: float = 0.5

# Number of newest epochs kept by garbage collection
EPOCH_RETENTION: int = 10

# Name of the single global run lock
RUN_LOCK_NAME: str = "ranking_computation"

# =============================================================================
# Query Defaults
# =============================================================================

DEFAULT_PAGE_LIMIT: int = 50
MAX_PAGE_LIMIT: int = 500
