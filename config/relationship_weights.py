"""
Relationship Strength Weights Configuration.

Central configuration for the weights and step thresholds used in
relationship strength calculation.

Edit this file to tune relationship scoring behavior.
"""

# =============================================================================
# RELATIONSHIP STRENGTH WEIGHTS
# =============================================================================
# Formula: strength = (recency × RECENCY_WEIGHT) + (frequency × FREQUENCY_WEIGHT)
#                   + (engagement × ENGAGEMENT_WEIGHT) + (reciprocity × RECIPROCITY_WEIGHT)

RECENCY_WEIGHT = 0.35      # How recently we last talked
FREQUENCY_WEIGHT = 0.25    # Interactions per month in the trailing window
ENGAGEMENT_WEIGHT = 0.20   # Average thread depth
RECIPROCITY_WEIGHT = 0.20  # Balance of sent vs received

# Trailing window for the frequency component
FREQUENCY_WINDOW_DAYS = 90
FREQUENCY_WINDOW_MONTHS = 3

# Trend: change in combined strength vs the stored value
TREND_THRESHOLD = 0.1


# =============================================================================
# COMPONENT STEP TABLES
# =============================================================================
# Each table is (threshold, score) checked top to bottom; first match wins.

# (max days since last interaction, score)
RECENCY_STEPS: list[tuple[int, float]] = [
    (7, 1.0),
    (14, 0.9),
    (30, 0.8),
    (60, 0.6),
    (90, 0.4),
    (180, 0.2),
]
RECENCY_FLOOR = 0.1  # Older than the last step

# (min interactions per month, score)
FREQUENCY_STEPS: list[tuple[float, float]] = [
    (20, 1.0),
    (10, 0.9),
    (5, 0.8),
    (3, 0.6),
    (1, 0.4),
    (0.5, 0.2),
]
FREQUENCY_FLOOR = 0.1

# (min average thread depth, score)
ENGAGEMENT_STEPS: list[tuple[float, float]] = [
    (10, 1.0),
    (6, 0.8),
    (4, 0.6),
    (2, 0.4),
]
ENGAGEMENT_FLOOR = 0.2

# (min min/max ratio of sent vs received, score)
RECIPROCITY_STEPS: list[tuple[float, float]] = [
    (0.8, 1.0),
    (0.6, 0.8),
    (0.4, 0.6),
    (0.2, 0.4),
]
RECIPROCITY_FLOOR = 0.2  # One-sided communication
