"""Prometheus metrics for neighborshare.

Defines operational metrics for the matching and settlement engine. Workers
expose them through the Celery worker's metrics endpoint.
"""

from prometheus_client import Counter, Histogram

# Matching metrics
matches_created_total = Counter(
    "neighborshare_matches_created_total",
    "Total matches created",
    ["strategy"]  # strategy: candidate|sweep
)

match_conflicts_total = Counter(
    "neighborshare_match_conflicts_total",
    "Matching attempts that lost a race or hit an existing pair",
    ["strategy", "kind"]  # kind: duplicate|stale
)

match_score_histogram = Histogram(
    "neighborshare_match_score",
    "Compatibility score of created matches",
    buckets=[0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]
)

sweep_duration_seconds = Histogram(
    "neighborshare_sweep_duration_seconds",
    "Time spent on one community sweep in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

survey_degradations_total = Counter(
    "neighborshare_survey_degradations_total",
    "Survey payloads or fields that fell back to defaults",
    ["field"]  # field: payload|category|tags|quantity|time_window|distance_km
)

# Lifecycle metrics
match_closures_total = Counter(
    "neighborshare_match_closures_total",
    "Match closures by type",
    ["closure_type"]  # closure_type: successful|cancelled|disputed
)

rewards_issued_total = Counter(
    "neighborshare_rewards_issued_total",
    "Reward ledger entries written",
    ["source_type"]
)

reward_points_issued_total = Counter(
    "neighborshare_reward_points_issued_total",
    "Reward points written to the ledger",
    ["source_type"]
)

pair_repetition_flags_total = Counter(
    "neighborshare_pair_repetition_flags_total",
    "Closed matches whose participant pair crossed the repetition threshold"
)

side_effect_failures_total = Counter(
    "neighborshare_side_effect_failures_total",
    "Best-effort side effects that failed after commit",
    ["effect"]  # effect: notification|channel_open|channel_close
)

# Worker metrics
work_items_total = Counter(
    "neighborshare_work_items_total",
    "Matching queue work items processed",
    ["task", "outcome"]
)
