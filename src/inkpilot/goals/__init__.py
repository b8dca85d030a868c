"""Goal plans: normalization, page rendering and the planner service."""
