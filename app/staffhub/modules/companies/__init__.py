"""Companies module: per-company feature flag overrides (admin only)."""
