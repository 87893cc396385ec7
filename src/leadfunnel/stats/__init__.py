"""Dashboard statistics."""

from leadfunnel.stats.aggregator import StatsService, summarize_affiliates, summarize_leads

__all__ = ["StatsService", "summarize_affiliates", "summarize_leads"]
