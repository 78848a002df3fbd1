"""Projection query package."""

from sharedledger.queries.projection import ProjectionQueryExecutor, build_monthly_projection

__all__ = ["ProjectionQueryExecutor", "build_monthly_projection"]
