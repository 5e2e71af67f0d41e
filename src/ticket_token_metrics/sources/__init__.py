"""Adapters for pull-request, story-point and billing data sources."""
