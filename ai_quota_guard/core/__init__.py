"""
Core modules for AI Quota Guard.

This package contains the usage ledger, period aggregation, plan quota
policy and enforcement, cost reporting and subscription handling.
"""
