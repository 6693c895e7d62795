"""
Shared request context, data isolation, errors, logging and rate limiting.
"""
