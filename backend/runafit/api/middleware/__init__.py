"""
API middleware: correlation-aware exception types and handlers.
"""
