"""
Newsdesk backend package.

This package provides a FastAPI application that publishes short news items
written by a single administrator. Items live in a process-local cache backed
by a best-effort durable store (JSON file or SQL database), and images are
streamed into an object store.
"""
