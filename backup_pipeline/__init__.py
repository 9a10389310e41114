"""
Database backup service.

Runs external dump tools, streams their output to local storage and
S3-compatible object storage, and tracks each job through a record store.
"""
