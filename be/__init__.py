"""Backend package: config, schemas, storage, pipelines and the HTTP API.

The enrichment pipeline turns scraped pages into structured, keyword-tagged
and embedded records and persists one record per page.
"""
