"""Pipelines for enriching scraped content.

``enrichment`` holds the batch orchestrator; ``normalization`` the text
helpers it shares with the AI backends.
"""
