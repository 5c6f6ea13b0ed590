"""Merchant location resolution and ingestion service."""
