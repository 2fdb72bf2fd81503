"""Checklist set discovery and pagination."""
