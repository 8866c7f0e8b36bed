"""Pydantic models for external API payloads."""
