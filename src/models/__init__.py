"""Database model type definitions."""

from src.models.card import CONTACT_FIELDS, BusinessCard

__all__ = [
    "BusinessCard",
    "CONTACT_FIELDS",
]
