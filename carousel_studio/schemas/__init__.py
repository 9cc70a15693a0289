"""Pydantic schemas: AI contracts, layouts, the editor document and API payloads."""
