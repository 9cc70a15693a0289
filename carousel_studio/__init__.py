"""Carousel Studio: AI carousel generation and natural-language editing."""
