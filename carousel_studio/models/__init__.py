"""SQLAlchemy models package."""

from carousel_studio.models.carousel import AssetStatus, AssetType, Carousel, CarouselAsset, CarouselTemplate

__all__ = [
    "AssetStatus",
    "AssetType",
    "Carousel",
    "CarouselAsset",
    "CarouselTemplate",
]
