from .listing_directory import SqlListingDirectory

__all__ = ["SqlListingDirectory"]
