from . import audit, authority, voter

__all__ = ["audit", "authority", "voter"]
