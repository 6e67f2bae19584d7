from . import energy

__all__ = ["energy"]
