from . import hashing, spc

__all__ = ["hashing", "spc"]
