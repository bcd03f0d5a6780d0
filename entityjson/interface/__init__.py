"""
Client interface for entityjson.
"""

from entityjson.interface.context import ObjectContext

__all__ = ["ObjectContext"]
