"""
======================
Table-bound models.
======================

Modules:
    abstract_model: AbstractModel and the default registry hook

Example:
    >>> from models import AbstractModel, set_default_registry
    >>>
    >>> set_default_registry(registry)
    >>> class OrderModel(AbstractModel):
    ...     database = 'orders'
    ...     table_name = 'order'
"""

__version__ = "0.1.0"
__all__ = [
    'AbstractModel',
    'set_default_registry',
    'get_default_registry',
]

from .abstract_model import AbstractModel, get_default_registry, set_default_registry
