# courier_dispatch/__init__.py
"""
Courier Dispatch — движок назначения заказов доставки на курьеров.
"""

__version__ = "1.0.0"
