# courier_dispatch/bot/__init__.py
"""
Транспортный слой - Telegram бот курьеров (aiogram 3.x).
"""
