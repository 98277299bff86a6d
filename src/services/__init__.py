# src/services/__init__.py
"""
HTTP-сервисы приложения.

Сервисы:
- dispatch_api: водители, доставки, магазины и поиск ближайшего водителя
"""

__all__: list[str] = []
