# src/services/dispatch_api/__init__.py
"""
Dispatch API: HTTP-транспорт поверх EntityCoordinator.

Обеспечивает:
- Добавление/перемещение водителей, создание доставок и магазинов
- Поиск ближайшего водителя
- Список всех сохранённых локаций
- Удаление сущностей
"""
