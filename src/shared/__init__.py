# src/shared/__init__.py
"""
Общий код HTTP-слоя: модели ответов и пагинация.
"""

__all__: list[str] = []
