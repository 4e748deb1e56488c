"""Клиент аутентификации и жизненного цикла сессии MedAuth."""

__version__ = "0.1.0"
