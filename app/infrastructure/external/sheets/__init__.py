"""
Lectura de hojas de calculo (Google Sheets REST v4) con cache explicito.

El cliente es sincrono (requests); los casos de uso lo llaman desde un
worker thread para no bloquear el event loop.
"""
from .sheet_cache import SheetCache
from .sheets_client import GoogleSheetsClient, SheetData, SheetReadError

__all__ = ["GoogleSheetsClient", "SheetCache", "SheetData", "SheetReadError"]
