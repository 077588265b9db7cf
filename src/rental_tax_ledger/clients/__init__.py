from rental_tax_ledger.clients.gemini import GeminiClient

__all__ = ["GeminiClient"]
