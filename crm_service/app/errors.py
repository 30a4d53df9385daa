"""
PT-BR: Taxonomia de erros do CRM. Cada erro carrega a mensagem exibida ao usuario.
EN: CRM error taxonomy. Each error carries the user-facing message.
"""

from __future__ import annotations


class CrmError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(CrmError):
    """Entrada invalida, detectada antes de qualquer chamada ao store."""

    status_code = 422


class NotFound(CrmError):
    status_code = 404


class PersistenceError(CrmError):
    """Falha do store remoto. Nunca ha retry automatico."""

    status_code = 502
