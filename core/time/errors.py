from __future__ import annotations

from core.validation.errors import ContractError


class InvalidFormatError(ContractError):
    """Некоректний специфікатор timeframe (очікується <amount><unit>, напр. 5m)."""


class UnsupportedUnitError(RuntimeError):
    """Одиниця timeframe поза allowlist: порушення внутрішнього інваріанту."""
