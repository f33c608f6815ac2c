from __future__ import annotations


class ContractError(ValueError):
    """Порушення контракту даних (payload, timestamps, агрегація)."""
