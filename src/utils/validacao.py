"""Validações de linha (CNPJ, e-mail, obrigatórios) usadas pela grade e pela prévia."""
from __future__ import annotations

import re
from typing import Callable, Optional

from src.utils.formatting import somente_digitos

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Validador = Callable[[str], Optional[str]]


def _digito_cnpj(base: str) -> int:
    pesos = list(range(len(base) - 7, 1, -1)) + list(range(9, 1, -1))
    soma = sum(int(n) * p for n, p in zip(base, pesos))
    resto = soma % 11
    return 0 if resto < 2 else 11 - resto


def validar_cnpj(valor: str) -> bool:
    d = somente_digitos(valor)
    if len(d) != 14:
        return False
    if d == d[0] * 14:
        return False
    if _digito_cnpj(d[:12]) != int(d[12]):
        return False
    return _digito_cnpj(d[:13]) == int(d[13])


def validar_email(valor: str) -> bool:
    return bool(EMAIL_RE.match((valor or "").strip()))


def normalizar_cnpj(valor: str) -> str:
    """Chave de comparação: só dígitos."""
    return somente_digitos(valor)


def normalizar_email(valor: str) -> str:
    return (valor or "").strip().lower()


# ------------------------------------------------------------
# Fábricas de validadores de coluna (retornam mensagem ou None)
# ------------------------------------------------------------
def v_email(valor: str) -> Optional[str]:
    if valor and not validar_email(valor):
        return "Email inválido"
    return None


def v_cnpj(valor: str) -> Optional[str]:
    if valor and not validar_cnpj(valor):
        return "CNPJ inválido"
    return None


def v_senha_minima(minimo: int = 6) -> Validador:
    def _v(valor: str) -> Optional[str]:
        if valor and len(valor) < minimo:
            return f"Mínimo {minimo} caracteres"
        return None

    return _v


def v_opcao(opcoes: list[str]) -> Validador:
    def _v(valor: str) -> Optional[str]:
        if valor and valor not in opcoes:
            return f"Valor inválido: {valor}"
        return None

    return _v

