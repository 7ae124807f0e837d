"""Utilitários de formatação (padrão brasileiro)."""
import re

import pandas as pd


def somente_digitos(valor) -> str:
    return re.sub(r"\D", "", str(valor or ""))


def formatar_numero_br(numero):
    """Formata número no padrão brasileiro (vírgula para decimal, ponto para milhar)"""
    try:
        if pd.isna(numero):
            return "0,00"
        return f"{float(numero):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    except (TypeError, ValueError):
        return "0,00"


def formatar_moeda_br(valor):
    """Formata valor monetário no padrão brasileiro"""
    if valor is None:
        return "-"
    return f"R$ {formatar_numero_br(valor)}"


def formatar_cnpj(valor: str) -> str:
    """Máscara progressiva 00.000.000/0000-00 (até 14 dígitos)."""
    d = somente_digitos(valor)[:14]
    partes = [d[:2], d[2:5], d[5:8], d[8:12], d[12:14]]
    resultado = partes[0]
    for sep, parte in zip([".", ".", "/", "-"], partes[1:]):
        if parte:
            resultado += sep + parte
    return resultado


def formatar_telefone(valor: str) -> str:
    """(11) 99999-8888 para celular, (11) 3333-4444 para fixo; outros tamanhos ficam como vieram."""
    d = somente_digitos(valor)
    if len(d) == 11:
        return f"({d[:2]}) {d[2:7]}-{d[7:]}"
    if len(d) == 10:
        return f"({d[:2]}) {d[2:6]}-{d[6:]}"
    return valor
