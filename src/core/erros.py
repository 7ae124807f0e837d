"""Erros da aplicação e tradução de falhas remotas para mensagens amigáveis."""
from __future__ import annotations

import json
from typing import Any

import requests


class ErroAplicacao(Exception):
    """Base dos erros tratados pela aplicação."""


class ErroRemoto(ErroAplicacao):
    """Falha em chamada à plataforma (Edge Function, Storage, PostgREST)."""

    def __init__(self, mensagem: str, status: int | None = None, payload: Any = None):
        super().__init__(mensagem)
        self.mensagem = mensagem
        self.status = status
        self.payload = payload


class TransicaoInvalida(ErroAplicacao):
    """Operação chamada num estado do pipeline que não a permite."""


MSG_PERMISSAO = "Permissão negada: seu usuário não tem acesso a esta operação."
MSG_SESSAO = "Sessão expirada. Faça login novamente."
MSG_LIMITE_IA = "Limite de requisições da IA atingido. Aguarde alguns instantes e tente novamente."
MSG_CREDITOS_IA = "Créditos de IA esgotados. Contate o administrador."
MSG_DUPLICADO = "Registro duplicado: já existe um cadastro com esta chave."
MSG_RESPOSTA_IA = "A IA retornou uma resposta inválida. Tente novamente."
MSG_CONEXAO = "Falha de conexão com o servidor. Verifique sua internet e tente novamente."

# (trecho procurado, mensagem); a ordem importa
_PADROES = [
    ("42501", MSG_PERMISSAO),
    ("permission denied", MSG_PERMISSAO),
    ("row-level security", MSG_PERMISSAO),
    ("permissão negada", MSG_PERMISSAO),
    ("pgrst301", MSG_SESSAO),
    ("jwt expired", MSG_SESSAO),
    ("invalid jwt", MSG_SESSAO),
    ("token inválido", MSG_SESSAO),
    ("não autenticado", MSG_SESSAO),
    ("rate limit", MSG_LIMITE_IA),
    ("too many requests", MSG_LIMITE_IA),
    ("payment required", MSG_CREDITOS_IA),
    ("23505", MSG_DUPLICADO),
    ("duplicate key", MSG_DUPLICADO),
]

_STATUS = {
    401: MSG_SESSAO,
    403: MSG_PERMISSAO,
    402: MSG_CREDITOS_IA,
    429: MSG_LIMITE_IA,
}


def codigo_erro(exc: BaseException) -> str | None:
    """Código PostgREST/Postgres quando disponível (APIError.code)."""
    code = getattr(exc, "code", None)
    return str(code) if code else None


def eh_duplicado(exc: BaseException) -> bool:
    texto = f"{codigo_erro(exc) or ''} {exc}".lower()
    return "23505" in texto or "duplicate key" in texto


def traduzir_erro(exc: BaseException) -> str:
    """Converte uma exceção em mensagem para o usuário."""
    if isinstance(exc, json.JSONDecodeError):
        return MSG_RESPOSTA_IA
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return MSG_CONEXAO

    status = getattr(exc, "status", None)
    if status in _STATUS:
        return _STATUS[status]

    codigo = codigo_erro(exc) or ""
    texto = f"{codigo} {getattr(exc, 'message', '') or ''} {exc}".lower()
    for trecho, mensagem in _PADROES:
        if trecho in texto:
            return mensagem

    original = str(exc).strip()
    return original or "Erro desconhecido"
