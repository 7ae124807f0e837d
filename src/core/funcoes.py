"""Chamadas às Edge Functions e ao Storage do Supabase."""
from __future__ import annotations

import json
import logging
from typing import Any

import requests

from src.core.config import TIMEOUT_FUNCAO_S, get_secret
from src.core.erros import ErroRemoto

logger = logging.getLogger(__name__)


def _decodificar(resposta: Any) -> dict:
    if resposta is None:
        return {}
    if isinstance(resposta, dict):
        return resposta
    if hasattr(resposta, "json") and callable(resposta.json):
        return resposta.json()
    if isinstance(resposta, bytes):
        resposta = resposta.decode("utf-8")
    if isinstance(resposta, str):
        return json.loads(resposta) if resposta.strip() else {}
    raise ErroRemoto(f"Resposta inesperada da função: {type(resposta).__name__}")


def invocar_funcao(supabase, nome: str, corpo: dict) -> dict:
    """Invoca uma Edge Function e devolve o JSON.

    Falhas de rede/HTTP viram ErroRemoto; `{"success": false}` também.
    """
    try:
        resposta = supabase.functions.invoke(nome, invoke_options={"body": corpo})
    except ErroRemoto:
        raise
    except Exception as e:
        logger.error("Erro na função %s: %s", nome, e)
        raise ErroRemoto(str(e), status=getattr(e, "status", None)) from e

    dados = _decodificar(resposta)
    if isinstance(dados, dict) and dados.get("success") is False:
        raise ErroRemoto(dados.get("error") or f"Erro na função {nome}", payload=dados)
    return dados


def chamar_funcao_http(nome: str, corpo: dict, access_token: str | None, timeout: int = TIMEOUT_FUNCAO_S) -> dict:
    """POST direto em /functions/v1/<nome> (payloads grandes, ex.: páginas de PDF)."""
    url = get_secret("SUPABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_URL não configurado.")
    resp = requests.post(
        f"{url.rstrip('/')}/functions/v1/{nome}",
        headers={
            "Authorization": f"Bearer {access_token or ''}",
            "apikey": get_secret("SUPABASE_ANON_KEY") or get_secret("SUPABASE_KEY") or "",
            "Content-Type": "application/json",
        },
        json=corpo,
        timeout=timeout,
    )
    if not resp.ok:
        try:
            erro = resp.json().get("error")
        except ValueError:
            erro = resp.text
        raise ErroRemoto(erro or f"Erro HTTP {resp.status_code} em {nome}", status=resp.status_code)
    return resp.json()


def enviar_arquivo(supabase, bucket: str, caminho: str, conteudo: bytes, content_type: str) -> str:
    """Envia bytes para o Storage e devolve o caminho gravado."""
    try:
        supabase.storage.from_(bucket).upload(
            path=caminho,
            file=conteudo,
            file_options={"content-type": content_type},
        )
    except Exception as e:
        logger.error("Erro no upload %s/%s: %s", bucket, caminho, e)
        raise ErroRemoto(f"Erro no upload do arquivo: {e}", status=getattr(e, "status", None)) from e
    return caminho
