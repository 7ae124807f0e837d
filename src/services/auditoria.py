"""
Auditoria

- registrar_acao: grava na tabela logs_auditoria (falha nunca bloqueia a operação)
- carregar_logs_auditoria: consulta para o painel
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd

logger = logging.getLogger(__name__)

ACOES_AUDITORIA = [
    "Login",
    "Logout",
    "Setup Empresas",
    "Setup Usuarios",
    "Setup Perfis",
    "Setup Roles",
    "Desfazer Setup",
    "Analisar Importacao",
    "Aprovar Importacao",
    "Rejeitar Importacao",
    "Importar Sinistralidade",
    "Dados Demo",
    "Exportar Dados",
]


def registrar_acao(contexto, acao: str, detalhes: Dict[str, Any]) -> bool:
    if contexto is None:
        return False
    usuario = contexto.como_usuario()
    try:
        log_entry = {
            "usuario_id": usuario.get("id"),
            "usuario_nome": usuario.get("nome"),
            "usuario_email": usuario.get("email"),
            "empresa_id": contexto.empresa_id,
            "acao": acao,
            "detalhes": detalhes,  # jsonb
            "timestamp": datetime.now().isoformat(),
            "ip_address": "N/A",
        }
        contexto.supabase.table("logs_auditoria").insert(log_entry).execute()
        return True
    except Exception as e:
        logger.warning("Não foi possível registrar auditoria (%s): %s", acao, e)
        return False


def carregar_logs_auditoria(supabase, filtro_acao: Optional[str] = None, limite: int = 200) -> pd.DataFrame:
    q = supabase.table("logs_auditoria").select("*").order("timestamp", desc=True).limit(int(limite))
    if filtro_acao:
        q = q.eq("acao", filtro_acao)
    res = q.execute()
    return pd.DataFrame(res.data) if res.data else pd.DataFrame()
