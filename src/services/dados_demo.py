"""Dados de demonstração (seed-demo-data). Restrito a admin_vizio."""
from __future__ import annotations

import logging
from typing import Optional

from src.core.config import FUNCAO_DADOS_DEMO
from src.core.erros import ErroAplicacao
from src.core.funcoes import invocar_funcao
from src.services.auditoria import registrar_acao

logger = logging.getLogger(__name__)

MODOS_DEMO = {
    "create": "Dados demo criados com sucesso!",
    "cleanup": "Dados demo removidos!",
    "reset": "Dados demo resetados!",
}


def executar_dados_demo(contexto, modo: str, seed_id: Optional[str] = None) -> dict:
    """Cria, remove ou recria a empresa demo. Devolve o JSON da função (inclui `logs`)."""
    if modo not in MODOS_DEMO:
        raise ValueError(f"Modo deve ser: {', '.join(MODOS_DEMO)}")
    if not contexto.is_admin_vizio:
        raise ErroAplicacao("Apenas admin_vizio pode gerenciar dados demo.")

    corpo = {"mode": modo}
    if seed_id:
        corpo["seedId"] = seed_id
    resultado = invocar_funcao(contexto.supabase, FUNCAO_DADOS_DEMO, corpo)
    logger.info("seed-demo-data %s: seed %s", modo, resultado.get("seedId"))
    registrar_acao(
        contexto,
        "Dados Demo",
        {"modo": modo, "seed_id": resultado.get("seedId"), "empresa_demo_id": resultado.get("empresaDemoId")},
    )
    return resultado
