"""Repositório de dados: jobs de importação e linhas de staging (Supabase)."""
from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

STATUS_PENDENTE = "ready_for_review"
STATUS_HISTORICO = ["completed", "rejected", "failed"]
LIMITE_HISTORICO = 50

STATUS_JOB_ROTULOS = {
    "pending": "Pendente",
    "processing": "Processando",
    "ready_for_review": "Aguardando revisão",
    "approved": "Aprovado",
    "rejected": "Rejeitado",
    "completed": "Concluído",
    "failed": "Falhou",
}

STATUS_LINHA_ROTULOS = {
    "valid": "Válida",
    "warning": "Aviso",
    "error": "Erro",
    "duplicate": "Duplicada",
    "updated": "Atualizada",
}


def _nomes_usuarios(supabase, ids: list[str]) -> dict[str, str]:
    ids = sorted({i for i in ids if i})
    if not ids:
        return {}
    resultado = supabase.table("profiles").select("id, nome_completo, email").in_("id", ids).execute()
    return {p["id"]: p.get("nome_completo") or p.get("email") or "" for p in (resultado.data or [])}


def _com_nomes(supabase, jobs: list[dict]) -> list[dict]:
    try:
        nomes = _nomes_usuarios(supabase, [j.get("criado_por") for j in jobs])
    except Exception as e:
        # nome do autor é cosmético
        logger.warning("Não foi possível carregar autores dos jobs: %s", e)
        nomes = {}
    for j in jobs:
        j["criado_por_nome"] = nomes.get(j.get("criado_por"), "")
    return jobs


def listar_pendentes(supabase, empresa_id: Optional[str] = None, todas_empresas: bool = False) -> list[dict]:
    """Jobs aguardando revisão. Sem `todas_empresas`, restringe à empresa selecionada."""
    consulta = (
        supabase.table("import_jobs")
        .select("*")
        .eq("status", STATUS_PENDENTE)
        .order("created_at", desc=True)
    )
    if empresa_id and not todas_empresas:
        consulta = consulta.eq("empresa_id", empresa_id)
    return _com_nomes(supabase, consulta.execute().data or [])


def listar_historico(supabase, empresa_id: Optional[str] = None, todas_empresas: bool = False) -> list[dict]:
    consulta = (
        supabase.table("import_jobs")
        .select("*")
        .in_("status", STATUS_HISTORICO)
        .order("created_at", desc=True)
        .limit(LIMITE_HISTORICO)
    )
    if empresa_id and not todas_empresas:
        consulta = consulta.eq("empresa_id", empresa_id)
    return _com_nomes(supabase, consulta.execute().data or [])


def carregar_linhas_job(supabase, job_id: str) -> list[dict]:
    resultado = (
        supabase.table("import_job_rows")
        .select("*")
        .eq("job_id", job_id)
        .order("row_number")
        .execute()
    )
    return resultado.data or []


def atualizar_dados_linha(supabase, linha_id: str, dados: dict) -> list[dict]:
    resultado = supabase.table("import_job_rows").update({"mapped_data": dados}).eq("id", linha_id).execute()
    return resultado.data or []


def linhas_para_dataframe(linhas: list[dict]) -> pd.DataFrame:
    """Achata `mapped_data` em colunas, mantendo número, status e mensagens da linha."""
    registros = []
    for l in linhas:
        r = {
            "linha": l.get("row_number"),
            "status": STATUS_LINHA_ROTULOS.get(l.get("status"), l.get("status") or ""),
        }
        r.update(l.get("mapped_data") or l.get("original_data") or {})
        r["erros"] = " | ".join(str(e) for e in (l.get("validation_errors") or []))
        r["avisos"] = " | ".join(str(a) for a in (l.get("validation_warnings") or []))
        registros.append(r)
    return pd.DataFrame(registros)


def atualizar_dados_linha_numero(supabase, job_id: str, numero: int, dados: dict) -> list[dict]:
    resultado = (
        supabase.table("import_job_rows")
        .update({"mapped_data": dados})
        .eq("job_id", job_id)
        .eq("row_number", numero)
        .execute()
    )
    return resultado.data or []
