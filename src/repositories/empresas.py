"""Repositório de dados: empresas (Supabase)."""
from __future__ import annotations

from typing import Optional

from src.utils.formatting import formatar_cnpj, somente_digitos

CAMPOS_EMPRESA = "id, nome, cnpj, razao_social, contato_email, contato_telefone"


def listar_empresas(supabase) -> list[dict]:
    resultado = supabase.table("empresas").select(CAMPOS_EMPRESA).order("nome").execute()
    return resultado.data or []


def buscar_empresa_por_cnpj(supabase, cnpj: str) -> Optional[dict]:
    """Procura pelo CNPJ formatado e pelo só-dígitos (bases antigas gravavam sem máscara)."""
    digitos = somente_digitos(cnpj)
    if not digitos:
        return None
    candidatos = list(dict.fromkeys([formatar_cnpj(digitos), digitos]))
    resultado = (
        supabase.table("empresas")
        .select(CAMPOS_EMPRESA)
        .in_("cnpj", candidatos)
        .limit(1)
        .execute()
    )
    return resultado.data[0] if resultado.data else None


def inserir_empresa(supabase, registro: dict) -> dict:
    resultado = supabase.table("empresas").insert(registro).execute()
    return resultado.data[0] if resultado.data else {}


def atualizar_empresa(supabase, empresa_id: str, campos: dict) -> None:
    supabase.table("empresas").update(campos).eq("id", empresa_id).execute()
