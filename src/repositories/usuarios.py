"""Repositório de dados: perfis (profiles) e papéis (user_roles)."""
from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

CAMPOS_PERFIL = "id, email, nome_completo, cargo, telefone, empresa_id"


def buscar_perfil_por_email(supabase, email: str) -> Optional[dict]:
    email = (email or "").strip().lower()
    if not email:
        return None
    resultado = (
        supabase.table("profiles")
        .select(CAMPOS_PERFIL)
        .eq("email", email)
        .limit(1)
        .execute()
    )
    return resultado.data[0] if resultado.data else None


def buscar_perfil(supabase, usuario_id: str) -> Optional[dict]:
    resultado = (
        supabase.table("profiles")
        .select(CAMPOS_PERFIL)
        .eq("id", usuario_id)
        .limit(1)
        .execute()
    )
    return resultado.data[0] if resultado.data else None


def listar_perfis(supabase, empresa_id: Optional[str] = None) -> list[dict]:
    consulta = supabase.table("profiles").select(CAMPOS_PERFIL)
    if empresa_id:
        consulta = consulta.eq("empresa_id", empresa_id)
    return consulta.order("email").execute().data or []


def atualizar_perfil(supabase, perfil_id: str, campos: dict) -> None:
    supabase.table("profiles").update(campos).eq("id", perfil_id).execute()


# ----------------------------
# Papéis
# ----------------------------
def papeis_do_usuario(supabase, usuario_id: str) -> list[str]:
    resultado = supabase.table("user_roles").select("role").eq("user_id", usuario_id).execute()
    return [r.get("role") for r in (resultado.data or []) if r.get("role")]


def buscar_papel(supabase, usuario_id: str, papel: str) -> Optional[dict]:
    resultado = (
        supabase.table("user_roles")
        .select("id, user_id, role")
        .eq("user_id", usuario_id)
        .eq("role", papel)
        .limit(1)
        .execute()
    )
    return resultado.data[0] if resultado.data else None


def listar_papeis_atribuidos(supabase) -> list[dict]:
    """Papéis já atribuídos com o e-mail do usuário (para conferência na etapa de roles)."""
    resultado = supabase.table("user_roles").select("id, user_id, role, profiles(email)").execute()
    linhas = []
    for r in resultado.data or []:
        perfil = r.get("profiles") or {}
        linhas.append({"email": perfil.get("email", ""), "role": r.get("role"), "user_id": r.get("user_id")})
    return linhas


def inserir_papel(supabase, usuario_id: str, papel: str) -> dict:
    resultado = supabase.table("user_roles").insert({"user_id": usuario_id, "role": papel}).execute()
    return resultado.data[0] if resultado.data else {}
