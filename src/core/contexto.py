"""Contexto da aplicação: usuário logado, papel e empresa selecionada.

Montado uma vez após o login e passado explicitamente para páginas e serviços.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

PAPEIS = ("admin_vizio", "admin_empresa", "rh_gestor", "visualizador")

PAPEIS_ROTULOS = {
    "admin_vizio": "Admin Vizio (Super Admin)",
    "admin_empresa": "Admin Empresa",
    "rh_gestor": "RH Gestor",
    "visualizador": "Visualizador",
}


def papel_principal(papeis: list[str]) -> str | None:
    """Maior papel pela prioridade admin_vizio > admin_empresa > rh_gestor > visualizador."""
    for papel in PAPEIS:
        if papel in papeis:
            return papel
    return None


@dataclass
class ContextoAplicacao:
    supabase: Any
    usuario_id: str
    email: str
    nome: str = ""
    papel: str | None = None
    empresa_id: str | None = None
    empresa_usuario_id: str | None = None
    empresas: list[dict] = field(default_factory=list)
    access_token: str | None = None

    @property
    def is_admin_vizio(self) -> bool:
        return self.papel == "admin_vizio"

    @property
    def is_admin(self) -> bool:
        return self.papel in ("admin_vizio", "admin_empresa")

    @property
    def empresa_nome(self) -> str:
        for e in self.empresas:
            if e.get("id") == self.empresa_id:
                return e.get("nome") or ""
        return ""

    def com_empresa(self, empresa_id: str | None) -> "ContextoAplicacao":
        return replace(self, empresa_id=empresa_id)

    def como_usuario(self) -> dict:
        """Formato esperado pelo registro de auditoria."""
        return {"id": self.usuario_id, "email": self.email, "nome": self.nome}
