"""Assistente de IA do Setup: interpreta texto colado e sugere correções na grade."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from src.core.config import EMPRESA_ID_NULO, FUNCAO_AGENTE_DADOS
from src.core.erros import ErroAplicacao
from src.core.funcoes import invocar_funcao

logger = logging.getLogger(__name__)

EXEMPLOS = {
    "empresas": (
        "Nome\tCNPJ\tRazão Social\tEmail\tTelefone\n"
        "Empresa ABC\t12.345.678/0001-95\tABC Ltda\tcontato@abc.com\t(11) 98765-4321\n"
        "Empresa XYZ\t11.222.333/0001-81\tXYZ S.A.\tadmin@xyz.com\t(21) 3456-7890"
    ),
    "usuarios": (
        "Email\tNome Completo\n"
        "maria@empresa.com\tMaria Silva\n"
        "joao@empresa.com\tJoão Santos"
    ),
    "perfis": (
        "Email\tCNPJ Empresa\tCargo\tTelefone\n"
        "maria@empresa.com\t11.222.333/0001-81\tGerente RH\t(11) 98765-4321\n"
        "joao@empresa.com\t11.222.333/0001-81\tAnalista\t(11) 91234-5678"
    ),
    "roles": (
        "Email\tRole\n"
        "maria@empresa.com\tadmin_empresa\n"
        "joao@empresa.com\trh_gestor"
    ),
}


@dataclass
class ResultadoInterpretacao:
    linhas: list[dict] = field(default_factory=list)
    mapeamento: dict[str, str] = field(default_factory=dict)
    validacoes: list[dict] = field(default_factory=list)
    sugestoes: list[str] = field(default_factory=list)
    ambiguidades: list[dict] = field(default_factory=list)


@dataclass
class ResultadoSugestao:
    correcoes: list[dict] = field(default_factory=list)
    avisos: list[dict] = field(default_factory=list)
    sugestoes: list[str] = field(default_factory=list)

    def para_grade(self, indices: list[int] | None = None) -> list[dict]:
        """Correções no formato `{row, field, value}` de GradeEditavel.aplicar_correcoes."""
        escolhidas = self.correcoes if indices is None else [self.correcoes[i] for i in indices]
        return [{"row": c.get("row"), "field": c.get("field"), "value": c.get("suggestedValue")} for c in escolhidas]


def analisar_texto_colado(contexto, etapa: str, texto: str) -> ResultadoInterpretacao:
    if not (texto or "").strip():
        raise ErroAplicacao("Cole os dados antes de analisar.")
    dados = invocar_funcao(
        contexto.supabase,
        FUNCAO_AGENTE_DADOS,
        {
            "action": "setup_parse",
            "empresaId": contexto.empresa_id or EMPRESA_ID_NULO,
            "step": etapa,
            "pastedText": texto,
        },
    )
    logger.info("setup_parse (%s): %s linha(s)", etapa, len(dados.get("parsedRows") or []))
    return ResultadoInterpretacao(
        linhas=list(dados.get("parsedRows") or []),
        mapeamento=dict(dados.get("columnMapping") or {}),
        validacoes=list(dados.get("validations") or []),
        sugestoes=list(dados.get("suggestions") or []),
        ambiguidades=list(dados.get("ambiguities") or []),
    )


def sugerir_correcoes(contexto, etapa: str, linhas: list[dict]) -> ResultadoSugestao:
    if not linhas:
        raise ErroAplicacao("Adicione dados na grade antes de pedir sugestões.")
    dados = invocar_funcao(
        contexto.supabase,
        FUNCAO_AGENTE_DADOS,
        {
            "action": "setup_suggest",
            "empresaId": contexto.empresa_id or EMPRESA_ID_NULO,
            "step": etapa,
            "currentRows": linhas,
        },
    )
    return ResultadoSugestao(
        correcoes=list(dados.get("corrections") or []),
        avisos=list(dados.get("warnings") or []),
        sugestoes=list(dados.get("suggestions") or []),
    )
