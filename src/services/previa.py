"""
Prévia e aplicação do Setup

Cada linha da grade vira um item create/update/skip/error antes de qualquer
escrita. Só create/update são gravados, um por vez na ordem da grade, sem
rollback. Linhas aplicadas com sucesso entram num snapshot de desfazer.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from src.core.erros import eh_duplicado, traduzir_erro
from src.services.auditoria import registrar_acao
from src.services.grade import ERRO_GERAL, LinhaGrade

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
SKIP = "skip"
ERROR = "error"
ACOES = (CREATE, UPDATE, SKIP, ERROR)

ACOES_ROTULOS = {
    CREATE: "Criar",
    UPDATE: "Atualizar",
    SKIP: "Sem alterações",
    ERROR: "Erro",
}


@dataclass
class Alteracao:
    campo: str
    de: Any
    para: Any


@dataclass
class Resolucao:
    """Resultado das buscas remotas de uma linha (existente, referências)."""

    registro: dict = field(default_factory=dict)
    existente: Optional[dict] = None
    duplicado: bool = False
    erros: dict[str, str] = field(default_factory=dict)


@dataclass
class ItemPrevia:
    linha_id: str
    indice: int
    acao: str
    dados: dict
    registro: dict = field(default_factory=dict)
    existente: Optional[dict] = None
    alteracoes: list[Alteracao] = field(default_factory=list)
    erros: dict[str, str] = field(default_factory=dict)

    @property
    def motivo(self) -> str:
        if self.acao == ERROR:
            return "; ".join(self.erros.values())
        if self.acao == UPDATE:
            return ", ".join(a.campo for a in self.alteracoes)
        if self.acao == SKIP:
            return "Sem alterações"
        return ""


@dataclass
class PlanoAplicacao:
    itens: list[ItemPrevia]

    def contagens(self) -> dict[str, int]:
        c = Counter(i.acao for i in self.itens)
        return {acao: c.get(acao, 0) for acao in ACOES}

    @property
    def pode_aplicar(self) -> bool:
        # plano vazio também conta como "tudo erro"
        return any(i.acao != ERROR for i in self.itens)

    def pendentes(self) -> list[ItemPrevia]:
        return [i for i in self.itens if i.acao in (CREATE, UPDATE)]


@dataclass
class ResultadoItem:
    linha_id: str
    acao: str
    status: str  # success | error
    mensagem: Optional[str] = None
    entrada: Any = None  # EntradaDesfazer quando a etapa suporta desfazer


@dataclass
class ResultadoAplicacao:
    itens: list[ResultadoItem] = field(default_factory=list)
    snapshot_id: Optional[str] = None

    def _conta(self, acao: str, status: str) -> int:
        return sum(1 for r in self.itens if r.acao == acao and r.status == status)

    @property
    def criados(self) -> int:
        return self._conta(CREATE, "success")

    @property
    def atualizados(self) -> int:
        return self._conta(UPDATE, "success")

    @property
    def ignorados(self) -> int:
        return self._conta(SKIP, "success")

    @property
    def erros(self) -> int:
        return sum(1 for r in self.itens if r.status == "error")

    def status_por_linha(self) -> dict[str, tuple[str, Optional[str]]]:
        """Formato de GradeEditavel.marcar_status."""
        return {r.linha_id: (r.status, r.mensagem) for r in self.itens}

    def resumo(self) -> str:
        partes = [f"{self.criados} criado(s)", f"{self.atualizados} atualizado(s)"]
        if self.ignorados:
            partes.append(f"{self.ignorados} sem alterações")
        if self.erros:
            partes.append(f"{self.erros} erro(s)")
        return ", ".join(partes)


def _normalizar(valor: Any) -> str:
    if valor is None:
        return ""
    return str(valor).strip()


def comparar(existente: dict, dados: dict, campos: list[str]) -> list[Alteracao]:
    return [
        Alteracao(campo=c, de=existente.get(c), para=dados.get(c))
        for c in campos
        if _normalizar(existente.get(c)) != _normalizar(dados.get(c))
    ]


def classificar(
    erros: dict[str, str],
    existente: Optional[dict],
    dados: dict,
    campos: list[str],
    duplicado: bool = False,
) -> tuple[str, list[Alteracao]]:
    """error > create (sem correspondente) > skip (duplicado/sem diferença) > update."""
    if erros:
        return ERROR, []
    if existente is None:
        return CREATE, []
    if duplicado:
        return SKIP, []
    alteracoes = comparar(existente, dados, campos)
    if not alteracoes:
        return SKIP, []
    return UPDATE, alteracoes


def _erros_locais(etapa, linha: LinhaGrade) -> dict[str, str]:
    erros = {}
    for col in etapa.colunas:
        erro = col.validar_valor(linha.dados.get(col.chave, ""))
        if erro:
            erros[col.chave] = erro
    return erros


def montar_previa(etapa, linhas: list[LinhaGrade], supabase) -> PlanoAplicacao:
    """Valida localmente e resolve buscas remotas linha a linha, na ordem da grade."""
    itens: list[ItemPrevia] = []
    vistas: dict[str, int] = {}

    for indice, linha in enumerate(linhas):
        dados = dict(linha.dados)
        erros = _erros_locais(etapa, linha)
        resolucao = Resolucao()

        if not erros:
            chave = etapa.chave_linha(dados)
            if chave and chave in vistas:
                erros[ERRO_GERAL] = f"Repetida na planilha (linha {vistas[chave] + 1})"
            elif chave:
                vistas[chave] = indice

        if not erros:
            try:
                resolucao = etapa.resolver(supabase, dados)
            except Exception as e:
                logger.error("Erro na prévia de %s (linha %s): %s", etapa.nome, indice + 1, e)
                erros[ERRO_GERAL] = traduzir_erro(e)
            erros.update(resolucao.erros)

        acao, alteracoes = classificar(
            erros, resolucao.existente, resolucao.registro, etapa.campos_comparados, resolucao.duplicado
        )
        itens.append(
            ItemPrevia(
                linha_id=linha.id,
                indice=indice,
                acao=acao,
                dados=dados,
                registro=resolucao.registro,
                existente=resolucao.existente,
                alteracoes=alteracoes,
                erros=erros,
            )
        )
    return PlanoAplicacao(itens=itens)


def _aplicar_sequencial(etapa, supabase, pendentes: list[ItemPrevia], contexto) -> list[ResultadoItem]:
    resultados = []
    for item in pendentes:
        try:
            entrada = etapa.aplicar(supabase, item, contexto)
            resultados.append(ResultadoItem(linha_id=item.linha_id, acao=item.acao, status="success", entrada=entrada))
        except Exception as e:
            if item.acao == CREATE and etapa.duplicado_e_skip and eh_duplicado(e):
                resultados.append(ResultadoItem(linha_id=item.linha_id, acao=SKIP, status="success", mensagem="Já existente"))
                continue
            logger.error("Erro ao aplicar %s (linha %s): %s", etapa.nome, item.indice + 1, e)
            resultados.append(ResultadoItem(linha_id=item.linha_id, acao=item.acao, status="error", mensagem=traduzir_erro(e)))
    return resultados


def aplicar_plano(plano: PlanoAplicacao, etapa, supabase, registro_desfazer=None, contexto=None) -> ResultadoAplicacao:
    """Grava os itens create/update do plano e devolve o status por linha."""
    pendentes = plano.pendentes()
    if etapa.em_lote and pendentes:
        aplicados = etapa.aplicar_lote(supabase, pendentes, contexto)
    else:
        aplicados = _aplicar_sequencial(etapa, supabase, pendentes, contexto)
    por_linha = {r.linha_id: r for r in aplicados}

    resultado = ResultadoAplicacao()
    for item in plano.itens:
        if item.acao == ERROR:
            resultado.itens.append(ResultadoItem(item.linha_id, ERROR, "error", item.motivo))
        elif item.acao == SKIP:
            resultado.itens.append(ResultadoItem(item.linha_id, SKIP, "success", "Sem alterações"))
        else:
            resultado.itens.append(
                por_linha.get(item.linha_id)
                or ResultadoItem(item.linha_id, item.acao, "error", "Sem retorno do servidor")
            )

    entradas = [r.entrada for r in resultado.itens if r.status == "success" and r.entrada is not None]
    if etapa.suporta_desfazer and registro_desfazer is not None and entradas:
        resultado.snapshot_id = registro_desfazer.criar_snapshot(etapa.nome, entradas)

    logger.info("Setup %s aplicado: %s", etapa.nome, resultado.resumo())
    registrar_acao(
        contexto,
        etapa.acao_auditoria,
        {
            "criados": resultado.criados,
            "atualizados": resultado.atualizados,
            "ignorados": resultado.ignorados,
            "erros": resultado.erros,
            "snapshot_id": resultado.snapshot_id,
        },
    )
    return resultado
