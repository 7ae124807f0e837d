"""
Pipelines de importação

upload -> analyzing -> preview -> (saving <-> preview) -> applying -> done

Qualquer falha volta para `upload` (análise) ou `preview` (salvar/aprovar),
guardando a mensagem em `erro`. `reiniciar()` volta a `upload` de qualquer estado.

- ImportadorCentral: CSV/Excel -> admin-data-agent (analyze/approve/reject)
- ImportadorSinistralidade: PDF -> páginas PNG -> sinistralidade-pdf-agent
"""
from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Callable, Optional

import pandas as pd

from src.core.config import BUCKET_IMPORTACOES, FUNCAO_AGENTE_DADOS, FUNCAO_AGENTE_SINISTRALIDADE
from src.core.erros import ErroRemoto, TransicaoInvalida, traduzir_erro
from src.core.funcoes import chamar_funcao_http, enviar_arquivo, invocar_funcao
from src.repositories import importacoes as repo_importacoes
from src.services.auditoria import registrar_acao
from src.services.pdf_render import ErroRenderizacao, renderizar_paginas

logger = logging.getLogger(__name__)

MODO_CLIENTE = "client_render"
MODO_SERVIDOR = "server_fallback"

TIPOS_CONTEUDO = {
    ".csv": "text/csv",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
    ".pdf": "application/pdf",
}


class EstadoImportacao(str, Enum):
    UPLOAD = "upload"
    ANALISANDO = "analyzing"
    PREVIA = "preview"
    SALVANDO = "saving"
    APLICANDO = "applying"
    CONCLUIDO = "done"


@dataclass
class LinhaImportacao:
    numero: int
    dados: dict
    id: Optional[str] = None
    status: Optional[str] = None
    erros: list = field(default_factory=list)
    avisos: list = field(default_factory=list)

    @classmethod
    def de_registro(cls, r: dict) -> "LinhaImportacao":
        return cls(
            numero=int(r.get("row_number") or 0),
            dados=dict(r.get("mapped_data") or r.get("original_data") or {}),
            id=r.get("id"),
            status=r.get("status"),
            erros=list(r.get("validation_errors") or []),
            avisos=list(r.get("validation_warnings") or []),
        )


class PipelineImportacao:
    extensoes: tuple[str, ...] = ()
    descricao_tipos = ""
    acao_auditoria = ""

    def __init__(self, contexto, relogio: Callable[[], float] = time.time):
        self.contexto = contexto
        self.relogio = relogio
        self.estado = EstadoImportacao.UPLOAD
        self.erro: Optional[str] = None
        self._limpar()

    def _limpar(self) -> None:
        self.job_id: Optional[str] = None
        self.arquivo: Optional[str] = None
        self.linhas: list[LinhaImportacao] = []
        self._persistidas: list[dict] = []
        self.resumo: dict[str, Any] = {}
        self.validacoes: dict[str, list] = {"errors": [], "warnings": []}

    def _exigir(self, *estados: EstadoImportacao) -> None:
        if self.estado not in estados:
            esperados = ", ".join(e.value for e in estados)
            raise TransicaoInvalida(f"Operação inválida no estado '{self.estado.value}' (esperado: {esperados})")

    @property
    def supabase(self):
        return self.contexto.supabase

    def aceita(self, nome: str) -> bool:
        return PurePath(nome or "").suffix.lower() in self.extensoes

    def _timestamp(self) -> int:
        return int(self.relogio() * 1000)

    # ----------------------------
    # Ganchos das subclasses
    # ----------------------------
    def _analisar(self, nome: str, conteudo: bytes) -> None:
        raise NotImplementedError

    def _aprovar(self) -> dict:
        raise NotImplementedError

    def _persistir_linha(self, linha: LinhaImportacao) -> None:
        if linha.id:
            gravadas = repo_importacoes.atualizar_dados_linha(self.supabase, linha.id, linha.dados)
        else:
            gravadas = repo_importacoes.atualizar_dados_linha_numero(self.supabase, self.job_id, linha.numero, linha.dados)
        # update sem linha correspondente não levanta erro no PostgREST
        if not gravadas:
            raise ErroRemoto(f"Linha de staging não encontrada (linha {linha.numero}).")

    def _marcar_persistidas(self) -> None:
        self._persistidas = [copy.deepcopy(l.dados) for l in self.linhas]

    # ----------------------------
    # Transições
    # ----------------------------
    def analisar(self, nome: str, conteudo: bytes) -> bool:
        self._exigir(EstadoImportacao.UPLOAD)
        if not self.aceita(nome):
            self.erro = f"Arquivo inválido. Selecione um arquivo {self.descricao_tipos}."
            return False
        if not self.contexto.empresa_id:
            self.erro = "Selecione uma empresa antes de importar."
            return False

        self.estado = EstadoImportacao.ANALISANDO
        self.erro = None
        self._limpar()
        self.arquivo = nome
        try:
            self._analisar(nome, conteudo)
        except Exception as e:
            logger.error("Erro na análise de %s: %s", nome, e)
            self.erro = traduzir_erro(e)
            self._limpar()
            self.estado = EstadoImportacao.UPLOAD
            return False

        self._marcar_persistidas()
        self.estado = EstadoImportacao.PREVIA
        registrar_acao(
            self.contexto,
            "Analisar Importacao",
            {"arquivo": nome, "job_id": self.job_id, "linhas": len(self.linhas)},
        )
        return True

    def editar(self, indice: int, campo: str, valor: Any) -> None:
        self._exigir(EstadoImportacao.PREVIA)
        self.linhas[indice].dados[campo] = valor

    def sincronizar_dataframe(self, df: pd.DataFrame) -> int:
        """Aplica as edições do st.data_editor. Colunas extras (ex.: status) são ignoradas."""
        mudancas = 0
        for i, registro in enumerate(df.to_dict("records")[: len(self.linhas)]):
            for campo, atual in list(self.linhas[i].dados.items()):
                if campo not in registro:
                    continue
                novo = registro[campo]
                if isinstance(novo, float) and pd.isna(novo):
                    novo = None
                if novo != atual:
                    self.editar(i, campo, novo)
                    mudancas += 1
        return mudancas

    def _indices_alterados(self) -> list[int]:
        return [i for i, (l, p) in enumerate(zip(self.linhas, self._persistidas)) if l.dados != p]

    def linhas_alteradas(self) -> list[LinhaImportacao]:
        return [self.linhas[i] for i in self._indices_alterados()]

    @property
    def alterado(self) -> bool:
        return bool(self.linhas_alteradas())

    def motivo_bloqueio(self) -> Optional[str]:
        """Mensagem que impede a aprovação, ou None."""
        if self.alterado:
            return "Há edições não salvas. Salve antes de aprovar."
        return None

    def salvar_edicoes(self) -> bool:
        self._exigir(EstadoImportacao.PREVIA)
        alteradas = self._indices_alterados()
        if not alteradas:
            return True

        self.estado = EstadoImportacao.SALVANDO
        try:
            for i in alteradas:
                self._persistir_linha(self.linhas[i])
                self._persistidas[i] = copy.deepcopy(self.linhas[i].dados)
        except Exception as e:
            logger.error("Erro ao salvar edições do job %s: %s", self.job_id, e)
            self.erro = traduzir_erro(e)
            self.estado = EstadoImportacao.PREVIA
            return False

        self.erro = None
        self.estado = EstadoImportacao.PREVIA
        return True

    def aprovar(self) -> Optional[dict]:
        self._exigir(EstadoImportacao.PREVIA)
        motivo = self.motivo_bloqueio()
        if motivo:
            self.erro = motivo
            return None

        self.estado = EstadoImportacao.APLICANDO
        try:
            resultado = self._aprovar()
        except Exception as e:
            logger.error("Erro ao aprovar job %s: %s", self.job_id, e)
            self.erro = traduzir_erro(e)
            self.estado = EstadoImportacao.PREVIA
            return None

        registrar_acao(self.contexto, self.acao_auditoria, {"job_id": self.job_id, "arquivo": self.arquivo, "resultado": resultado})
        self.erro = None
        self._limpar()
        self.estado = EstadoImportacao.CONCLUIDO
        return resultado

    def reiniciar(self) -> None:
        self.erro = None
        self._limpar()
        self.estado = EstadoImportacao.UPLOAD

    def para_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([l.dados for l in self.linhas])


class ImportadorCentral(PipelineImportacao):
    extensoes = (".csv", ".xlsx", ".xls")
    descricao_tipos = "CSV ou Excel"
    acao_auditoria = "Aprovar Importacao"

    def caminho_arquivo(self, nome: str) -> str:
        return f"{self.contexto.empresa_id}/{self._timestamp()}_{nome}"

    def _carregar_linhas(self) -> None:
        self.linhas = [
            LinhaImportacao.de_registro(r) for r in repo_importacoes.carregar_linhas_job(self.supabase, self.job_id)
        ]
        for l in self.linhas:
            self.validacoes["errors"].extend(l.erros)
            self.validacoes["warnings"].extend(l.avisos)

    def _analisar(self, nome, conteudo):
        caminho = enviar_arquivo(
            self.supabase,
            BUCKET_IMPORTACOES,
            self.caminho_arquivo(nome),
            conteudo,
            TIPOS_CONTEUDO.get(PurePath(nome).suffix.lower(), "application/octet-stream"),
        )
        resposta = invocar_funcao(
            self.supabase,
            FUNCAO_AGENTE_DADOS,
            {"action": "analyze", "empresaId": self.contexto.empresa_id, "filePath": caminho},
        )
        job = resposta.get("job") or {}
        if not job.get("id"):
            raise ErroRemoto("A análise não retornou o job de importação.", payload=resposta)
        self.job_id = job["id"]
        self.resumo = dict(resposta.get("summary") or {})
        self._carregar_linhas()

    def abrir_job(self, job: dict) -> bool:
        """Retoma a revisão de um job já analisado (lista de pendentes)."""
        self._exigir(EstadoImportacao.UPLOAD)
        self._limpar()
        self.job_id = job["id"]
        self.arquivo = job.get("arquivo_nome")
        self.resumo = {
            "dataType": job.get("data_type"),
            "totalRows": job.get("total_rows"),
            "validRows": job.get("valid_rows"),
            "warningRows": job.get("warning_rows"),
            "errorRows": job.get("error_rows"),
            "duplicateRows": job.get("duplicate_rows"),
            "aiSummary": job.get("ai_summary"),
        }
        try:
            self._carregar_linhas()
        except Exception as e:
            logger.error("Erro ao carregar linhas do job %s: %s", self.job_id, e)
            self.erro = traduzir_erro(e)
            self._limpar()
            return False
        self.erro = None
        self._marcar_persistidas()
        self.estado = EstadoImportacao.PREVIA
        return True

    def _aprovar(self):
        return invocar_funcao(self.supabase, FUNCAO_AGENTE_DADOS, {"action": "approve", "jobId": self.job_id})

    def rejeitar(self) -> bool:
        self._exigir(EstadoImportacao.PREVIA)
        job_id, arquivo = self.job_id, self.arquivo
        try:
            invocar_funcao(self.supabase, FUNCAO_AGENTE_DADOS, {"action": "reject", "jobId": job_id})
        except Exception as e:
            logger.error("Erro ao rejeitar job %s: %s", job_id, e)
            self.erro = traduzir_erro(e)
            return False
        registrar_acao(self.contexto, "Rejeitar Importacao", {"job_id": job_id, "arquivo": arquivo})
        self.reiniciar()
        return True


class ImportadorSinistralidade(PipelineImportacao):
    extensoes = (".pdf",)
    descricao_tipos = "PDF"
    acao_auditoria = "Importar Sinistralidade"

    def __init__(self, contexto, relogio: Callable[[], float] = time.time, renderizar=renderizar_paginas, chamar=chamar_funcao_http):
        self._renderizar = renderizar
        self._chamar = chamar
        self.modo = MODO_CLIENTE
        super().__init__(contexto, relogio)

    def erros_extracao(self) -> int:
        return int((self.resumo.get("summary") or {}).get("errors") or 0)

    def motivo_bloqueio(self):
        motivo = super().motivo_bloqueio()
        if motivo is None and self.erros_extracao():
            motivo = f"A extração encontrou {self.erros_extracao()} erro(s). Revise o PDF antes de aprovar."
        return motivo

    def caminho_arquivo(self, nome: str) -> str:
        return f"{self.contexto.empresa_id}/sinistralidade/{self._timestamp()}-{nome}"

    def _enviar(self, nome: str, conteudo: bytes) -> str:
        caminho = self.caminho_arquivo(nome)
        try:
            enviar_arquivo(self.supabase, BUCKET_IMPORTACOES, caminho, conteudo, TIPOS_CONTEUDO[".pdf"])
        except ErroRemoto as e:
            # com as páginas renderizadas o agente não precisa do arquivo
            if self.modo == MODO_SERVIDOR:
                raise
            logger.warning("Upload do PDF falhou, seguindo com as páginas renderizadas: %s", e)
        return caminho

    def _analisar(self, nome, conteudo):
        self.modo = MODO_CLIENTE
        try:
            paginas = self._renderizar(conteudo)
        except ErroRenderizacao as e:
            logger.warning("Renderização local falhou, usando server_fallback: %s", e)
            paginas = []
            self.modo = MODO_SERVIDOR

        caminho = self._enviar(nome, conteudo)
        resposta = self._chamar(
            FUNCAO_AGENTE_SINISTRALIDADE,
            {
                "action": "analyze",
                "empresaId": self.contexto.empresa_id,
                "filePath": caminho,
                "pages": paginas,
                "mode": self.modo,
            },
            self.contexto.access_token,
        )
        if not resposta.get("jobId"):
            raise ErroRemoto(resposta.get("error") or "A análise não retornou o job de importação.", payload=resposta)

        self.job_id = resposta["jobId"]
        extraido = resposta.get("extractedData") or {}
        self.resumo = {
            "document_type": extraido.get("document_type"),
            "meta": extraido.get("meta") or {},
            "summary": extraido.get("summary") or {},
            "indicadores_periodo": extraido.get("indicadores_periodo") or {},
            "mode": resposta.get("mode") or self.modo,
        }
        validacoes = extraido.get("validations") or {}
        self.validacoes = {
            "errors": list(validacoes.get("errors") or []),
            "warnings": list(validacoes.get("warnings") or []),
        }

        try:
            registros = repo_importacoes.carregar_linhas_job(self.supabase, self.job_id)
        except Exception as e:
            logger.warning("Linhas de staging indisponíveis, usando retorno do agente: %s", e)
            registros = []
        if registros:
            self.linhas = [LinhaImportacao.de_registro(r) for r in registros]
        else:
            self.linhas = [LinhaImportacao(numero=i + 1, dados=dict(r)) for i, r in enumerate(extraido.get("rows") or [])]

    def _aprovar(self):
        return self._chamar(
            FUNCAO_AGENTE_SINISTRALIDADE,
            {"action": "approve", "empresaId": self.contexto.empresa_id, "jobId": self.job_id},
            self.contexto.access_token,
        )

    def serie_indice_utilizacao(self) -> pd.DataFrame:
        """Competência x IU (%) das linhas em revisão, para o gráfico da prévia."""
        df = self.para_dataframe()
        if df.empty or "competencia" not in df.columns:
            return pd.DataFrame(columns=["competencia", "iu", "sinistros", "faturamento"])
        for col in ("iu", "sinistros", "faturamento"):
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors="coerce")
            else:
                df[col] = pd.NA
        df = df[df["competencia"].notna() & (df["competencia"].astype(str).str.strip() != "")]
        return df[["competencia", "iu", "sinistros", "faturamento"]].reset_index(drop=True)
