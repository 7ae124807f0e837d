"""
Grade editável (estilo planilha) do Setup

Estado em memória de linhas x colunas com:
- validação por célula
- colagem do Excel (tab ou ponto e vírgula)
- navegação por teclado (Tab cria linha no fim, setas mudam de linha)
- autosave com debounce a cada mudança no array de linhas
"""
from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

import pandas as pd

from src.core.config import ATRASO_AUTOSAVE_MS
from src.services.temporizador import Debouncer

STATUS_LINHA = ("pending", "success", "error", "validating")
ERRO_GERAL = "_general"


def gerar_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass
class Coluna:
    chave: str
    rotulo: str
    tipo: str = "text"  # text | email | password | select
    obrigatoria: bool = False
    placeholder: str = ""
    opcoes: Optional[list[tuple[str, str]]] = None
    validar: Optional[Callable[[str], Optional[str]]] = None

    def validar_valor(self, valor: str) -> Optional[str]:
        valor = valor or ""
        if self.obrigatoria and not valor.strip():
            return f"{self.rotulo} é obrigatório"
        if self.validar:
            return self.validar(valor)
        return None


@dataclass
class LinhaGrade:
    id: str
    dados: dict[str, str]
    erros: dict[str, str] = field(default_factory=dict)
    avisos: dict[str, str] = field(default_factory=dict)
    status: Optional[str] = None

    @property
    def tem_erro(self) -> bool:
        return bool(self.erros)

    def para_dict(self) -> dict:
        return {
            "id": self.id,
            "dados": dict(self.dados),
            "erros": dict(self.erros),
            "avisos": dict(self.avisos),
            "status": self.status,
        }

    @classmethod
    def de_dict(cls, d: dict) -> "LinhaGrade":
        return cls(
            id=str(d.get("id") or gerar_id()),
            dados={k: "" if v is None else str(v) for k, v in (d.get("dados") or {}).items()},
            erros=dict(d.get("erros") or {}),
            avisos=dict(d.get("avisos") or {}),
            status=d.get("status"),
        )


class GradeEditavel:
    """Linhas de uma etapa do setup contra um esquema de colunas."""

    def __init__(
        self,
        colunas: list[Coluna],
        linhas: Optional[list[LinhaGrade]] = None,
        ao_salvar: Optional[Callable[[list[LinhaGrade]], None]] = None,
        atraso_autosave_ms: int = ATRASO_AUTOSAVE_MS,
        timer_factory=threading.Timer,
    ):
        self.colunas = list(colunas)
        self._linhas: list[LinhaGrade] = list(linhas or [])
        self._autosave = (
            Debouncer(atraso_autosave_ms / 1000.0, ao_salvar, timer_factory=timer_factory)
            if ao_salvar
            else None
        )

    # ----------------------------
    # Estado
    # ----------------------------
    @property
    def linhas(self) -> list[LinhaGrade]:
        return list(self._linhas)

    def __len__(self) -> int:
        return len(self._linhas)

    def _coluna(self, chave: str) -> Optional[Coluna]:
        return next((c for c in self.colunas if c.chave == chave), None)

    def _indice(self, linha_id: str) -> int:
        for i, linha in enumerate(self._linhas):
            if linha.id == linha_id:
                return i
        raise KeyError(linha_id)

    def _mudou(self) -> None:
        if self._autosave is not None:
            self._autosave.agendar([LinhaGrade.de_dict(l.para_dict()) for l in self._linhas])

    def definir_linhas(self, linhas: list[LinhaGrade]) -> None:
        self._linhas = list(linhas)
        self._mudou()

    def limpar(self) -> None:
        self.definir_linhas([])

    def encerrar(self) -> None:
        """Cancela autosave pendente (equivale a desmontar o componente)."""
        if self._autosave is not None:
            self._autosave.cancelar()

    # ----------------------------
    # Edição
    # ----------------------------
    def _linha_vazia(self) -> LinhaGrade:
        return LinhaGrade(id=gerar_id(), dados={c.chave: "" for c in self.colunas})

    def adicionar_linha(self) -> LinhaGrade:
        nova = self._linha_vazia()
        self._linhas.append(nova)
        self._mudou()
        return nova

    def adicionar_linhas(self, n: int) -> list[LinhaGrade]:
        novas = [self._linha_vazia() for _ in range(max(0, int(n)))]
        if novas:
            self._linhas.extend(novas)
            self._mudou()
        return novas

    def remover_linha(self, linha_id: str) -> None:
        self._linhas = [l for l in self._linhas if l.id != linha_id]
        self._mudou()

    def atualizar_celula(self, linha_id: str, chave: str, valor: str) -> LinhaGrade:
        i = self._indice(linha_id)
        atual = self._linhas[i]
        coluna = self._coluna(chave)
        erro = coluna.validar_valor(valor) if coluna else None

        erros = {k: v for k, v in atual.erros.items() if k not in (chave, ERRO_GERAL)}
        if erro:
            erros[chave] = erro

        nova = LinhaGrade(
            id=atual.id,
            dados={**atual.dados, chave: valor},
            erros=erros,
            avisos={k: v for k, v in atual.avisos.items() if k != chave},
            status=None,  # força nova validação
        )
        self._linhas[i] = nova
        self._mudou()
        return nova

    def _linha_de_valores(self, valores: dict[str, str]) -> LinhaGrade:
        dados: dict[str, str] = {}
        erros: dict[str, str] = {}
        for col in self.colunas:
            valor = str(valores.get(col.chave) or "").strip()
            dados[col.chave] = valor
            erro = col.validar_valor(valor)
            if erro:
                erros[col.chave] = erro
        return LinhaGrade(id=gerar_id(), dados=dados, erros=erros)

    def colar(self, texto: str) -> int:
        """Cola várias linhas do Excel. Uma linha só é colagem normal de célula (ignorada aqui)."""
        linhas_texto = [l for l in (texto or "").replace("\r\n", "\n").replace("\r", "\n").split("\n") if l.strip()]
        if len(linhas_texto) <= 1:
            return 0

        novas = []
        for texto_linha in linhas_texto:
            valores = re.split(r"[\t;]", texto_linha)
            mapa = {col.chave: valores[i] for i, col in enumerate(self.colunas) if i < len(valores)}
            novas.append(self._linha_de_valores(mapa))

        self._linhas.extend(novas)
        self._mudou()
        return len(novas)

    def adicionar_dados(self, registros: list[dict]) -> int:
        """Acrescenta registros já estruturados (ex.: retorno do assistente de IA)."""
        novas = [self._linha_de_valores({k: "" if v is None else str(v) for k, v in r.items()}) for r in registros]
        if novas:
            self._linhas.extend(novas)
            self._mudou()
        return len(novas)

    def aplicar_correcoes(self, correcoes: list[dict]) -> int:
        """Correções `{row, field, value}` com row 0-based; ignora posições inexistentes."""
        aplicadas = 0
        for c in correcoes:
            idx = int(c.get("row", -1))
            campo = c.get("field")
            if 0 <= idx < len(self._linhas) and self._coluna(campo):
                self.atualizar_celula(self._linhas[idx].id, campo, str(c.get("value") or ""))
                aplicadas += 1
        return aplicadas

    def validar_todas(self) -> bool:
        """Revalida todas as células; True se nenhuma linha tem erro."""
        revalidadas = []
        for linha in self._linhas:
            erros = {}
            for col in self.colunas:
                erro = col.validar_valor(linha.dados.get(col.chave, ""))
                if erro:
                    erros[col.chave] = erro
            revalidadas.append(
                LinhaGrade(id=linha.id, dados=dict(linha.dados), erros=erros, avisos=dict(linha.avisos), status=linha.status)
            )
        self._linhas = revalidadas
        self._mudou()
        return not any(l.erros for l in self._linhas)

    def marcar_status(self, resultados: dict[str, tuple[str, Optional[str]]]) -> None:
        """Aplica `{linha_id: (status, mensagem)}` vindos da aplicação."""
        marcadas = []
        for linha in self._linhas:
            if linha.id in resultados:
                status, mensagem = resultados[linha.id]
                if status not in STATUS_LINHA:
                    raise ValueError(f"Status de linha inválido: {status}")
                erros = {k: v for k, v in linha.erros.items() if k != ERRO_GERAL}
                if status == "error" and mensagem:
                    erros[ERRO_GERAL] = mensagem
                linha = LinhaGrade(id=linha.id, dados=dict(linha.dados), erros=erros, avisos=dict(linha.avisos), status=status)
            marcadas.append(linha)
        self._linhas = marcadas
        self._mudou()

    # ----------------------------
    # Teclado
    # ----------------------------
    def navegar(self, tecla: str, linha: int, coluna: int, shift: bool = False) -> tuple[int, int]:
        """Nova posição de foco após `tecla` na célula (linha, coluna)."""
        ultima_col = len(self.colunas) - 1
        ultima_linha = len(self._linhas) - 1

        if tecla == "Tab" and not shift:
            if coluna < ultima_col:
                return linha, coluna + 1
            if linha >= ultima_linha:
                self.adicionar_linha()
                return len(self._linhas) - 1, 0
            return linha + 1, 0
        if tecla == "Tab" and shift:
            if coluna > 0:
                return linha, coluna - 1
            return (linha - 1, ultima_col) if linha > 0 else (linha, coluna)
        if tecla == "ArrowDown":
            return min(linha + 1, max(ultima_linha, 0)), coluna
        if tecla == "ArrowUp":
            return max(linha - 1, 0), coluna
        return linha, coluna

    # ----------------------------
    # Exibição
    # ----------------------------
    def para_dataframe(self) -> pd.DataFrame:
        registros = []
        for linha in self._linhas:
            r = {"id": linha.id}
            r.update({c.chave: linha.dados.get(c.chave, "") for c in self.colunas})
            r["status"] = linha.status or ("revisar" if linha.erros else "")
            r["erros"] = "; ".join(f"{k}: {v}" if k != ERRO_GERAL else v for k, v in linha.erros.items())
            registros.append(r)
        colunas = ["id"] + [c.chave for c in self.colunas] + ["status", "erros"]
        return pd.DataFrame(registros, columns=colunas)

    def sincronizar_dataframe(self, df: pd.DataFrame) -> bool:
        """Aplica edições feitas no st.data_editor. Retorna True se algo mudou."""
        mudou = False
        vistos = set()
        for _, r in df.iterrows():
            linha_id = str(r.get("id") or "").strip()
            if not linha_id or linha_id not in {l.id for l in self._linhas}:
                nova = self.adicionar_linha()
                linha_id = nova.id
                mudou = True
            vistos.add(linha_id)
            atual = self._linhas[self._indice(linha_id)]
            for col in self.colunas:
                valor = r.get(col.chave)
                valor = "" if valor is None or (isinstance(valor, float) and pd.isna(valor)) else str(valor)
                if valor != atual.dados.get(col.chave, ""):
                    atual = self.atualizar_celula(linha_id, col.chave, valor)
                    mudou = True
        for linha in list(self._linhas):
            if linha.id not in vistos:
                self.remover_linha(linha.id)
                mudou = True
        return mudou
