"""Rascunhos do Setup: espelha as linhas da grade por etapa no armazenamento local."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from src.core.config import PREFIXO_RASCUNHO
from src.services.armazenamento import ArmazenamentoMemoria
from src.services.grade import LinhaGrade
from src.utils.validacao import normalizar_cnpj

logger = logging.getLogger(__name__)


@dataclass
class Restauracao:
    linhas: list[LinhaGrade]
    notificar: bool


class EscolhaConflito(str, Enum):
    SUBSTITUIR = "substituir"  # fica só o remoto
    MESCLAR = "mesclar"  # local + remotos sem CNPJ correspondente
    MANTER = "manter"  # fica só o local


class RascunhoSetup:
    def __init__(self, armazenamento, sessao=None, prefixo: str = PREFIXO_RASCUNHO):
        self.armazenamento = armazenamento
        # flags de "restauração exibida" valem só para a sessão
        self.sessao = sessao if sessao is not None else ArmazenamentoMemoria()
        self.prefixo = prefixo
        self._restaurados: set[str] = set()

    def _chave(self, etapa: str) -> str:
        return f"{self.prefixo}:{etapa}"

    def salvar(self, etapa: str, linhas: list[LinhaGrade]) -> None:
        try:
            self.armazenamento.gravar(
                self._chave(etapa),
                {
                    "linhas": [l.para_dict() for l in linhas],
                    "ultima_modificacao": datetime.now().isoformat(),
                },
            )
        except (OSError, TypeError, ValueError) as e:
            logger.error("Erro ao salvar rascunho de %s: %s", etapa, e)

    def carregar(self, etapa: str) -> list[LinhaGrade]:
        bucket = self.armazenamento.ler(self._chave(etapa)) or {}
        return [LinhaGrade.de_dict(d) for d in bucket.get("linhas") or []]

    def ultima_modificacao(self, etapa: str) -> Optional[str]:
        bucket = self.armazenamento.ler(self._chave(etapa)) or {}
        return bucket.get("ultima_modificacao")

    def tem_rascunho(self, etapa: Optional[str] = None) -> bool:
        if etapa is not None:
            return bool(self.carregar(etapa))
        return any(self.armazenamento.ler(k, {}).get("linhas") for k in self.armazenamento.chaves(f"{self.prefixo}:"))

    def limpar(self, etapa: Optional[str] = None) -> None:
        if etapa is not None:
            self.armazenamento.remover(self._chave(etapa))
            return
        for chave in self.armazenamento.chaves(f"{self.prefixo}:"):
            self.armazenamento.remover(chave)

    def restaurar(self, etapa: str) -> Optional[Restauracao]:
        """Lê o rascunho uma única vez após o armazenamento ficar pronto."""
        if not self.armazenamento.pronto or etapa in self._restaurados:
            return None
        self._restaurados.add(etapa)

        linhas = self.carregar(etapa)
        if not linhas:
            return Restauracao(linhas=[], notificar=False)

        flag = f"restauracao_exibida:{etapa}"
        notificar = not self.sessao.ler(flag, False)
        if notificar:
            self.sessao.gravar(flag, True)
        return Restauracao(linhas=linhas, notificar=notificar)


def ha_conflito(local: list[LinhaGrade], remoto: list[LinhaGrade]) -> bool:
    return bool(local) and bool(remoto)


def resolver_conflito(
    local: list[LinhaGrade],
    remoto: list[LinhaGrade],
    escolha: EscolhaConflito,
    chave: Optional[Callable[[dict], Optional[str]]] = None,
) -> list[LinhaGrade]:
    """Mesclar mantém o local e acrescenta os remotos cuja chave (CNPJ por padrão) não está na grade."""
    escolha = EscolhaConflito(escolha)
    if escolha == EscolhaConflito.SUBSTITUIR:
        return list(remoto)
    if escolha == EscolhaConflito.MANTER:
        return list(local)

    chave = chave or (lambda dados: normalizar_cnpj(dados.get("cnpj", "")))
    chaves_locais = {chave(l.dados) for l in local}
    extras = [r for r in remoto if chave(r.dados) not in chaves_locais]
    return list(local) + extras
