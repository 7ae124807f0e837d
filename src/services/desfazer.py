"""
Desfazer (janela de 2 minutos)

Log de ações compensatórias por id de snapshot. Cada entrada guarda a tabela,
a operação que a produziu (create/update), o estado anterior e o aplicado.
Desfazer = delete para create, update com o estado anterior para update.
Não é transacional: o resultado informa o que foi e o que não foi desfeito.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from src.core.config import JANELA_DESFAZER_S, PREFIXO_SNAPSHOTS
from src.core.erros import traduzir_erro

logger = logging.getLogger(__name__)

OP_CREATE = "create"
OP_UPDATE = "update"


@dataclass
class EntradaDesfazer:
    entidade: str
    operacao: str
    registro_id: str
    estado_anterior: Optional[dict] = None
    estado_aplicado: dict = field(default_factory=dict)
    identificador: str = ""


@dataclass
class SnapshotDesfazer:
    id: str
    etapa: str
    criado_em: float
    expira_em: float
    entradas: list[EntradaDesfazer]

    def expirado(self, agora: float) -> bool:
        return agora >= self.expira_em

    def segundos_restantes(self, agora: float) -> float:
        return max(0.0, self.expira_em - agora)

    def para_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def de_dict(cls, d: dict) -> "SnapshotDesfazer":
        return cls(
            id=d["id"],
            etapa=d["etapa"],
            criado_em=float(d["criado_em"]),
            expira_em=float(d["expira_em"]),
            entradas=[EntradaDesfazer(**e) for e in d.get("entradas") or []],
        )


@dataclass
class FalhaDesfazer:
    entrada: EntradaDesfazer
    mensagem: str


@dataclass
class ResultadoDesfazer:
    desfeitos: list[EntradaDesfazer] = field(default_factory=list)
    falhas: list[FalhaDesfazer] = field(default_factory=list)
    expirado: bool = False

    @property
    def sucesso(self) -> bool:
        return not self.expirado and not self.falhas


class RegistroDesfazer:
    def __init__(
        self,
        armazenamento,
        relogio: Callable[[], float] = time.time,
        janela_s: float = JANELA_DESFAZER_S,
        chave: str = PREFIXO_SNAPSHOTS,
    ):
        self.armazenamento = armazenamento
        self.relogio = relogio
        self.janela_s = janela_s
        self.chave = chave

    # ----------------------------
    # Persistência
    # ----------------------------
    def _todos(self) -> list[SnapshotDesfazer]:
        return [SnapshotDesfazer.de_dict(d) for d in self.armazenamento.ler(self.chave, []) or []]

    def _gravar(self, snapshots: list[SnapshotDesfazer]) -> None:
        self.armazenamento.gravar(self.chave, [s.para_dict() for s in snapshots])

    def limpar_expirados(self) -> int:
        agora = self.relogio()
        todos = self._todos()
        ativos = [s for s in todos if not s.expirado(agora)]
        if len(ativos) != len(todos):
            self._gravar(ativos)
        return len(todos) - len(ativos)

    # ----------------------------
    # API
    # ----------------------------
    def criar_snapshot(self, etapa: str, entradas: list[EntradaDesfazer]) -> str:
        agora = self.relogio()
        snapshot = SnapshotDesfazer(
            id=f"snapshot_{int(agora * 1000)}_{uuid.uuid4().hex[:9]}",
            etapa=etapa,
            criado_em=agora,
            expira_em=agora + self.janela_s,
            entradas=list(entradas),
        )
        self.limpar_expirados()
        self._gravar(self._todos() + [snapshot])
        return snapshot.id

    def obter_snapshot(self, snapshot_id: str) -> Optional[SnapshotDesfazer]:
        """Snapshot ativo ou None (expirado/removido = janela encerrada)."""
        self.limpar_expirados()
        agora = self.relogio()
        return next((s for s in self._todos() if s.id == snapshot_id and not s.expirado(agora)), None)

    def snapshots_ativos(self) -> list[SnapshotDesfazer]:
        self.limpar_expirados()
        return self._todos()

    def segundos_restantes(self, snapshot_id: str) -> float:
        snapshot = self.obter_snapshot(snapshot_id)
        return snapshot.segundos_restantes(self.relogio()) if snapshot else 0.0

    def remover_snapshot(self, snapshot_id: str) -> None:
        self._gravar([s for s in self._todos() if s.id != snapshot_id])

    def _substituir_entradas(self, snapshot_id: str, entradas: list[EntradaDesfazer]) -> None:
        snapshots = self._todos()
        for s in snapshots:
            if s.id == snapshot_id:
                s.entradas = list(entradas)
        self._gravar(snapshots)

    def desfazer(self, snapshot_id: str, supabase) -> ResultadoDesfazer:
        snapshot = self.obter_snapshot(snapshot_id)
        if snapshot is None:
            return ResultadoDesfazer(expirado=True)

        resultado = ResultadoDesfazer()
        for entrada in snapshot.entradas:
            try:
                compensar(supabase, entrada)
                resultado.desfeitos.append(entrada)
            except Exception as e:
                logger.error("Erro ao desfazer %s %s: %s", entrada.entidade, entrada.registro_id, e)
                resultado.falhas.append(FalhaDesfazer(entrada=entrada, mensagem=traduzir_erro(e)))

        if resultado.falhas:
            # mantém só o que falhou, mesmo prazo
            self._substituir_entradas(snapshot_id, [f.entrada for f in resultado.falhas])
        else:
            self.remover_snapshot(snapshot_id)
        return resultado


def compensar(supabase, entrada: EntradaDesfazer) -> None:
    """Executa a ação compensatória de uma entrada."""
    tabela = supabase.table(entrada.entidade)
    if entrada.operacao == OP_CREATE:
        tabela.delete().eq("id", entrada.registro_id).execute()
    elif entrada.operacao == OP_UPDATE:
        anterior = dict(entrada.estado_anterior or {})
        anterior.pop("id", None)
        if anterior:
            tabela.update(anterior).eq("id", entrada.registro_id).execute()
    else:
        raise ValueError(f"Operação desconhecida: {entrada.operacao}")
