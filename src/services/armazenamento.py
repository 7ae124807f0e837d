"""Armazenamento local do cliente (rascunhos, flags e snapshots de desfazer).

Dois backends com a mesma interface:
- ArmazenamentoMemoria: qualquer mapping mutável (ex.: st.session_state); dura a sessão.
- ArmazenamentoArquivo: um JSON por chave em disco; sobrevive a recarregar a página.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, MutableMapping, Optional

logger = logging.getLogger(__name__)


class ArmazenamentoMemoria:
    def __init__(self, mapa: Optional[MutableMapping] = None, namespace: str = "_armazenamento_local"):
        if mapa is None:
            mapa = {}
        if namespace not in mapa:
            mapa[namespace] = {}
        self._mapa = mapa
        self._namespace = namespace

    @property
    def _dados(self) -> dict:
        return self._mapa[self._namespace]

    @property
    def pronto(self) -> bool:
        return True

    def ler(self, chave: str, padrao: Any = None) -> Any:
        return self._dados.get(chave, padrao)

    def gravar(self, chave: str, valor: Any) -> None:
        # cópia via JSON: mesmo contrato do backend em disco
        self._dados[chave] = json.loads(json.dumps(valor))

    def remover(self, chave: str) -> None:
        self._dados.pop(chave, None)

    def chaves(self, prefixo: str = "") -> list[str]:
        return [k for k in self._dados if k.startswith(prefixo)]


class ArmazenamentoArquivo:
    def __init__(self, diretorio: Path | str):
        self.diretorio = Path(diretorio)
        self._pronto = False
        try:
            self.diretorio.mkdir(parents=True, exist_ok=True)
            self._pronto = True
        except OSError as e:
            logger.error("Armazenamento local indisponível em %s: %s", self.diretorio, e)

    @property
    def pronto(self) -> bool:
        return self._pronto

    @staticmethod
    def _nome_arquivo(chave: str) -> str:
        return re.sub(r"[^A-Za-z0-9_.-]", "_", chave) + ".json"

    def _caminho(self, chave: str) -> Path:
        return self.diretorio / self._nome_arquivo(chave)

    def ler(self, chave: str, padrao: Any = None) -> Any:
        caminho = self._caminho(chave)
        if not caminho.exists():
            return padrao
        try:
            conteudo = json.loads(caminho.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Erro ao ler %s: %s", caminho, e)
            return padrao
        return conteudo.get("valor", padrao)

    def gravar(self, chave: str, valor: Any) -> None:
        caminho = self._caminho(chave)
        tmp = caminho.with_suffix(".tmp")
        tmp.write_text(json.dumps({"chave": chave, "valor": valor}, ensure_ascii=False), encoding="utf-8")
        tmp.replace(caminho)

    def remover(self, chave: str) -> None:
        try:
            self._caminho(chave).unlink()
        except FileNotFoundError:
            pass

    def chaves(self, prefixo: str = "") -> list[str]:
        encontradas = []
        for caminho in self.diretorio.glob("*.json"):
            try:
                chave = json.loads(caminho.read_text(encoding="utf-8")).get("chave", "")
            except (OSError, json.JSONDecodeError):
                continue
            if chave.startswith(prefixo):
                encontradas.append(chave)
        return encontradas
