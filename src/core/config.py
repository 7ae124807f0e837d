"""Configuração da aplicação (secrets, constantes e página)."""
from __future__ import annotations

import logging
import os
from pathlib import Path

import streamlit as st

APP_NOME = "Gestão de Benefícios"

# Setup wizard
JANELA_DESFAZER_S = 120
ATRASO_AUTOSAVE_MS = 1000
PREFIXO_RASCUNHO = "setup_wizard_draft"
PREFIXO_SNAPSHOTS = "setup_undo_snapshots"

# Storage / Edge Functions
BUCKET_IMPORTACOES = "imports"
FUNCAO_AGENTE_DADOS = "admin-data-agent"
FUNCAO_CRIAR_USUARIOS = "admin-create-users"
FUNCAO_AGENTE_SINISTRALIDADE = "sinistralidade-pdf-agent"
FUNCAO_DADOS_DEMO = "seed-demo-data"

# PDF de sinistralidade
PDF_MAX_PAGINAS = 5
PDF_ESCALA_RENDER = 2
TIMEOUT_FUNCAO_S = 180

EMPRESA_ID_NULO = "00000000-0000-0000-0000-000000000000"


def get_secret(name: str, default: str | None = None) -> str | None:
    """Lê de st.secrets (quando existir) e cai para variável de ambiente."""
    try:
        if name in st.secrets:
            return st.secrets.get(name)
    except FileNotFoundError:
        # sem secrets.toml: segue para o ambiente
        pass
    return os.getenv(name, default)


def diretorio_rascunhos() -> Path:
    base = get_secret("BENEFICIOS_RASCUNHOS_DIR")
    if base:
        return Path(base)
    return Path.home() / ".beneficios_backoffice" / "rascunhos"


def configurar_logging(nivel: str | None = None) -> None:
    nivel = (nivel or get_secret("LOG_LEVEL", "INFO") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, nivel, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def configure_page() -> None:
    st.set_page_config(
        page_title=APP_NOME,
        layout="wide",
        page_icon="🩺",
    )
