from __future__ import annotations

from datetime import datetime

import pandas as pd
import streamlit as st

from src.core.erros import traduzir_erro
from src.services.auditoria import ACOES_AUDITORIA, carregar_logs_auditoria, registrar_acao
from src.services.exportacao_relatorios import MIME_XLSX, backup_cadastros_xlsx, gerar_botoes_exportacao


def _exibir_logs(contexto) -> None:
    col1, col2 = st.columns([2, 1])
    with col1:
        filtro = st.selectbox("Tipo de Ação:", ["Todas"] + ACOES_AUDITORIA)
    with col2:
        limite = st.number_input("Limite:", min_value=10, max_value=1000, value=200, step=10)

    try:
        df = carregar_logs_auditoria(contexto.supabase, None if filtro == "Todas" else filtro, limite=int(limite))
    except Exception as e:
        st.error(f"❌ Erro ao carregar logs: {traduzir_erro(e)}")
        return
    if df.empty:
        st.info("📭 Nenhum log encontrado (verifique se a tabela logs_auditoria existe e está acessível).")
        return

    if "timestamp" in df.columns:
        df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce").dt.strftime("%d/%m/%Y %H:%M:%S")

    cols = [c for c in ["timestamp", "usuario_nome", "usuario_email", "acao", "detalhes"] if c in df.columns]
    df = df[cols] if cols else df
    st.dataframe(df, use_container_width=True, hide_index=True)

    with st.expander("📥 Exportar logs"):
        gerar_botoes_exportacao(df.astype(str), prefixo="logs_auditoria")


def _exibir_backup(contexto) -> None:
    st.subheader("💾 Backup Manual dos Cadastros")
    st.caption("Gera um XLSX com empresas, perfis, funções e jobs de importação visíveis para o seu usuário.")

    if st.button("🔄 Gerar Backup", use_container_width=True):
        with st.spinner("Gerando backup..."):
            try:
                conteudo = backup_cadastros_xlsx(contexto.supabase)
            except Exception as e:
                st.error(f"❌ Erro ao gerar backup: {traduzir_erro(e)}")
                return
        registrar_acao(contexto, "Exportar Dados", {"tipo": "backup_cadastros"})
        st.success("✅ Backup gerado com sucesso!")
        st.download_button(
            "📥 Baixar Backup",
            data=conteudo,
            file_name=f"backup_cadastros_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx",
            mime=MIME_XLSX,
            use_container_width=True,
        )


def exibir_painel_auditoria(contexto) -> None:
    if not contexto.is_admin:
        st.error("⛔ Acesso negado. Apenas administradores podem ver a auditoria.")
        return

    st.title("🔒 Painel de Auditoria e Logs")
    tab1, tab2 = st.tabs(["📋 Logs", "💾 Backup"])
    with tab1:
        _exibir_logs(contexto)
    with tab2:
        _exibir_backup(contexto)
