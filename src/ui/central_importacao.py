"""Tela: Central de Importação (CSV/Excel analisado por IA)."""
from __future__ import annotations

import pandas as pd
import streamlit as st

from src.core.erros import traduzir_erro
from src.repositories import importacoes as repo
from src.services.exportacao_relatorios import (
    MIME_XLSX,
    csv_exemplo_central,
    exportar_linhas_csv,
    exportar_linhas_xlsx,
)
from src.services.importacao import EstadoImportacao, ImportadorCentral


def _importador(contexto) -> ImportadorCentral:
    imp = st.session_state.get("_importador_central")
    if imp is None:
        imp = ImportadorCentral(contexto)
        st.session_state._importador_central = imp
    imp.contexto = contexto
    return imp


def _formatar_jobs(jobs: list[dict]) -> pd.DataFrame:
    if not jobs:
        return pd.DataFrame()
    df = pd.DataFrame(jobs)
    if "created_at" in df.columns:
        df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce").dt.strftime("%d/%m/%Y %H:%M")
    if "status" in df.columns:
        df["status"] = df["status"].map(lambda s: repo.STATUS_JOB_ROTULOS.get(s, s))
    cols = [
        c
        for c in ["created_at", "arquivo_nome", "data_type", "status", "total_rows", "valid_rows", "error_rows", "criado_por_nome"]
        if c in df.columns
    ]
    return df[cols].rename(
        columns={
            "created_at": "Data",
            "arquivo_nome": "Arquivo",
            "data_type": "Tipo",
            "status": "Status",
            "total_rows": "Linhas",
            "valid_rows": "Válidas",
            "error_rows": "Erros",
            "criado_por_nome": "Enviado por",
        }
    )


def _exibir_upload(imp: ImportadorCentral) -> None:
    st.caption("Envie um CSV ou Excel. A IA detecta o tipo de dados, mapeia as colunas e valida cada linha.")
    arquivo = st.file_uploader("Selecione o arquivo", type=["csv", "xlsx", "xls"], key="central_arquivo")
    c1, c2 = st.columns([1, 1])
    with c1:
        if st.button("🤖 Analisar com IA", type="primary", disabled=arquivo is None, use_container_width=True):
            with st.spinner("Enviando e analisando..."):
                ok = imp.analisar(arquivo.name, arquivo.getvalue())
            if ok:
                st.rerun()
    with c2:
        st.download_button(
            "📄 Baixar CSV de exemplo",
            data=csv_exemplo_central(),
            file_name="exemplo_beneficiarios.csv",
            mime="text/csv",
            use_container_width=True,
        )


def _exibir_previa(imp: ImportadorCentral) -> None:
    resumo = imp.resumo
    st.markdown(f"#### 📄 {imp.arquivo or 'Importação'}")
    if resumo.get("aiSummary"):
        st.info(resumo["aiSummary"])

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Linhas", resumo.get("totalRows") or len(imp.linhas))
    c2.metric("Válidas", resumo.get("validRows") or 0)
    c3.metric("Avisos", resumo.get("warningRows") or 0)
    c4.metric("Erros", resumo.get("errorRows") or 0)

    df = imp.para_dataframe()
    if df.empty:
        st.info("Nenhuma linha no job.")
    else:
        df.insert(0, "status", [repo.STATUS_LINHA_ROTULOS.get(l.status, l.status or "") for l in imp.linhas])
        editado = st.data_editor(
            df,
            use_container_width=True,
            hide_index=True,
            disabled=["status"],
            key=f"central_editor_{imp.job_id}",
        )
        imp.sincronizar_dataframe(editado)

    if imp.alterado:
        st.warning(f"✏️ {len(imp.linhas_alteradas())} linha(s) editada(s) sem salvar.")

    c1, c2, c3, c4 = st.columns(4)
    with c1:
        if st.button("💾 Salvar edições", disabled=not imp.alterado, use_container_width=True):
            if imp.salvar_edicoes():
                st.success("Edições salvas.")
    with c2:
        if st.button("✅ Aprovar e importar", type="primary", disabled=imp.alterado, use_container_width=True):
            with st.spinner("Aplicando dados..."):
                resultado = imp.aprovar()
            if resultado is not None:
                st.session_state._central_resultado = resultado
                st.rerun()
    with c3:
        if st.button("❌ Rejeitar", use_container_width=True):
            if imp.rejeitar():
                st.session_state.pop("_central_resultado", None)
                st.rerun()
    with c4:
        if st.button("↩️ Voltar", use_container_width=True):
            imp.reiniciar()
            st.rerun()


def _exibir_pendentes(contexto, imp: ImportadorCentral) -> None:
    try:
        jobs = repo.listar_pendentes(contexto.supabase, contexto.empresa_id, todas_empresas=contexto.is_admin_vizio)
    except Exception as e:
        st.error(f"Erro ao carregar importações pendentes: {traduzir_erro(e)}")
        return
    if not jobs:
        st.info("📭 Nenhuma importação aguardando revisão.")
        return
    st.dataframe(_formatar_jobs(jobs), use_container_width=True, hide_index=True)
    opcoes = {j["id"]: f"{j.get('arquivo_nome')} ({j.get('total_rows') or 0} linhas)" for j in jobs}
    escolhido = st.selectbox("Revisar job", list(opcoes), format_func=lambda i: opcoes[i], key="central_job_pendente")
    if st.button("🔍 Abrir revisão", disabled=imp.estado != EstadoImportacao.UPLOAD):
        job = next(j for j in jobs if j["id"] == escolhido)
        if imp.abrir_job(job):
            st.rerun()


def _exibir_historico(contexto) -> None:
    try:
        jobs = repo.listar_historico(contexto.supabase, contexto.empresa_id, todas_empresas=contexto.is_admin_vizio)
    except Exception as e:
        st.error(f"Erro ao carregar histórico: {traduzir_erro(e)}")
        return
    if not jobs:
        st.info("📭 Nenhuma importação concluída.")
        return
    st.dataframe(_formatar_jobs(jobs), use_container_width=True, hide_index=True)

    opcoes = {j["id"]: f"{j.get('arquivo_nome')} - {repo.STATUS_JOB_ROTULOS.get(j.get('status'), j.get('status'))}" for j in jobs}
    escolhido = st.selectbox("Exportar linhas do job", list(opcoes), format_func=lambda i: opcoes[i], key="central_job_export")
    if st.button("📥 Preparar exportação"):
        try:
            st.session_state._central_export = (escolhido, repo.carregar_linhas_job(contexto.supabase, escolhido))
        except Exception as e:
            st.error(f"Erro ao carregar linhas: {traduzir_erro(e)}")

    exportacao = st.session_state.get("_central_export")
    if exportacao and exportacao[0] == escolhido:
        linhas = exportacao[1]
        c1, c2 = st.columns(2)
        with c1:
            st.download_button("📄 CSV", data=exportar_linhas_csv(linhas), file_name=f"export_{escolhido}.csv", mime="text/csv", use_container_width=True)
        with c2:
            st.download_button("📊 Excel", data=exportar_linhas_xlsx(linhas), file_name=f"export_{escolhido}.xlsx", mime=MIME_XLSX, use_container_width=True)


def exibir_central_importacao(contexto):
    if not contexto.is_admin:
        st.error("⛔ Acesso negado. Apenas administradores podem importar dados.")
        return

    st.title("📥 Central de Importação")
    if not contexto.empresa_id:
        st.warning("Selecione uma empresa na barra lateral.")
        return
    st.caption(f"Empresa: **{contexto.empresa_nome}**")

    imp = _importador(contexto)
    if imp.erro:
        st.error(imp.erro)

    tab1, tab2, tab3 = st.tabs(["📤 Nova Importação", "⏳ Pendentes", "📚 Histórico"])
    with tab1:
        if imp.estado == EstadoImportacao.CONCLUIDO:
            resultado = st.session_state.get("_central_resultado") or {}
            st.success(
                f"✅ Importação concluída: {resultado.get('inserted', 0)} inserido(s), "
                f"{resultado.get('updated', 0)} atualizado(s), {resultado.get('errors', 0)} erro(s)."
            )
            if st.button("📤 Nova importação"):
                imp.reiniciar()
                st.rerun()
        elif imp.estado == EstadoImportacao.PREVIA:
            _exibir_previa(imp)
        else:
            _exibir_upload(imp)
    with tab2:
        _exibir_pendentes(contexto, imp)
    with tab3:
        _exibir_historico(contexto)
