"""Tela: Importação de relatórios de sinistralidade (PDF)."""
from __future__ import annotations

import plotly.express as px
import streamlit as st

from src.services.importacao import MODO_SERVIDOR, EstadoImportacao, ImportadorSinistralidade
from src.utils.formatting import formatar_moeda_br, formatar_numero_br

TIPOS_DOCUMENTO = {
    "demonstrativo_resultado": "Demonstrativo de Resultado",
    "custo_assistencial": "Custo Assistencial",
    "consultas": "Relatório de Consultas",
    "internacoes": "Relatório de Internações",
    "unknown": "Tipo não identificado",
}

COLUNAS_NUMERICAS = ["vidas", "faturamento", "sinistros", "iu"]


def _importador(contexto) -> ImportadorSinistralidade:
    imp = st.session_state.get("_importador_sinistralidade")
    if imp is None:
        imp = ImportadorSinistralidade(contexto)
        st.session_state._importador_sinistralidade = imp
    imp.contexto = contexto
    return imp


def _exibir_metadados(imp: ImportadorSinistralidade) -> None:
    resumo = imp.resumo
    meta = resumo.get("meta") or {}
    sumario = resumo.get("summary") or {}

    total = sumario.get("rows") or len(imp.linhas)
    erros = sumario.get("errors") or 0
    avisos = sumario.get("warnings") or 0
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Registros", total)
    c2.metric("Válidos", max(total - erros - avisos, 0))
    c3.metric("Avisos", avisos)
    c4.metric("Erros", erros)

    etiquetas = [TIPOS_DOCUMENTO.get(resumo.get("document_type"), resumo.get("document_type") or "-")]
    if meta.get("operadora"):
        etiquetas.append(meta["operadora"])
    if meta.get("produto"):
        etiquetas.append(meta["produto"])
    if meta.get("periodo_inicio") and meta.get("periodo_fim"):
        etiquetas.append(f"{meta['periodo_inicio']} a {meta['periodo_fim']}")
    st.markdown(" · ".join(f"`{e}`" for e in etiquetas))

    if resumo.get("mode") == MODO_SERVIDOR:
        st.info("ℹ️ O PDF não pôde ser convertido localmente; a extração foi feita no servidor.")

    for erro in imp.validacoes.get("errors", []):
        st.error(f"❌ {erro}")
    for aviso in imp.validacoes.get("warnings", []):
        st.warning(f"⚠️ {aviso}")


def _exibir_grafico(imp: ImportadorSinistralidade) -> None:
    serie = imp.serie_indice_utilizacao()
    if serie.empty:
        return

    c1, c2, c3 = st.columns(3)
    c1.metric("Faturamento no período", formatar_moeda_br(serie["faturamento"].sum(min_count=1)))
    c2.metric("Sinistros no período", formatar_moeda_br(serie["sinistros"].sum(min_count=1)))
    c3.metric("IU médio", f"{formatar_numero_br(serie['iu'].mean())}%")

    if serie["iu"].isna().all():
        return
    fig = px.line(
        serie,
        x="competencia",
        y="iu",
        markers=True,
        title="Índice de Utilização por competência",
        hover_data=["sinistros", "faturamento"],
    )
    fig.update_layout(xaxis_title="Competência", yaxis_title="IU (%)")
    st.plotly_chart(fig, use_container_width=True)


def _exibir_linhas(imp: ImportadorSinistralidade) -> None:
    df = imp.para_dataframe()
    if df.empty:
        st.info("Nenhuma linha extraída do documento.")
        return

    config = {c: st.column_config.NumberColumn(c.upper() if c == "iu" else c.capitalize()) for c in COLUNAS_NUMERICAS if c in df.columns}
    editado = st.data_editor(
        df,
        use_container_width=True,
        hide_index=True,
        column_config=config,
        disabled=[c for c in ("page_ref",) if c in df.columns],
        key=f"sinistralidade_editor_{imp.job_id}",
    )
    imp.sincronizar_dataframe(editado)


def _exibir_previa(imp: ImportadorSinistralidade) -> None:
    st.markdown(f"#### 📄 {imp.arquivo}")
    _exibir_metadados(imp)
    _exibir_grafico(imp)
    _exibir_linhas(imp)

    bloqueio = imp.motivo_bloqueio()
    if imp.alterado:
        st.warning(f"✏️ {len(imp.linhas_alteradas())} linha(s) editada(s) sem salvar.")
    elif bloqueio:
        st.error(f"⛔ {bloqueio}")

    c1, c2, c3 = st.columns(3)
    with c1:
        if st.button("💾 Salvar edições", disabled=not imp.alterado, use_container_width=True, key="sin_salvar"):
            if imp.salvar_edicoes():
                st.success("Edições salvas.")
    with c2:
        if st.button("✅ Aprovar importação", type="primary", disabled=bool(bloqueio), use_container_width=True, key="sin_aprovar"):
            with st.spinner("Gravando dados de sinistralidade..."):
                resultado = imp.aprovar()
            if resultado is not None:
                st.session_state._sinistralidade_resultado = resultado
                st.rerun()
    with c3:
        if st.button("↩️ Cancelar", use_container_width=True, key="sin_cancelar"):
            imp.reiniciar()
            st.rerun()


def exibir_importar_sinistralidade(contexto):
    if not contexto.is_admin:
        st.error("⛔ Acesso negado. Apenas administradores podem importar relatórios.")
        return

    st.title("📑 Importar Sinistralidade")
    if not contexto.empresa_id:
        st.warning("Selecione uma empresa na barra lateral.")
        return
    st.caption(f"Empresa: **{contexto.empresa_nome}**")

    imp = _importador(contexto)
    if imp.erro:
        st.error(imp.erro)

    if imp.estado == EstadoImportacao.CONCLUIDO:
        resultado = st.session_state.get("_sinistralidade_resultado") or {}
        st.success(f"✅ {resultado.get('message') or 'Dados importados com sucesso!'}")
        if st.button("📤 Importar outro PDF"):
            imp.reiniciar()
            st.rerun()
        return

    if imp.estado == EstadoImportacao.PREVIA:
        _exibir_previa(imp)
        return

    st.caption("Envie o relatório da operadora. As páginas são convertidas em imagens e lidas pela IA.")
    arquivo = st.file_uploader("Relatório em PDF", type=["pdf"], key="sinistralidade_arquivo")
    if st.button("🤖 Analisar PDF", type="primary", disabled=arquivo is None):
        with st.spinner("Convertendo páginas e extraindo dados..."):
            ok = imp.analisar(arquivo.name, arquivo.getvalue())
        if ok:
            st.rerun()
