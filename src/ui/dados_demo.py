import streamlit as st

from src.core.erros import traduzir_erro
from src.services.dados_demo import MODOS_DEMO, executar_dados_demo


def exibir_dados_demo(contexto):
    """Tela de dados de demonstração (admin_vizio)."""
    if not contexto.is_admin_vizio:
        st.error("⛔ Acesso negado. Apenas admin_vizio pode gerenciar dados demo.")
        return

    st.title("🧪 Dados de Demonstração")
    st.caption("Cria uma empresa demo completa (beneficiários, faturas, sinistralidade) para apresentações e testes.")

    seed_id = st.text_input("Seed ID (opcional)", key="demo_seed_id", help="Para remover/resetar um seed específico.")

    c1, c2, c3 = st.columns(3)
    modo = None
    with c1:
        if st.button("➕ Criar dados demo", type="primary", use_container_width=True):
            modo = "create"
    with c2:
        if st.button("🔄 Resetar", use_container_width=True):
            modo = "reset"
    with c3:
        if st.button("🗑️ Remover", use_container_width=True):
            modo = "cleanup"

    if modo:
        with st.spinner("Executando..."):
            try:
                st.session_state._demo_resultado = executar_dados_demo(contexto, modo, seed_id.strip() or None)
                st.success(MODOS_DEMO[modo])
            except Exception as e:
                st.error(f"❌ {traduzir_erro(e)}")

    resultado = st.session_state.get("_demo_resultado")
    if resultado:
        if resultado.get("seedId"):
            st.markdown(f"**Seed:** `{resultado['seedId']}`")
        logs = resultado.get("logs") or []
        if logs:
            with st.expander(f"📋 Log ({len(logs)})", expanded=False):
                st.code("\n".join(str(l) for l in logs))
