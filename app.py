import streamlit as st
import textwrap

from src.core.config import APP_NOME, configurar_logging, configure_page

configure_page()
configurar_logging()

from src.core.contexto import PAPEIS_ROTULOS
from src.core.db import init_supabase_anon
from src.core.auth import exibir_login, fazer_logout, obter_contexto

from src.ui.setup_wizard import exibir_setup_wizard
from src.ui.central_importacao import exibir_central_importacao
from src.ui.importar_sinistralidade import exibir_importar_sinistralidade
from src.ui.dados_demo import exibir_dados_demo
from src.ui.auditoria import exibir_painel_auditoria

# Conexão (cacheada) com Supabase
supabase_anon = init_supabase_anon()

PAGINAS = {
    "⚙️ Setup": exibir_setup_wizard,
    "📥 Central de Importação": exibir_central_importacao,
    "📑 Sinistralidade": exibir_importar_sinistralidade,
    "🔒 Auditoria": exibir_painel_auditoria,
    "🧪 Dados Demo": exibir_dados_demo,
}


def _sidebar_css() -> None:
    st.markdown(
        textwrap.dedent(r"""
        <style>
            :root {
                --gb-card: rgba(255,255,255,0.06);
                --gb-border: rgba(255,255,255,0.10);
                --gb-accent: #14b8a6;
            }
            .gb-card {
                background: var(--gb-card);
                border: 1px solid var(--gb-border);
                border-radius: 14px;
                padding: 12px 12px;
                margin-bottom: 10px;
            }
            .gb-user-label { font-size: 12px; opacity: .8; margin: 0 0 4px 0; }
            .gb-user-name { font-size: 16px; font-weight: 800; margin: 0; }
            .gb-user-role { font-size: 12px; opacity: .75; margin: 4px 0 0 0; }
            .gb-bar {
                height: 3px;
                border-radius: 999px;
                background: linear-gradient(90deg, var(--gb-accent), rgba(20,184,166,0.0));
                margin: 10px 0 8px 0;
            }
            div[role="radiogroup"] label {
                padding: 8px 10px;
                border-radius: 12px;
                margin-bottom: 4px;
            }
            div[role="radiogroup"] input:checked + div {
                box-shadow: inset 4px 0 0 var(--gb-accent);
            }
        </style>
        """),
        unsafe_allow_html=True,
    )


def _paginas_visiveis(contexto) -> list[str]:
    paginas = list(PAGINAS)
    if not contexto.is_admin_vizio:
        paginas.remove("🧪 Dados Demo")
    return paginas


def _seletor_empresa(contexto) -> None:
    if not contexto.empresas:
        st.caption("Nenhuma empresa cadastrada.")
        return
    nomes = {e["id"]: e.get("nome") or e["id"] for e in contexto.empresas}
    ids = list(nomes)
    idx = ids.index(contexto.empresa_id) if contexto.empresa_id in ids else 0
    escolhido = st.selectbox("🏢 Empresa", options=ids, format_func=lambda x: nomes.get(x, x), index=idx)
    if escolhido != contexto.empresa_id:
        st.session_state.empresa_id = escolhido
        st.rerun()


def _sidebar_footer(contexto) -> None:
    """Sair + créditos (sempre por último na sidebar)."""
    st.markdown("---")
    if st.button("🚪 Sair", use_container_width=True, key="btn_logout_sidebar"):
        fazer_logout(supabase_anon, contexto)
        st.rerun()

    st.markdown(
        f"""
        <div style="font-size:11px; opacity:0.6; margin-top:10px;">
            © {APP_NOME} - Back office
        </div>
        """,
        unsafe_allow_html=True,
    )


def main():
    contexto = obter_contexto(supabase_anon)
    if contexto is None:
        exibir_login(supabase_anon)
        return

    _sidebar_css()

    with st.sidebar:
        papel = PAPEIS_ROTULOS.get(contexto.papel, contexto.papel or "—")
        st.markdown(
            textwrap.dedent(f"""<div class="gb-card">
  <p class="gb-user-label">🩺 {APP_NOME}</p>
  <div class="gb-bar"></div>
  <p class="gb-user-name">{contexto.nome or contexto.email}</p>
  <p class="gb-user-role">{papel}</p>
</div>
"""),
            unsafe_allow_html=True,
        )

        _seletor_empresa(contexto)

        pagina = st.radio(
            "Navegação",
            _paginas_visiveis(contexto),
            label_visibility="collapsed",
            key="menu_principal",
        )

    PAGINAS[pagina](contexto)

    with st.sidebar:
        _sidebar_footer(contexto)


if __name__ == "__main__":
    main()
