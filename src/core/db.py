import streamlit as st
from supabase import create_client

from src.core.config import get_secret


@st.cache_resource
def init_supabase_anon():
    """Cliente Supabase com ANON KEY (respeita RLS quando autenticado)."""
    url = get_secret("SUPABASE_URL")
    key = get_secret("SUPABASE_ANON_KEY") or get_secret("SUPABASE_KEY")
    if not url or not key:
        raise RuntimeError("SUPABASE_URL e SUPABASE_ANON_KEY (ou SUPABASE_KEY) não configurados.")
    return create_client(url, key)


def get_supabase_user_client(access_token: str, refresh_token: str | None = None):
    """Cria um client Supabase autenticado com JWT do usuário (RLS ativo).

    Não reaproveita o client anon cacheado: o JWT fica preso ao client, e cada
    sessão do Streamlit precisa do seu.
    """
    url = get_secret("SUPABASE_URL")
    key = get_secret("SUPABASE_ANON_KEY") or get_secret("SUPABASE_KEY")
    if not url or not key:
        raise RuntimeError("SUPABASE_URL e SUPABASE_ANON_KEY (ou SUPABASE_KEY) não configurados.")
    supa = create_client(url, key)
    if refresh_token:
        # propaga o JWT para PostgREST, Storage e Functions
        supa.auth.set_session(access_token, refresh_token)
    supa.postgrest.auth(access_token)
    supa.functions.set_auth(access_token)
    return supa
