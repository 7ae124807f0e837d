"""Autenticação e login (Supabase Auth) + contexto do usuário (papel e empresa)."""
from __future__ import annotations

import base64
import json
import logging
import time
from datetime import datetime
from typing import Optional

import streamlit as st

from src.core.contexto import ContextoAplicacao, papel_principal
from src.core.db import get_supabase_user_client
from src.core.erros import MSG_SESSAO
from src.repositories import empresas as repo_empresas
from src.repositories import usuarios as repo_usuarios
from src.services.auditoria import registrar_acao

logger = logging.getLogger(__name__)

# renova o JWT quando faltar menos que isso para expirar
MARGEM_RENOVACAO_S = 60

CHAVES_SESSAO = [
    "auth_access_token",
    "auth_refresh_token",
    "auth_user_id",
    "auth_email",
    "supabase_user",
    "supabase_user_token",
    "empresa_id",
    "contexto",
]

# estado de telas (grades, rascunhos, desfazer, importações) preso ao usuário logado
PREFIXOS_ESTADO_USUARIO = ("_setup_", "_importador_", "_central_", "_sinistralidade_", "_demo_", "_armazenamento_")
CHAVE_DONO_ESTADO = "_estado_usuario_id"


def limpar_estado_usuario(sessao) -> None:
    """Cancela autosaves pendentes e descarta o estado de telas do usuário anterior."""
    for grade in list((sessao.get("_setup_grades") or {}).values()):
        grade.encerrar()
    for chave in [k for k in list(sessao.keys()) if str(k).startswith(PREFIXOS_ESTADO_USUARIO)]:
        del sessao[chave]


def vincular_estado_usuario(sessao, usuario_id: str) -> None:
    if sessao.get(CHAVE_DONO_ESTADO) not in (None, usuario_id):
        logger.info("Troca de usuário na sessão; descartando estado de telas")
        limpar_estado_usuario(sessao)
    sessao[CHAVE_DONO_ESTADO] = usuario_id


def verificar_autenticacao() -> bool:
    return bool(st.session_state.get("auth_access_token"))


def expiracao_token(access_token: str) -> Optional[int]:
    """Campo `exp` do JWT (sem validar assinatura; quem valida é o servidor)."""
    try:
        payload = access_token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        return int(json.loads(base64.urlsafe_b64decode(payload)).get("exp"))
    except (IndexError, ValueError, TypeError):
        return None


def token_expirando(access_token: str, agora: Optional[float] = None, margem: int = MARGEM_RENOVACAO_S) -> bool:
    exp = expiracao_token(access_token)
    if exp is None:
        return False
    return (agora if agora is not None else time.time()) >= exp - margem


def _ler(obj, campo):
    # Dependendo da versão, o retorno pode ser dict/objeto.
    if obj is None:
        return None
    return getattr(obj, campo, None) or (obj.get(campo) if isinstance(obj, dict) else None)


def _guardar_sessao(session, user=None) -> None:
    st.session_state.auth_access_token = _ler(session, "access_token")
    st.session_state.auth_refresh_token = _ler(session, "refresh_token")
    if user is not None:
        st.session_state.auth_user_id = _ler(user, "id")
        st.session_state.auth_email = _ler(user, "email")


def garantir_sessao_valida(supabase_anon) -> bool:
    """Renova o JWT perto de expirar. Falha na renovação = logout."""
    token = st.session_state.get("auth_access_token")
    if not token:
        return False
    if not token_expirando(token):
        return True
    try:
        resp = supabase_anon.auth.refresh_session(st.session_state.get("auth_refresh_token"))
        session = _ler(resp, "session")
        if not _ler(session, "access_token"):
            raise RuntimeError("refresh sem access_token")
        _guardar_sessao(session)
        logger.info("Sessão renovada para %s", st.session_state.get("auth_email"))
        return True
    except Exception as e:
        logger.warning("Falha ao renovar sessão: %s", e)
        fazer_logout(supabase_anon)
        st.warning(MSG_SESSAO)
        return False


def _cliente_usuario():
    """Client do usuário por sessão; recriado quando o token muda."""
    token = st.session_state.auth_access_token
    if st.session_state.get("supabase_user_token") != token:
        st.session_state.supabase_user = get_supabase_user_client(token, st.session_state.get("auth_refresh_token"))
        st.session_state.supabase_user_token = token
    return st.session_state.supabase_user


def carregar_contexto(supabase_user, usuario_id: str, email: str, access_token: Optional[str] = None, empresa_id: Optional[str] = None) -> ContextoAplicacao:
    papeis = repo_usuarios.papeis_do_usuario(supabase_user, usuario_id)
    perfil = repo_usuarios.buscar_perfil(supabase_user, usuario_id) or {}
    empresas = repo_empresas.listar_empresas(supabase_user)

    ids = [e.get("id") for e in empresas]
    if empresa_id not in ids:
        empresa_id = perfil.get("empresa_id") if perfil.get("empresa_id") in ids else (ids[0] if ids else None)

    return ContextoAplicacao(
        supabase=supabase_user,
        usuario_id=usuario_id,
        email=email,
        nome=perfil.get("nome_completo") or "",
        papel=papel_principal(papeis),
        empresa_id=empresa_id,
        empresa_usuario_id=perfil.get("empresa_id"),
        empresas=empresas,
        access_token=access_token,
    )


def obter_contexto(supabase_anon) -> Optional[ContextoAplicacao]:
    """Contexto da sessão atual (renova JWT se preciso)."""
    if not verificar_autenticacao() or not garantir_sessao_valida(supabase_anon):
        return None
    supabase_user = _cliente_usuario()
    contexto = st.session_state.get("contexto")
    if contexto is None:
        try:
            contexto = carregar_contexto(
                supabase_user,
                st.session_state.auth_user_id,
                st.session_state.auth_email,
                st.session_state.auth_access_token,
                st.session_state.get("empresa_id"),
            )
        except Exception as e:
            st.error(f"Erro ao carregar dados do usuário: {e}")
            return None
        st.session_state.contexto = contexto

    vincular_estado_usuario(st.session_state, contexto.usuario_id)

    # token pode ter sido renovado desde a montagem
    contexto.supabase = supabase_user
    contexto.access_token = st.session_state.auth_access_token
    if st.session_state.get("empresa_id") and st.session_state.empresa_id != contexto.empresa_id:
        contexto = contexto.com_empresa(st.session_state.empresa_id)
        st.session_state.contexto = contexto
    return contexto


def fazer_login(email: str, senha: str, supabase_anon) -> Optional[ContextoAplicacao]:
    """Login via Supabase Auth (JWT)."""
    try:
        auth_resp = supabase_anon.auth.sign_in_with_password({"email": email, "password": senha})
        session = _ler(auth_resp, "session")
        user = _ler(auth_resp, "user")
        if not _ler(session, "access_token") or not _ler(user, "id"):
            return None

        _guardar_sessao(session, user)
        st.session_state.pop("contexto", None)
        contexto = obter_contexto(supabase_anon)
        if contexto is None:
            return None
        if contexto.papel is None:
            st.error("❌ Seu usuário não tem nenhuma função atribuída. Contate o administrador.")
            fazer_logout(supabase_anon)
            return None

        st.session_state.empresa_id = contexto.empresa_id
        registrar_acao(contexto, "Login", {"timestamp": datetime.now().isoformat()})
        return contexto
    except Exception as e:
        st.error(f"Erro ao fazer login: {e}")
        return None


def fazer_logout(supabase_anon, contexto: Optional[ContextoAplicacao] = None):
    """Logout (limpa sessão)."""
    if contexto is not None:
        registrar_acao(contexto, "Logout", {"timestamp": datetime.now().isoformat()})
    try:
        supabase_anon.auth.sign_out()
    except Exception as e:
        logger.warning("Erro no sign_out: %s", e)

    limpar_estado_usuario(st.session_state)
    st.session_state.pop(CHAVE_DONO_ESTADO, None)
    for k in CHAVES_SESSAO:
        if k in st.session_state:
            del st.session_state[k]


def exibir_login(supabase_anon):
    """Exibe tela de login."""
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("## 🩺 Gestão de Benefícios")
        st.markdown("---")

        email = st.text_input("📧 Email", key="login_email")
        senha = st.text_input("🔒 Senha", type="password", key="login_senha")

        if st.button("🚀 Entrar", use_container_width=True):
            if email and senha:
                contexto = fazer_login(email, senha, supabase_anon)
                if contexto:
                    st.success("✅ Login realizado com sucesso!")
                    st.rerun()
                else:
                    st.error("❌ Email ou senha incorretos (ou usuário sem acesso).")
            else:
                st.warning("⚠️ Preencha todos os campos")

        st.markdown("---")
        st.caption("💡 Primeira vez? Peça ao administrador para criar seu acesso.")
