"""Tela: Setup inicial (Empresas -> Usuários -> Perfis -> Funções)."""
from __future__ import annotations

from datetime import datetime

import pandas as pd
import streamlit as st

from src.core.config import diretorio_rascunhos
from src.core.erros import ErroAplicacao, traduzir_erro
from src.services import assistente_ia as ia
from src.services.armazenamento import ArmazenamentoArquivo, ArmazenamentoMemoria
from src.services.auditoria import registrar_acao
from src.services.desfazer import RegistroDesfazer
from src.services.etapas import ETAPAS
from src.services.exportacao_relatorios import csv_exemplo_etapa
from src.services.grade import GradeEditavel
from src.services.previa import ACOES_ROTULOS, aplicar_plano, montar_previa
from src.services.rascunho import EscolhaConflito, RascunhoSetup, ha_conflito, resolver_conflito

ROTULOS_CONFLITO = {
    EscolhaConflito.SUBSTITUIR: "Substituir pelo que está cadastrado",
    EscolhaConflito.MESCLAR: "Mesclar (mantém a grade e acrescenta os cadastrados que não estão nela)",
    EscolhaConflito.MANTER: "Manter só a grade",
}


# ============================================
# Estado da sessão
# ============================================
def _armazenamento(contexto):
    """Disco quando possível (sobrevive a recarregar); senão, memória da sessão."""
    chave = f"_setup_armazenamento_{contexto.usuario_id}"
    if chave not in st.session_state:
        arquivo = ArmazenamentoArquivo(diretorio_rascunhos() / contexto.usuario_id)
        st.session_state[chave] = arquivo if arquivo.pronto else ArmazenamentoMemoria(st.session_state)
    return st.session_state[chave]


def _rascunho(contexto) -> RascunhoSetup:
    if "_setup_rascunho" not in st.session_state:
        st.session_state._setup_rascunho = RascunhoSetup(
            _armazenamento(contexto),
            sessao=ArmazenamentoMemoria(st.session_state, "_setup_flags"),
        )
    return st.session_state._setup_rascunho


def _registro_desfazer(contexto) -> RegistroDesfazer:
    if "_setup_desfazer" not in st.session_state:
        st.session_state._setup_desfazer = RegistroDesfazer(_armazenamento(contexto))
    return st.session_state._setup_desfazer


def _grade(contexto, nome: str) -> GradeEditavel:
    grades = st.session_state.setdefault("_setup_grades", {})
    if nome not in grades:
        rascunho = _rascunho(contexto)
        grades[nome] = GradeEditavel(
            ETAPAS[nome].colunas,
            ao_salvar=lambda linhas, n=nome: rascunho.salvar(n, linhas),
        )
    return grades[nome]


def _versao_editor(nome: str) -> int:
    return st.session_state.setdefault("_setup_versao_editor", {}).get(nome, 0)


def _nova_versao_editor(nome: str) -> None:
    versoes = st.session_state.setdefault("_setup_versao_editor", {})
    versoes[nome] = versoes.get(nome, 0) + 1


def _planos() -> dict:
    return st.session_state.setdefault("_setup_planos", {})


def _restaurar_rascunho(contexto, nome: str, grade: GradeEditavel) -> None:
    rascunho = _rascunho(contexto)
    restauracao = rascunho.restaurar(nome)
    if restauracao is None or not restauracao.linhas:
        return
    grade.definir_linhas(restauracao.linhas)
    _nova_versao_editor(nome)
    if restauracao.notificar:
        quando = rascunho.ultima_modificacao(nome) or ""
        try:
            quando = datetime.fromisoformat(quando).strftime("%d/%m/%Y %H:%M")
        except ValueError:
            pass
        st.toast(f"📝 Rascunho de {ETAPAS[nome].titulo} restaurado ({len(restauracao.linhas)} linha(s), {quando})")


# ============================================
# Blocos da tela
# ============================================
def _column_config(etapa) -> dict:
    config = {
        "id": None,
        "status": st.column_config.TextColumn("Status", disabled=True),
        "erros": st.column_config.TextColumn("Erros", disabled=True, width="large"),
    }
    for col in etapa.colunas:
        rotulo = f"{col.rotulo} *" if col.obrigatoria else col.rotulo
        if col.tipo == "select" and col.opcoes:
            config[col.chave] = st.column_config.SelectboxColumn(
                rotulo, options=[valor for valor, _ in col.opcoes], help=col.placeholder
            )
        else:
            config[col.chave] = st.column_config.TextColumn(rotulo, help=col.placeholder)
    return config


def _exibir_grade(nome: str, etapa, grade: GradeEditavel) -> None:
    editado = st.data_editor(
        grade.para_dataframe(),
        column_config=_column_config(etapa),
        num_rows="dynamic",
        use_container_width=True,
        hide_index=True,
        key=f"editor_{nome}_{_versao_editor(nome)}",
    )
    if grade.sincronizar_dataframe(editado):
        _planos().pop(nome, None)
        _nova_versao_editor(nome)
        st.rerun()

    com_erro = sum(1 for l in grade.linhas if l.tem_erro)
    if com_erro:
        st.caption(f"⚠️ {com_erro} linha(s) com erro de validação.")


def _exibir_ferramentas(contexto, nome: str, etapa, grade: GradeEditavel) -> None:
    c1, c2, c3, c4 = st.columns([1, 1, 1, 1])
    with c1:
        qtd = st.number_input("Linhas", min_value=1, max_value=200, value=1, key=f"qtd_linhas_{nome}", label_visibility="collapsed")
    with c2:
        if st.button("➕ Adicionar linhas", use_container_width=True, key=f"add_{nome}"):
            grade.adicionar_linhas(int(qtd))
            _nova_versao_editor(nome)
            st.rerun()
    with c3:
        st.download_button(
            "📄 CSV de exemplo",
            data=csv_exemplo_etapa(etapa),
            file_name=f"exemplo_{nome}.csv",
            mime="text/csv",
            use_container_width=True,
            key=f"exemplo_{nome}",
        )
    with c4:
        if st.button("🗑️ Limpar grade", use_container_width=True, key=f"limpar_{nome}"):
            grade.limpar()
            _rascunho(contexto).limpar(nome)
            _planos().pop(nome, None)
            _nova_versao_editor(nome)
            st.rerun()

    with st.expander("📋 Colar do Excel", expanded=False):
        st.caption("Cole várias linhas (separadas por tab ou ponto e vírgula) na ordem: " + ", ".join(c.rotulo for c in etapa.colunas))
        texto = st.text_area("Dados", key=f"colar_{nome}", height=140, label_visibility="collapsed")
        if st.button("Colar na grade", key=f"btn_colar_{nome}"):
            n = grade.colar(texto)
            if n:
                st.success(f"✅ {n} linha(s) coladas.")
                _planos().pop(nome, None)
                _nova_versao_editor(nome)
                st.rerun()
            else:
                st.info("Cole pelo menos duas linhas (uma linha só se edita direto na célula).")

    if etapa.carrega_remoto:
        _exibir_conflito(contexto, nome, etapa, grade)


def _exibir_conflito(contexto, nome: str, etapa, grade: GradeEditavel) -> None:
    chave_sessao = f"_setup_remoto_{nome}"
    with st.expander(f"🔄 Carregar cadastrados ({etapa.titulo})", expanded=False):
        if st.button("Buscar cadastrados", key=f"buscar_remoto_{nome}"):
            try:
                st.session_state[chave_sessao] = etapa.carregar_remoto(contexto.supabase)
            except Exception as e:
                st.error(f"Erro ao carregar {etapa.titulo.lower()}: {traduzir_erro(e)}")
                return

        remoto = st.session_state.get(chave_sessao)
        if remoto is None:
            return
        if not ha_conflito(grade.linhas, remoto):
            grade.definir_linhas(remoto)
            st.session_state.pop(chave_sessao, None)
            _nova_versao_editor(nome)
            st.rerun()

        st.warning(f"A grade já tem {len(grade)} linha(s) e existem {len(remoto)} registro(s) cadastrado(s).")
        escolha = st.radio(
            "O que fazer?",
            list(EscolhaConflito),
            format_func=lambda e: ROTULOS_CONFLITO[e],
            key=f"escolha_conflito_{nome}",
        )
        if st.button("Confirmar", key=f"confirmar_conflito_{nome}"):
            grade.definir_linhas(resolver_conflito(grade.linhas, remoto, escolha, chave=etapa.chave_linha))
            st.session_state.pop(chave_sessao, None)
            _planos().pop(nome, None)
            _nova_versao_editor(nome)
            st.rerun()


def _exibir_assistente(contexto, nome: str, grade: GradeEditavel) -> None:
    with st.expander("🤖 Assistente IA", expanded=False):
        st.caption("Cole dados em qualquer formato; a IA identifica as colunas.")
        st.code(ia.EXEMPLOS[nome], language=None)
        texto = st.text_area("Texto", key=f"ia_texto_{nome}", height=140, label_visibility="collapsed")

        c1, c2 = st.columns(2)
        with c1:
            if st.button("🔍 Analisar texto", use_container_width=True, key=f"ia_parse_{nome}"):
                with st.spinner("Analisando com IA..."):
                    try:
                        st.session_state[f"_ia_parse_{nome}"] = ia.analisar_texto_colado(contexto, nome, texto)
                    except ErroAplicacao as e:
                        st.error(str(e))
                    except Exception as e:
                        st.error(traduzir_erro(e))
        with c2:
            if st.button("💡 Sugerir correções", use_container_width=True, key=f"ia_suggest_{nome}"):
                with st.spinner("Gerando sugestões..."):
                    try:
                        st.session_state[f"_ia_sugestao_{nome}"] = ia.sugerir_correcoes(
                            contexto, nome, [l.dados for l in grade.linhas]
                        )
                    except ErroAplicacao as e:
                        st.error(str(e))
                    except Exception as e:
                        st.error(traduzir_erro(e))

        interpretado = st.session_state.get(f"_ia_parse_{nome}")
        if interpretado is not None:
            st.markdown(f"**{len(interpretado.linhas)} registro(s) identificados**")
            if interpretado.linhas:
                st.dataframe(pd.DataFrame(interpretado.linhas), use_container_width=True, hide_index=True)
            for s in interpretado.sugestoes:
                st.info(s)
            for a in interpretado.ambiguidades:
                st.warning(f"{a.get('column')}: {a.get('question')}")
            if interpretado.linhas and st.button("➕ Adicionar à grade", key=f"ia_aplicar_{nome}"):
                grade.adicionar_dados(interpretado.linhas)
                st.session_state.pop(f"_ia_parse_{nome}", None)
                _nova_versao_editor(nome)
                st.rerun()

        sugestao = st.session_state.get(f"_ia_sugestao_{nome}")
        if sugestao is not None:
            if sugestao.correcoes:
                st.dataframe(
                    pd.DataFrame(
                        [
                            {
                                "Linha": int(c.get("row", 0)) + 1,
                                "Campo": c.get("field"),
                                "Atual": c.get("currentValue"),
                                "Sugerido": c.get("suggestedValue"),
                                "Motivo": c.get("reason"),
                            }
                            for c in sugestao.correcoes
                        ]
                    ),
                    use_container_width=True,
                    hide_index=True,
                )
                if st.button("✅ Aplicar todas as correções", key=f"ia_corrigir_{nome}"):
                    n = grade.aplicar_correcoes(sugestao.para_grade())
                    st.session_state.pop(f"_ia_sugestao_{nome}", None)
                    _nova_versao_editor(nome)
                    st.toast(f"{n} correção(ões) aplicada(s)")
                    st.rerun()
            else:
                st.success("Nenhuma correção sugerida.")
            for a in sugestao.avisos:
                st.warning(f"Linha {int(a.get('row', 0)) + 1}: {a.get('message')}")


def _exibir_previa(contexto, nome: str, etapa, grade: GradeEditavel) -> None:
    st.markdown("### 🔍 Prévia")
    if st.button("Pré-visualizar alterações", disabled=len(grade) == 0, key=f"previa_{nome}"):
        with st.spinner("Validando linhas..."):
            grade.validar_todas()
            _planos()[nome] = montar_previa(etapa, grade.linhas, contexto.supabase)

    plano = _planos().get(nome)
    if plano is None:
        return

    contagens = plano.contagens()
    cols = st.columns(4)
    for col, acao in zip(cols, ("create", "update", "skip", "error")):
        col.metric(ACOES_ROTULOS[acao], contagens[acao])

    st.dataframe(
        pd.DataFrame(
            [
                {
                    "Linha": i.indice + 1,
                    "Ação": ACOES_ROTULOS[i.acao],
                    "Detalhe": i.motivo,
                    "Alterações": "; ".join(f"{a.campo}: {a.de or '—'} → {a.para or '—'}" for a in i.alteracoes),
                }
                for i in plano.itens
            ]
        ),
        use_container_width=True,
        hide_index=True,
    )

    if not plano.pode_aplicar:
        st.error("Todas as linhas têm erro. Corrija a grade antes de aplicar.")
    pendentes = len(plano.pendentes())
    if st.button(
        f"✅ Aplicar {pendentes} alteração(ões)",
        type="primary",
        disabled=not plano.pode_aplicar,
        key=f"aplicar_{nome}",
    ):
        with st.spinner("Aplicando..."):
            resultado = aplicar_plano(plano, etapa, contexto.supabase, _registro_desfazer(contexto), contexto)
        grade.marcar_status(resultado.status_por_linha())
        _planos().pop(nome, None)
        _nova_versao_editor(nome)
        st.session_state.setdefault("_setup_resumo", {})[nome] = resultado.resumo()
        if resultado.erros:
            st.session_state._setup_mensagem = ("error", f"{resultado.resumo()}. Verifique as linhas com erro.")
        else:
            st.session_state._setup_mensagem = ("success", f"✅ {resultado.resumo()}")
        st.rerun()


@st.fragment(run_every="1s")
def _exibir_desfazer(contexto, nome: str) -> None:
    registro = _registro_desfazer(contexto)
    for snapshot in registro.snapshots_ativos():
        if snapshot.etapa != nome:
            continue
        restantes = int(snapshot.segundos_restantes(registro.relogio()))
        c1, c2, c3 = st.columns([8, 2, 1])
        with c1:
            st.warning(
                f"↩️ {len(snapshot.entradas)} alteração(ões) aplicada(s). "
                f"Desfazer disponível por {restantes // 60}:{restantes % 60:02d}."
            )
        with c2:
            if st.button("Desfazer", key=f"desfazer_{snapshot.id}", use_container_width=True):
                resultado = registro.desfazer(snapshot.id, contexto.supabase)
                registrar_acao(
                    contexto,
                    "Desfazer Setup",
                    {
                        "etapa": nome,
                        "snapshot_id": snapshot.id,
                        "desfeitos": len(resultado.desfeitos),
                        "falhas": len(resultado.falhas),
                        "expirado": resultado.expirado,
                    },
                )
                if resultado.expirado:
                    st.session_state._setup_mensagem = ("info", "A janela para desfazer já encerrou.")
                elif resultado.falhas:
                    detalhes = "; ".join(f"{f.entrada.identificador or f.entrada.registro_id}: {f.mensagem}" for f in resultado.falhas)
                    st.session_state._setup_mensagem = (
                        "error",
                        f"{len(resultado.desfeitos)} desfeita(s), {len(resultado.falhas)} falha(s): {detalhes}",
                    )
                else:
                    st.session_state._setup_mensagem = ("success", f"↩️ {len(resultado.desfeitos)} alteração(ões) desfeita(s).")
                st.rerun()
        with c3:
            if st.button("✕", key=f"dispensar_{snapshot.id}", help="Dispensar (não será mais possível desfazer)"):
                registro.remover_snapshot(snapshot.id)
                st.rerun()


# ============================================
# Página
# ============================================
def exibir_setup_wizard(contexto):
    if not contexto.is_admin:
        st.error("⛔ Acesso negado. Apenas administradores podem executar o setup.")
        return

    st.title("🧭 Setup Inicial")
    st.caption("Preencha cada etapa como uma planilha. Nada é gravado antes da prévia e da confirmação.")

    nomes = list(ETAPAS)
    nome = st.radio(
        "Etapa",
        nomes,
        format_func=lambda n: f"{nomes.index(n) + 1}. {ETAPAS[n].titulo}",
        horizontal=True,
        key="setup_etapa",
        label_visibility="collapsed",
    )
    etapa = ETAPAS[nome]

    if nome == "usuarios" and not contexto.is_admin_vizio:
        st.error("⛔ A criação de usuários requer a função admin_vizio.")
        return

    mensagem = st.session_state.pop("_setup_mensagem", None)
    if mensagem:
        getattr(st, mensagem[0])(mensagem[1])

    st.info(etapa.descricao)
    resumo = st.session_state.get("_setup_resumo", {}).get(nome)
    if resumo:
        st.caption(f"Último salvamento: {resumo}")

    grade = _grade(contexto, nome)
    _restaurar_rascunho(contexto, nome, grade)

    _exibir_desfazer(contexto, nome)
    _exibir_ferramentas(contexto, nome, etapa, grade)
    _exibir_grade(nome, etapa, grade)
    _exibir_assistente(contexto, nome, grade)
    st.markdown("---")
    _exibir_previa(contexto, nome, etapa, grade)

    with st.sidebar:
        if _rascunho(contexto).tem_rascunho():
            if st.button("🗑️ Descartar rascunhos do setup", use_container_width=True):
                _rascunho(contexto).limpar()
                for g in st.session_state.get("_setup_grades", {}).values():
                    g.encerrar()
                st.session_state.pop("_setup_grades", None)
                st.session_state.pop("_setup_planos", None)
                st.rerun()
