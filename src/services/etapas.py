"""
Etapas do Setup (Empresas, Usuários, Perfis, Roles)

Cada etapa define as colunas da grade, como resolver uma linha contra o banco
(prévia) e como gravá-la (aplicação). A ordem de ETAPAS é a ordem do assistente.
"""
from __future__ import annotations

import logging
from typing import Optional

from src.core.config import FUNCAO_CRIAR_USUARIOS
from src.core.contexto import PAPEIS, PAPEIS_ROTULOS
from src.core.erros import traduzir_erro
from src.core.funcoes import invocar_funcao
from src.repositories import empresas as repo_empresas
from src.repositories import usuarios as repo_usuarios
from src.services.desfazer import OP_CREATE, OP_UPDATE, EntradaDesfazer
from src.services.grade import Coluna, LinhaGrade, gerar_id
from src.services.previa import CREATE, ItemPrevia, Resolucao, ResultadoItem
from src.utils.formatting import formatar_cnpj, formatar_telefone
from src.utils.validacao import normalizar_cnpj, normalizar_email, v_cnpj, v_email, v_opcao, v_senha_minima

logger = logging.getLogger(__name__)


def _texto(valor: Optional[str]) -> Optional[str]:
    valor = (valor or "").strip()
    return valor or None


class Etapa:
    nome = ""
    titulo = ""
    descricao = ""
    tabela = ""
    acao_auditoria = ""
    colunas: list[Coluna] = []
    campos_comparados: list[str] = []
    suporta_desfazer = True
    em_lote = False
    duplicado_e_skip = False
    carrega_remoto = False
    # linhas de exemplo para o CSV modelo
    exemplo: list[dict] = []

    def chave_linha(self, dados: dict) -> Optional[str]:
        """Chave para detectar a mesma linha repetida na grade."""
        return None

    def resolver(self, supabase, dados: dict) -> Resolucao:
        raise NotImplementedError

    def aplicar(self, supabase, item: ItemPrevia, contexto=None) -> Optional[EntradaDesfazer]:
        raise NotImplementedError

    def aplicar_lote(self, supabase, itens: list[ItemPrevia], contexto=None) -> list[ResultadoItem]:
        raise NotImplementedError

    def carregar_remoto(self, supabase) -> list[LinhaGrade]:
        """Registros já cadastrados, no formato da grade (usado no conflito de rascunho)."""
        return []


class EtapaEmpresas(Etapa):
    nome = "empresas"
    titulo = "Empresas"
    descricao = "Cadastre as empresas clientes. Linhas com CNPJ já cadastrado atualizam o registro."
    tabela = "empresas"
    acao_auditoria = "Setup Empresas"
    colunas = [
        Coluna("nome", "Nome", obrigatoria=True, placeholder="Nome fantasia"),
        Coluna("cnpj", "CNPJ", obrigatoria=True, placeholder="00.000.000/0001-00", validar=v_cnpj),
        Coluna("razao_social", "Razão Social", placeholder="Razão social completa"),
        Coluna("contato_email", "Email de Contato", tipo="email", placeholder="contato@empresa.com", validar=v_email),
        Coluna("contato_telefone", "Telefone", placeholder="(00) 00000-0000"),
    ]
    campos_comparados = ["nome", "razao_social", "contato_email", "contato_telefone"]
    carrega_remoto = True
    exemplo = [
        {
            "nome": "Empresa Exemplo",
            "cnpj": "11.222.333/0001-81",
            "razao_social": "Empresa Exemplo Ltda",
            "contato_email": "rh@exemplo.com.br",
            "contato_telefone": "(11) 99999-8888",
        }
    ]

    def chave_linha(self, dados):
        return normalizar_cnpj(dados.get("cnpj", "")) or None

    def registro(self, dados: dict) -> dict:
        return {
            "nome": (dados.get("nome") or "").strip(),
            "cnpj": formatar_cnpj(dados.get("cnpj", "")),
            "razao_social": _texto(dados.get("razao_social")),
            "contato_email": _texto(normalizar_email(dados.get("contato_email", ""))),
            "contato_telefone": _texto(formatar_telefone(dados.get("contato_telefone", ""))),
        }

    def resolver(self, supabase, dados):
        registro = self.registro(dados)
        existente = repo_empresas.buscar_empresa_por_cnpj(supabase, registro["cnpj"])
        return Resolucao(registro=registro, existente=existente)

    def aplicar(self, supabase, item, contexto=None):
        if item.acao == CREATE:
            nova = repo_empresas.inserir_empresa(supabase, item.registro)
            if not nova.get("id"):
                logger.warning("Empresa %s criada sem id no retorno; fora do desfazer", item.registro.get("cnpj"))
                return None
            return EntradaDesfazer(
                entidade=self.tabela,
                operacao=OP_CREATE,
                registro_id=nova["id"],
                estado_aplicado=dict(item.registro),
                identificador=item.registro["cnpj"],
            )

        campos = {a.campo: a.para for a in item.alteracoes}
        repo_empresas.atualizar_empresa(supabase, item.existente["id"], campos)
        return EntradaDesfazer(
            entidade=self.tabela,
            operacao=OP_UPDATE,
            registro_id=item.existente["id"],
            estado_anterior={a.campo: a.de for a in item.alteracoes},
            estado_aplicado=campos,
            identificador=item.registro["cnpj"],
        )

    def carregar_remoto(self, supabase):
        linhas = []
        for e in repo_empresas.listar_empresas(supabase):
            linhas.append(
                LinhaGrade(
                    id=gerar_id(),
                    dados={c.chave: "" if e.get(c.chave) is None else str(e.get(c.chave)) for c in self.colunas},
                )
            )
        return linhas


class EtapaUsuarios(Etapa):
    nome = "usuarios"
    titulo = "Usuários"
    descricao = (
        "Crie contas de acesso. O email será o login e o perfil é criado automaticamente. "
        "Oriente os usuários a trocar a senha no primeiro acesso."
    )
    tabela = "profiles"
    acao_auditoria = "Setup Usuarios"
    colunas = [
        Coluna("email", "Email", tipo="email", obrigatoria=True, placeholder="usuario@empresa.com", validar=v_email),
        Coluna("password", "Senha", tipo="password", obrigatoria=True, placeholder="Mínimo 6 caracteres", validar=v_senha_minima(6)),
        Coluna("nome_completo", "Nome Completo", obrigatoria=True, placeholder="Nome do usuário"),
    ]
    # conta de acesso não tem desfazer pelo cliente
    suporta_desfazer = False
    em_lote = True
    exemplo = [{"email": "maria@exemplo.com.br", "password": "troque123", "nome_completo": "Maria Souza"}]

    def chave_linha(self, dados):
        return normalizar_email(dados.get("email", "")) or None

    def resolver(self, supabase, dados):
        registro = {
            "email": normalizar_email(dados.get("email", "")),
            "password": dados.get("password", ""),
            "nome_completo": (dados.get("nome_completo") or "").strip(),
        }
        existente = repo_usuarios.buscar_perfil_por_email(supabase, registro["email"])
        return Resolucao(registro=registro, existente=existente, duplicado=existente is not None)

    def aplicar_lote(self, supabase, itens, contexto=None):
        corpo = {"users": [dict(i.registro) for i in itens]}
        if contexto is not None and contexto.empresa_id:
            corpo["empresaId"] = contexto.empresa_id

        try:
            resposta = invocar_funcao(supabase, FUNCAO_CRIAR_USUARIOS, corpo)
        except Exception as e:
            logger.error("Erro ao criar usuários: %s", e)
            mensagem = traduzir_erro(e)
            return [ResultadoItem(i.linha_id, i.acao, "error", mensagem) for i in itens]

        por_email = {normalizar_email(r.get("email", "")): r for r in resposta.get("results") or []}
        resultados = []
        for item in itens:
            r = por_email.get(item.registro["email"]) or {}
            if r.get("success"):
                resultados.append(ResultadoItem(item.linha_id, item.acao, "success"))
            else:
                resultados.append(ResultadoItem(item.linha_id, item.acao, "error", r.get("error") or "Erro desconhecido"))
        return resultados


class EtapaPerfis(Etapa):
    nome = "perfis"
    titulo = "Perfis"
    descricao = "Vincule usuários existentes às empresas e complete cargo e telefone."
    tabela = "profiles"
    acao_auditoria = "Setup Perfis"
    colunas = [
        Coluna("email", "Email", tipo="email", obrigatoria=True, placeholder="usuario@empresa.com", validar=v_email),
        Coluna("empresa_cnpj", "CNPJ da Empresa", obrigatoria=True, placeholder="00.000.000/0001-00", validar=v_cnpj),
        Coluna("cargo", "Cargo", placeholder="Ex: Gerente de RH"),
        Coluna("telefone", "Telefone", placeholder="(00) 00000-0000"),
    ]
    campos_comparados = ["empresa_id", "cargo", "telefone"]
    carrega_remoto = True
    exemplo = [
        {"email": "maria@exemplo.com.br", "empresa_cnpj": "11.222.333/0001-81", "cargo": "Gerente de RH", "telefone": "(11) 99999-8888"}
    ]

    def chave_linha(self, dados):
        return normalizar_email(dados.get("email", "")) or None

    def resolver(self, supabase, dados):
        erros = {}
        perfil = repo_usuarios.buscar_perfil_por_email(supabase, dados.get("email", ""))
        if perfil is None:
            erros["email"] = "Usuário não encontrado"
        empresa = repo_empresas.buscar_empresa_por_cnpj(supabase, dados.get("empresa_cnpj", ""))
        if empresa is None:
            erros["empresa_cnpj"] = "Empresa não encontrada"
        if erros:
            return Resolucao(erros=erros)

        registro = {
            "empresa_id": empresa["id"],
            "cargo": _texto(dados.get("cargo")),
            "telefone": _texto(formatar_telefone(dados.get("telefone", ""))),
        }
        return Resolucao(registro=registro, existente=perfil)

    def aplicar(self, supabase, item, contexto=None):
        campos = {a.campo: a.para for a in item.alteracoes}
        repo_usuarios.atualizar_perfil(supabase, item.existente["id"], campos)
        return EntradaDesfazer(
            entidade=self.tabela,
            operacao=OP_UPDATE,
            registro_id=item.existente["id"],
            estado_anterior={a.campo: a.de for a in item.alteracoes},
            estado_aplicado=campos,
            identificador=item.existente.get("email", ""),
        )

    def carregar_remoto(self, supabase):
        cnpjs = {e["id"]: e.get("cnpj") or "" for e in repo_empresas.listar_empresas(supabase)}
        linhas = []
        for p in repo_usuarios.listar_perfis(supabase):
            linhas.append(
                LinhaGrade(
                    id=gerar_id(),
                    dados={
                        "email": p.get("email") or "",
                        "empresa_cnpj": cnpjs.get(p.get("empresa_id"), ""),
                        "cargo": p.get("cargo") or "",
                        "telefone": p.get("telefone") or "",
                    },
                )
            )
        return linhas


class EtapaRoles(Etapa):
    nome = "roles"
    titulo = "Funções"
    descricao = "Atribua funções de acesso. Funções já atribuídas são ignoradas."
    tabela = "user_roles"
    acao_auditoria = "Setup Roles"
    colunas = [
        Coluna("email", "Email", tipo="email", obrigatoria=True, placeholder="usuario@empresa.com", validar=v_email),
        Coluna(
            "role",
            "Função",
            tipo="select",
            obrigatoria=True,
            placeholder="Selecione uma função",
            opcoes=[(p, PAPEIS_ROTULOS[p]) for p in PAPEIS],
            validar=v_opcao(list(PAPEIS)),
        ),
    ]
    duplicado_e_skip = True
    carrega_remoto = True
    exemplo = [{"email": "maria@exemplo.com.br", "role": "rh_gestor"}]

    def chave_linha(self, dados):
        email = normalizar_email(dados.get("email", ""))
        return f"{email}:{dados.get('role', '')}" if email else None

    def resolver(self, supabase, dados):
        perfil = repo_usuarios.buscar_perfil_por_email(supabase, dados.get("email", ""))
        if perfil is None:
            return Resolucao(erros={"email": "Usuário não encontrado"})
        registro = {"user_id": perfil["id"], "role": dados.get("role", "")}
        existente = repo_usuarios.buscar_papel(supabase, perfil["id"], registro["role"])
        return Resolucao(registro=registro, existente=existente, duplicado=existente is not None)

    def aplicar(self, supabase, item, contexto=None):
        novo = repo_usuarios.inserir_papel(supabase, item.registro["user_id"], item.registro["role"])
        if not novo.get("id"):
            return None
        return EntradaDesfazer(
            entidade=self.tabela,
            operacao=OP_CREATE,
            registro_id=novo["id"],
            estado_aplicado=dict(item.registro),
            identificador=f"{item.dados.get('email', '')} ({item.registro['role']})",
        )

    def carregar_remoto(self, supabase):
        return [
            LinhaGrade(id=gerar_id(), dados={"email": p["email"] or "", "role": p["role"] or ""})
            for p in repo_usuarios.listar_papeis_atribuidos(supabase)
        ]


ETAPAS: dict[str, Etapa] = {
    e.nome: e for e in (EtapaEmpresas(), EtapaUsuarios(), EtapaPerfis(), EtapaRoles())
}


def obter_etapa(nome: str) -> Etapa:
    try:
        return ETAPAS[nome]
    except KeyError:
        raise ValueError(f"Etapa desconhecida: {nome}") from None
