import pytest

from src.core.config import FUNCAO_CRIAR_USUARIOS
from src.core.erros import ErroRemoto
from src.services.armazenamento import ArmazenamentoMemoria
from src.services.desfazer import OP_UPDATE, RegistroDesfazer
from src.services.etapas import ETAPAS, obter_etapa
from src.services.grade import LinhaGrade
from src.services.previa import CREATE, ERROR, SKIP, UPDATE, aplicar_plano, montar_previa


@pytest.fixture
def banco(supabase):
    supabase.tabelas.update(
        {
            "empresas": [{"id": "emp-1", "nome": "Empresa Um", "cnpj": "11.222.333/0001-81"}],
            "profiles": [
                {"id": "u1", "email": "maria@x.com", "nome_completo": "Maria", "empresa_id": None, "cargo": None, "telefone": None},
                {"id": "u2", "email": "joao@x.com", "nome_completo": "João", "empresa_id": "emp-1", "cargo": "Analista", "telefone": None},
            ],
            "user_roles": [{"id": "r1", "user_id": "u2", "role": "rh_gestor"}],
        }
    )
    return supabase


def _linhas(*registros):
    return [LinhaGrade(id=f"l{i + 1}", dados=d) for i, d in enumerate(registros)]


def test_ordem_das_etapas():
    assert list(ETAPAS) == ["empresas", "usuarios", "perfis", "roles"]
    with pytest.raises(ValueError):
        obter_etapa("beneficiarios")


# ----------------------------
# Roles
# ----------------------------
def test_roles_ja_atribuida_e_skip(banco):
    etapa = obter_etapa("roles")
    plano = montar_previa(
        etapa,
        _linhas(
            {"email": "joao@x.com", "role": "rh_gestor"},
            {"email": "maria@x.com", "role": "admin_empresa"},
            {"email": "ninguem@x.com", "role": "rh_gestor"},
            {"email": "maria@x.com", "role": "dono"},
        ),
        banco,
    )
    assert [i.acao for i in plano.itens] == [SKIP, CREATE, ERROR, ERROR]
    assert plano.itens[2].erros == {"email": "Usuário não encontrado"}


def test_roles_duplicado_na_gravacao_vira_skip(banco, contexto, erro_api):
    banco.falhar("user_roles", "insert", erro_api("duplicate key value violates unique constraint", code="23505"))
    etapa = obter_etapa("roles")
    plano = montar_previa(etapa, _linhas({"email": "maria@x.com", "role": "admin_empresa"}), banco)
    assert plano.itens[0].acao == CREATE

    resultado = aplicar_plano(plano, etapa, banco, RegistroDesfazer(ArmazenamentoMemoria()), contexto)

    assert resultado.status_por_linha() == {"l1": ("success", "Já existente")}
    assert resultado.ignorados == 1
    assert resultado.snapshot_id is None


def test_roles_criada_entra_no_desfazer(banco, contexto):
    etapa = obter_etapa("roles")
    registro = RegistroDesfazer(ArmazenamentoMemoria())
    plano = montar_previa(etapa, _linhas({"email": "maria@x.com", "role": "admin_empresa"}), banco)

    resultado = aplicar_plano(plano, etapa, banco, registro, contexto)

    nova = next(r for r in banco.tabelas["user_roles"] if r["user_id"] == "u1")
    snapshot = registro.obter_snapshot(resultado.snapshot_id)
    assert [e.registro_id for e in snapshot.entradas] == [nova["id"]]
    assert snapshot.entradas[0].identificador == "maria@x.com (admin_empresa)"


# ----------------------------
# Perfis
# ----------------------------
def test_perfis_usuario_ou_empresa_inexistente(banco):
    plano = montar_previa(
        obter_etapa("perfis"),
        _linhas(
            {"email": "ninguem@x.com", "empresa_cnpj": "11.222.333/0001-81", "cargo": "", "telefone": ""},
            {"email": "maria@x.com", "empresa_cnpj": "11.444.777/0001-61", "cargo": "", "telefone": ""},
        ),
        banco,
    )
    assert plano.itens[0].erros == {"email": "Usuário não encontrado"}
    assert plano.itens[1].erros == {"empresa_cnpj": "Empresa não encontrada"}


def test_perfis_atualiza_so_o_que_mudou_e_guarda_estado_anterior(banco, contexto):
    etapa = obter_etapa("perfis")
    registro = RegistroDesfazer(ArmazenamentoMemoria())
    plano = montar_previa(
        etapa,
        _linhas(
            {"email": "Maria@X.com", "empresa_cnpj": "11222333000181", "cargo": "Gerente de RH", "telefone": "11999998888"},
            {"email": "joao@x.com", "empresa_cnpj": "11.222.333/0001-81", "cargo": "Analista", "telefone": ""},
        ),
        banco,
    )
    assert [i.acao for i in plano.itens] == [UPDATE, SKIP]

    resultado = aplicar_plano(plano, etapa, banco, registro, contexto)

    maria = next(p for p in banco.tabelas["profiles"] if p["id"] == "u1")
    assert maria["empresa_id"] == "emp-1"
    assert maria["cargo"] == "Gerente de RH"
    assert maria["telefone"] == "(11) 99999-8888"
    entrada = registro.obter_snapshot(resultado.snapshot_id).entradas[0]
    assert entrada.operacao == OP_UPDATE
    assert entrada.estado_anterior == {"empresa_id": None, "cargo": None, "telefone": None}


# ----------------------------
# Usuários
# ----------------------------
def test_usuarios_em_lote(banco, contexto):
    banco.functions.respostas[FUNCAO_CRIAR_USUARIOS] = {
        "success": True,
        "results": [
            {"email": "ana@x.com", "success": True, "userId": "u3"},
            {"email": "pedro@x.com", "success": False, "error": "Email já registrado"},
        ],
        "summary": {"total": 2, "success": 1, "failed": 1},
    }
    etapa = obter_etapa("usuarios")
    plano = montar_previa(
        etapa,
        _linhas(
            {"email": "Ana@x.com", "password": "segredo1", "nome_completo": "Ana"},
            {"email": "pedro@x.com", "password": "segredo2", "nome_completo": "Pedro"},
            {"email": "maria@x.com", "password": "segredo3", "nome_completo": "Maria"},
            {"email": "curta@x.com", "password": "123", "nome_completo": "Curta"},
        ),
        banco,
    )
    assert [i.acao for i in plano.itens] == [CREATE, CREATE, SKIP, ERROR]

    resultado = aplicar_plano(plano, etapa, banco, RegistroDesfazer(ArmazenamentoMemoria()), contexto)

    nome, corpo = banco.functions.chamadas[0]
    assert nome == FUNCAO_CRIAR_USUARIOS
    assert corpo["empresaId"] == "emp-1"
    assert [u["email"] for u in corpo["users"]] == ["ana@x.com", "pedro@x.com"]
    assert resultado.status_por_linha() == {
        "l1": ("success", None),
        "l2": ("error", "Email já registrado"),
        "l3": ("success", "Sem alterações"),
        "l4": ("error", "Mínimo 6 caracteres"),
    }
    assert resultado.snapshot_id is None


def test_usuarios_falha_da_funcao_marca_todas(banco, contexto):
    banco.functions.respostas[FUNCAO_CRIAR_USUARIOS] = ErroRemoto("Forbidden", status=403)
    etapa = obter_etapa("usuarios")
    plano = montar_previa(etapa, _linhas({"email": "ana@x.com", "password": "segredo1", "nome_completo": "Ana"}), banco)

    resultado = aplicar_plano(plano, etapa, banco, None, contexto)
    status, mensagem = resultado.status_por_linha()["l1"]
    assert status == "error"
    assert mensagem.startswith("Permissão negada")


# ----------------------------
# Empresas
# ----------------------------
def test_empresas_aplicacao_parcial_sem_rollback(banco, contexto, erro_api):
    banco.falhar(
        "empresas",
        "insert",
        erro_api("permission denied for table empresas", code="42501"),
        quando=lambda payload: payload["nome"] == "Bloqueada",
    )
    etapa = obter_etapa("empresas")
    registro = RegistroDesfazer(ArmazenamentoMemoria())
    plano = montar_previa(
        etapa,
        _linhas(
            {"nome": "Nova", "cnpj": "11.444.777/0001-61", "contato_email": "RH@Nova.com"},
            {"nome": "Bloqueada", "cnpj": "34.028.316/0001-03"},
            {"nome": "Empresa Um Renomeada", "cnpj": "11.222.333/0001-81"},
        ),
        banco,
    )
    assert [i.acao for i in plano.itens] == [CREATE, CREATE, UPDATE]

    resultado = aplicar_plano(plano, etapa, banco, registro, contexto)

    assert [s for s, _ in resultado.status_por_linha().values()] == ["success", "error", "success"]
    assert resultado.criados == 1 and resultado.atualizados == 1 and resultado.erros == 1
    nova = next(e for e in banco.tabelas["empresas"] if e["nome"] == "Nova")
    assert nova["contato_email"] == "rh@nova.com"
    snapshot = registro.obter_snapshot(resultado.snapshot_id)
    assert [e.operacao for e in snapshot.entradas] == ["create", "update"]
    assert snapshot.entradas[1].estado_anterior == {"nome": "Empresa Um"}

    auditoria = banco.tabelas["logs_auditoria"][-1]
    assert auditoria["acao"] == "Setup Empresas"
    assert auditoria["detalhes"]["criados"] == 1
    assert auditoria["detalhes"]["snapshot_id"] == resultado.snapshot_id


def test_carregar_remoto_roles(banco):
    linhas = obter_etapa("roles").carregar_remoto(banco)
    # sem o join de profiles no banco falso, o e-mail vem vazio
    assert [l.dados["role"] for l in linhas] == ["rh_gestor"]
