from src.services.etapas import obter_etapa
from src.services.grade import ERRO_GERAL, LinhaGrade
from src.services.previa import CREATE, ERROR, SKIP, UPDATE, PlanoAplicacao, classificar, montar_previa


def test_erro_tem_precedencia():
    acao, _ = classificar({"cnpj": "CNPJ inválido"}, {"id": "e1"}, {"nome": "A"}, ["nome"], duplicado=True)
    assert acao == ERROR


def test_sem_correspondente_e_create():
    assert classificar({}, None, {"nome": "A"}, ["nome"])[0] == CREATE


def test_duplicado_e_skip():
    assert classificar({}, {"id": "r1"}, {"role": "rh_gestor"}, [], duplicado=True)[0] == SKIP


def test_sem_diferenca_e_skip_ignorando_espacos_e_nulos():
    existente = {"nome": "Empresa A", "razao_social": None}
    dados = {"nome": " Empresa A ", "razao_social": ""}
    assert classificar({}, existente, dados, ["nome", "razao_social"])[0] == SKIP


def test_com_diferenca_e_update_com_alteracoes():
    acao, alteracoes = classificar({}, {"nome": "A", "cargo": "Analista"}, {"nome": "A", "cargo": "Gerente"}, ["nome", "cargo"])
    assert acao == UPDATE
    assert [(a.campo, a.de, a.para) for a in alteracoes] == [("cargo", "Analista", "Gerente")]


def test_plano_so_com_erros_nao_pode_aplicar():
    assert PlanoAplicacao(itens=[]).pode_aplicar is False


def test_montar_previa_empresas(supabase):
    supabase.tabelas["empresas"] = [
        {"id": "e1", "nome": "Empresa A", "cnpj": "11.222.333/0001-81", "razao_social": None, "contato_email": None, "contato_telefone": None}
    ]
    etapa = obter_etapa("empresas")
    linhas = [
        LinhaGrade(id="l1", dados={"nome": "Empresa A", "cnpj": "11222333000181"}),
        LinhaGrade(id="l2", dados={"nome": "Empresa A Renomeada", "cnpj": "11.222.333/0001-81"}),
        LinhaGrade(id="l3", dados={"nome": "Nova", "cnpj": "11.444.777/0001-61"}),
        LinhaGrade(id="l4", dados={"nome": "", "cnpj": "11.444.777/0001-62"}),
    ]

    plano = montar_previa(etapa, linhas, supabase)

    assert [i.acao for i in plano.itens] == [SKIP, ERROR, CREATE, ERROR]
    assert plano.itens[1].erros[ERRO_GERAL] == "Repetida na planilha (linha 1)"
    assert set(plano.itens[3].erros) == {"nome", "cnpj"}
    assert plano.contagens() == {CREATE: 1, UPDATE: 0, SKIP: 1, ERROR: 2}
    assert plano.pode_aplicar
    assert [i.linha_id for i in plano.pendentes()] == ["l3"]
    assert plano.itens[2].registro["cnpj"] == "11.444.777/0001-61"


def test_montar_previa_nao_grava_nada(supabase):
    etapa = obter_etapa("empresas")
    montar_previa(etapa, [LinhaGrade(id="l1", dados={"nome": "Nova", "cnpj": "11.444.777/0001-61"})], supabase)
    assert supabase.escritas("empresas", "insert") == []
    assert supabase.escritas("empresas", "update") == []


def test_falha_na_busca_vira_erro_da_linha(supabase, erro_api):
    supabase.falhar("empresas", "select", erro_api("JWT expired", code="PGRST301"))
    plano = montar_previa(obter_etapa("empresas"), [LinhaGrade(id="l1", dados={"nome": "A", "cnpj": "11.444.777/0001-61"})], supabase)
    item = plano.itens[0]
    assert item.acao == ERROR
    assert item.motivo == "Sessão expirada. Faça login novamente."
