import pandas as pd
import pytest

from src.services.etapas import obter_etapa
from src.services.grade import ERRO_GERAL, GradeEditavel


def _grade_empresas(**kw):
    return GradeEditavel(obter_etapa("empresas").colunas, **kw)


def test_colar_varias_linhas_com_tab_e_ponto_e_virgula():
    grade = _grade_empresas()
    texto = "Empresa A\t11.222.333/0001-81\tA Ltda\r\nEmpresa B;11.444.777/0001-61;B S.A.;rh@b.com;11999998888\n\n"

    assert grade.colar(texto) == 2
    a, b = grade.linhas
    assert a.dados["nome"] == "Empresa A"
    assert a.dados["razao_social"] == "A Ltda"
    assert a.dados["contato_email"] == ""
    assert b.dados["contato_email"] == "rh@b.com"
    assert not a.erros and not b.erros


def test_colar_uma_linha_nao_faz_nada():
    grade = _grade_empresas()
    assert grade.colar("Empresa A\t11.222.333/0001-81") == 0
    assert len(grade) == 0


def test_colar_valida_cada_celula():
    grade = _grade_empresas()
    grade.colar("Empresa A\t123\n\t11.222.333/0001-81\tX\tnao-e-email")
    a, b = grade.linhas
    assert a.erros == {"cnpj": "CNPJ inválido"}
    assert b.erros["nome"] == "Nome é obrigatório"
    assert b.erros["contato_email"] == "Email inválido"


def test_atualizar_celula_revalida_e_limpa_status():
    grade = _grade_empresas()
    linha = grade.adicionar_linha()
    linha = grade.atualizar_celula(linha.id, "cnpj", "999")
    assert linha.erros == {"cnpj": "CNPJ inválido"}

    grade.marcar_status({linha.id: ("error", "Falhou no servidor")})
    assert grade.linhas[0].erros[ERRO_GERAL] == "Falhou no servidor"

    linha = grade.atualizar_celula(linha.id, "cnpj", "11222333000181")
    assert "cnpj" not in linha.erros
    assert ERRO_GERAL not in linha.erros
    assert linha.status is None


def test_tab_na_ultima_celula_cria_linha():
    grade = _grade_empresas()
    grade.adicionar_linha()
    ultima_col = len(grade.colunas) - 1

    assert grade.navegar("Tab", 0, 0) == (0, 1)
    assert grade.navegar("Tab", 0, ultima_col) == (1, 0)
    assert len(grade) == 2


def test_shift_tab_volta_para_linha_anterior():
    grade = _grade_empresas()
    grade.adicionar_linhas(2)
    ultima_col = len(grade.colunas) - 1
    assert grade.navegar("Tab", 1, 0, shift=True) == (0, ultima_col)
    assert grade.navegar("Tab", 0, 0, shift=True) == (0, 0)


def test_setas_ficam_dentro_da_grade():
    grade = _grade_empresas()
    grade.adicionar_linhas(2)
    assert grade.navegar("ArrowDown", 1, 2) == (1, 2)
    assert grade.navegar("ArrowDown", 0, 2) == (1, 2)
    assert grade.navegar("ArrowUp", 0, 2) == (0, 2)
    assert grade.navegar("Enter", 1, 2) == (1, 2)


def test_aplicar_correcoes_ignora_posicoes_inexistentes():
    grade = _grade_empresas()
    grade.adicionar_linha()
    aplicadas = grade.aplicar_correcoes(
        [
            {"row": 0, "field": "cnpj", "value": "11.222.333/0001-81"},
            {"row": 5, "field": "cnpj", "value": "x"},
            {"row": 0, "field": "inexistente", "value": "x"},
        ]
    )
    assert aplicadas == 1
    assert grade.linhas[0].dados["cnpj"] == "11.222.333/0001-81"


def test_sincronizar_dataframe_do_editor():
    grade = _grade_empresas()
    grade.colar("Empresa A\t11.222.333/0001-81\nEmpresa B\t11.444.777/0001-61")
    df = grade.para_dataframe()

    df.loc[0, "nome"] = "Empresa A2"
    df = df.drop(index=1)
    df = pd.concat([df, pd.DataFrame([{"id": None, "nome": "Nova", "cnpj": None}])], ignore_index=True)

    assert grade.sincronizar_dataframe(df) is True
    nomes = [l.dados["nome"] for l in grade.linhas]
    assert nomes == ["Empresa A2", "Nova"]
    assert grade.linhas[1].dados["cnpj"] == ""
    assert grade.sincronizar_dataframe(grade.para_dataframe()) is False


def test_autosave_recebe_copia_das_linhas(timers):
    salvos = []
    grade = _grade_empresas(ao_salvar=salvos.append, timer_factory=timers)
    grade.colar("A\t11.222.333/0001-81\nB\t11.444.777/0001-61")

    timers.ativos[-1].disparar()
    assert [l.dados["nome"] for l in salvos[0]] == ["A", "B"]
    salvos[0][0].dados["nome"] = "alterado fora"
    assert grade.linhas[0].dados["nome"] == "A"


def test_encerrar_cancela_autosave_pendente(timers):
    salvos = []
    grade = _grade_empresas(ao_salvar=salvos.append, timer_factory=timers)
    grade.adicionar_linha()
    grade.encerrar()
    for t in timers.timers:
        t.disparar()
    assert salvos == []


def test_marcar_status_rejeita_status_desconhecido():
    grade = _grade_empresas()
    linha = grade.adicionar_linha()

    with pytest.raises(ValueError):
        grade.marcar_status({linha.id: ("applied", None)})
    assert grade.linhas[0].status is None
