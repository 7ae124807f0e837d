"""Fluxo completo de uma etapa: colar -> rascunho -> prévia -> aplicar -> desfazer."""
from src.services.armazenamento import ArmazenamentoMemoria
from src.services.desfazer import RegistroDesfazer
from src.services.etapas import obter_etapa
from src.services.grade import ERRO_GERAL, GradeEditavel
from src.services.previa import CREATE, ERROR, SKIP, UPDATE, aplicar_plano, montar_previa
from src.services.rascunho import RascunhoSetup

COLAGEM = (
    "Alfa Benefícios\t11.222.333/0001-81\tAlfa Ltda\trh@alfa.com\n"
    "\t11.444.777/0001-61\tSem Nome S.A.\n"
    "Beta Saúde;34.028.316/0001-03;Beta Saúde S.A.;;11988887777\n"
)


def test_setup_empresas_ponta_a_ponta(supabase, contexto, timers, relogio):
    etapa = obter_etapa("empresas")
    sessao = {}
    rascunho = RascunhoSetup(ArmazenamentoMemoria(sessao), ArmazenamentoMemoria(sessao, namespace="_flags"))
    grade = GradeEditavel(
        etapa.colunas,
        ao_salvar=lambda linhas: rascunho.salvar(etapa.nome, linhas),
        timer_factory=timers,
    )

    assert grade.colar(COLAGEM) == 3
    assert grade.linhas[1].erros == {"nome": "Nome é obrigatório"}

    # autosave só grava depois do atraso
    assert not rascunho.tem_rascunho(etapa.nome)
    timers.ativos[-1].disparar()
    assert rascunho.tem_rascunho(etapa.nome)

    plano = montar_previa(etapa, grade.linhas, supabase)
    assert plano.contagens() == {CREATE: 2, UPDATE: 0, SKIP: 0, ERROR: 1}
    assert supabase.tabelas.get("empresas", []) == []

    registro = RegistroDesfazer(ArmazenamentoMemoria(sessao), relogio=relogio)
    resultado = aplicar_plano(plano, etapa, supabase, registro, contexto)
    grade.marcar_status(resultado.status_por_linha())

    assert [l.status for l in grade.linhas] == ["success", "error", "success"]
    assert grade.linhas[1].erros[ERRO_GERAL] == "Nome é obrigatório"
    assert sorted(e["nome"] for e in supabase.tabelas["empresas"]) == ["Alfa Benefícios", "Beta Saúde"]
    beta = next(e for e in supabase.tabelas["empresas"] if e["nome"] == "Beta Saúde")
    assert beta["contato_email"] is None
    assert beta["contato_telefone"] == "(11) 98888-7777"

    snapshot = registro.obter_snapshot(resultado.snapshot_id)
    assert len(snapshot.entradas) == 2
    assert snapshot.expira_em == relogio.agora + 120

    relogio.avancar(30)
    desfeito = registro.desfazer(resultado.snapshot_id, supabase)

    assert desfeito.sucesso
    assert supabase.tabelas["empresas"] == []
    assert registro.obter_snapshot(resultado.snapshot_id) is None
    acoes = [log["acao"] for log in supabase.tabelas["logs_auditoria"]]
    assert acoes == ["Setup Empresas"]

    grade.encerrar()


def test_reaplicar_a_mesma_planilha_nao_duplica(supabase, contexto):
    etapa = obter_etapa("empresas")
    grade = GradeEditavel(etapa.colunas)
    grade.colar(COLAGEM)

    aplicar_plano(montar_previa(etapa, grade.linhas, supabase), etapa, supabase, None, contexto)
    segundo = montar_previa(etapa, grade.linhas, supabase)

    assert [i.acao for i in segundo.itens] == [SKIP, ERROR, SKIP]
    assert segundo.pendentes() == []
    assert len(supabase.tabelas["empresas"]) == 2
