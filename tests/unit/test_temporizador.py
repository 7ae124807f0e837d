from src.services.grade import GradeEditavel
from src.services.etapas import obter_etapa
from src.services.temporizador import Debouncer


def test_varias_mudancas_disparam_uma_vez_com_o_ultimo_valor(timers):
    chamadas = []
    debouncer = Debouncer(1.0, chamadas.append, timer_factory=timers)

    for i in range(5):
        debouncer.agendar(i)

    assert len(timers.ativos) == 1
    assert timers.ativos[0].atraso == 1.0
    assert timers.ativos[0].daemon is True
    for t in timers.timers:
        t.disparar()
    assert chamadas == [4]
    assert debouncer.pendente is False


def test_timer_antigo_nao_dispara_depois_de_rearmar(timers):
    chamadas = []
    debouncer = Debouncer(1.0, chamadas.append, timer_factory=timers)
    debouncer.agendar("a")
    primeiro = timers.timers[0]
    debouncer.agendar("b")

    # cancelamento chegou tarde: o callback antigo roda mas é descartado
    primeiro.cancelado = False
    primeiro.disparar()
    assert chamadas == []

    timers.timers[1].disparar()
    assert chamadas == ["b"]


def test_erro_no_callback_nao_propaga(timers):
    def falhar(_):
        raise OSError("disco cheio")

    debouncer = Debouncer(1.0, falhar, timer_factory=timers)
    debouncer.agendar("x")
    timers.timers[0].disparar()
    assert debouncer.pendente is False


def test_grade_salva_uma_vez_apos_varias_edicoes(timers):
    salvos = []
    grade = GradeEditavel(obter_etapa("roles").colunas, ao_salvar=salvos.append, atraso_autosave_ms=1000, timer_factory=timers)
    linha = grade.adicionar_linha()
    grade.atualizar_celula(linha.id, "email", "m")
    grade.atualizar_celula(linha.id, "email", "maria@empresa.com")
    grade.atualizar_celula(linha.id, "role", "rh_gestor")

    for t in timers.timers:
        t.disparar()
    assert len(salvos) == 1
    assert salvos[0][0].dados == {"email": "maria@empresa.com", "role": "rh_gestor"}
