import pytest

from src.services.armazenamento import ArmazenamentoMemoria
from src.services.desfazer import OP_CREATE, OP_UPDATE, EntradaDesfazer, RegistroDesfazer, compensar


@pytest.fixture
def registro(relogio):
    return RegistroDesfazer(ArmazenamentoMemoria(), relogio=relogio)


def _criada(id_, cnpj="11.222.333/0001-81"):
    return EntradaDesfazer(entidade="empresas", operacao=OP_CREATE, registro_id=id_, estado_aplicado={"cnpj": cnpj}, identificador=cnpj)


def test_snapshot_expira_em_dois_minutos(registro, relogio):
    snapshot_id = registro.criar_snapshot("empresas", [_criada("e1")])
    snapshot = registro.obter_snapshot(snapshot_id)

    assert snapshot_id.startswith("snapshot_")
    assert snapshot.expira_em == relogio.agora + 120
    assert registro.segundos_restantes(snapshot_id) == 120

    relogio.avancar(119)
    assert registro.obter_snapshot(snapshot_id) is not None
    relogio.avancar(1)
    assert registro.obter_snapshot(snapshot_id) is None
    assert registro.snapshots_ativos() == []


def test_desfazer_apos_expirar_nao_toca_no_banco(registro, relogio, supabase):
    supabase.tabelas["empresas"] = [{"id": "e1", "nome": "A"}]
    snapshot_id = registro.criar_snapshot("empresas", [_criada("e1")])
    relogio.avancar(121)

    resultado = registro.desfazer(snapshot_id, supabase)
    assert resultado.expirado is True
    assert resultado.sucesso is False
    assert supabase.tabelas["empresas"] == [{"id": "e1", "nome": "A"}]


def test_desfazer_create_apaga_e_update_restaura(registro, supabase):
    supabase.tabelas["empresas"] = [
        {"id": "e1", "nome": "Nova", "cnpj": "11.222.333/0001-81"},
        {"id": "e2", "nome": "Nome novo", "cnpj": "11.444.777/0001-61", "contato_email": "novo@x.com"},
    ]
    atualizada = EntradaDesfazer(
        entidade="empresas",
        operacao=OP_UPDATE,
        registro_id="e2",
        estado_anterior={"nome": "Nome antigo", "contato_email": None},
        estado_aplicado={"nome": "Nome novo", "contato_email": "novo@x.com"},
    )
    snapshot_id = registro.criar_snapshot("empresas", [_criada("e1"), atualizada])

    resultado = registro.desfazer(snapshot_id, supabase)

    assert resultado.sucesso
    assert len(resultado.desfeitos) == 2
    assert supabase.tabelas["empresas"] == [
        {"id": "e2", "nome": "Nome antigo", "cnpj": "11.444.777/0001-61", "contato_email": None}
    ]
    assert registro.obter_snapshot(snapshot_id) is None


def test_falha_parcial_mantem_so_o_que_falhou(registro, supabase, erro_api, relogio):
    supabase.tabelas["user_roles"] = [{"id": "r1"}, {"id": "r2"}]
    supabase.falhar("user_roles", "delete", erro_api("permission denied for table user_roles", code="42501"))
    entradas = [
        _criada("e1"),
        EntradaDesfazer(entidade="user_roles", operacao=OP_CREATE, registro_id="r1", identificador="m@x.com (rh_gestor)"),
    ]
    snapshot_id = registro.criar_snapshot("roles", entradas)
    expira_em = registro.obter_snapshot(snapshot_id).expira_em

    resultado = registro.desfazer(snapshot_id, supabase)

    assert not resultado.sucesso
    assert [e.registro_id for e in resultado.desfeitos] == ["e1"]
    assert [f.entrada.registro_id for f in resultado.falhas] == ["r1"]
    assert resultado.falhas[0].mensagem.startswith("Permissão negada")

    restante = registro.obter_snapshot(snapshot_id)
    assert [e.registro_id for e in restante.entradas] == ["r1"]
    assert restante.expira_em == expira_em


def test_snapshots_independentes(registro, relogio):
    primeiro = registro.criar_snapshot("empresas", [_criada("e1")])
    relogio.avancar(60)
    segundo = registro.criar_snapshot("roles", [_criada("e2")])
    relogio.avancar(61)

    assert registro.obter_snapshot(primeiro) is None
    assert registro.obter_snapshot(segundo) is not None


def test_compensar_operacao_desconhecida(supabase):
    with pytest.raises(ValueError):
        compensar(supabase, EntradaDesfazer(entidade="empresas", operacao="delete", registro_id="e1"))


def test_dispensar_snapshot_nao_toca_no_banco(registro, supabase):
    supabase.tabelas["empresas"] = [{"id": "e1", "nome": "A"}]
    snapshot_id = registro.criar_snapshot("empresas", [_criada("e1")])

    registro.remover_snapshot(snapshot_id)

    assert registro.obter_snapshot(snapshot_id) is None
    assert registro.snapshots_ativos() == []
    assert supabase.tabelas["empresas"] == [{"id": "e1", "nome": "A"}]
    assert supabase.chamadas == []
