import json

import requests

from src.core.erros import (
    MSG_CONEXAO,
    MSG_CREDITOS_IA,
    MSG_DUPLICADO,
    MSG_LIMITE_IA,
    MSG_PERMISSAO,
    MSG_RESPOSTA_IA,
    MSG_SESSAO,
    ErroRemoto,
    eh_duplicado,
    traduzir_erro,
)


def test_permissao_por_codigo(erro_api):
    assert traduzir_erro(erro_api("new row violates row-level security policy", code="42501")) == MSG_PERMISSAO


def test_sessao_expirada(erro_api):
    assert traduzir_erro(erro_api("JWT expired", code="PGRST301")) == MSG_SESSAO
    assert traduzir_erro(ErroRemoto("Unauthorized", status=401)) == MSG_SESSAO


def test_limites_da_ia():
    assert traduzir_erro(ErroRemoto("Too Many Requests", status=429)) == MSG_LIMITE_IA
    assert traduzir_erro(ErroRemoto("Payment Required", status=402)) == MSG_CREDITOS_IA
    assert traduzir_erro(Exception("rate limit exceeded")) == MSG_LIMITE_IA


def test_duplicado(erro_api):
    erro = erro_api('duplicate key value violates unique constraint "user_roles_user_id_role_key"', code="23505")
    assert eh_duplicado(erro)
    assert traduzir_erro(erro) == MSG_DUPLICADO
    assert not eh_duplicado(Exception("outra coisa"))


def test_resposta_invalida_da_ia():
    erro = json.JSONDecodeError("Expecting property name", "{sem json", 1)
    assert traduzir_erro(erro) == MSG_RESPOSTA_IA


def test_falha_de_conexao():
    assert traduzir_erro(requests.ConnectionError("boom")) == MSG_CONEXAO


def test_mensagem_original_quando_desconhecido():
    assert traduzir_erro(ValueError("CNPJ já usado por outra empresa")) == "CNPJ já usado por outra empresa"
    assert traduzir_erro(ValueError("")) == "Erro desconhecido"
