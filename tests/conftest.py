import copy
import uuid

import pytest

from src.core.contexto import ContextoAplicacao


class FakeAPIError(Exception):
    """Mesmo formato do postgrest.APIError: mensagem + código."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


class FakeResposta:
    def __init__(self, data):
        self.data = data


class FakeConsulta:
    def __init__(self, banco, tabela):
        self.banco = banco
        self.tabela = tabela
        self.operacao = "select"
        self.payload = None
        self.filtros = []
        self.ordem = None
        self.limite = None

    # leitura/escrita
    def select(self, *_campos, **_kw):
        return self

    def insert(self, payload):
        self.operacao = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.operacao = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operacao = "delete"
        return self

    # filtros
    def eq(self, campo, valor):
        self.filtros.append(lambda r: r.get(campo) == valor)
        return self

    def neq(self, campo, valor):
        self.filtros.append(lambda r: r.get(campo) != valor)
        return self

    def in_(self, campo, valores):
        valores = list(valores)
        self.filtros.append(lambda r: r.get(campo) in valores)
        return self

    def order(self, campo, desc=False):
        self.ordem = (campo, desc)
        return self

    def limit(self, n):
        self.limite = n
        return self

    def _casa(self, registro):
        return all(f(registro) for f in self.filtros)

    def execute(self):
        self.banco.chamadas.append((self.tabela, self.operacao, copy.deepcopy(self.payload)))
        for tabela, operacao, erro, quando in self.banco.falhas:
            if tabela == self.tabela and operacao == self.operacao and (quando is None or quando(self.payload)):
                raise erro

        linhas = self.banco.tabelas.setdefault(self.tabela, [])
        if self.operacao == "insert":
            novos = self.payload if isinstance(self.payload, list) else [self.payload]
            inseridos = []
            for n in novos:
                registro = {"id": str(uuid.uuid4()), **copy.deepcopy(n)}
                linhas.append(registro)
                inseridos.append(copy.deepcopy(registro))
            return FakeResposta(inseridos)

        if self.operacao == "update":
            alterados = []
            for r in linhas:
                if self._casa(r):
                    r.update(copy.deepcopy(self.payload))
                    alterados.append(copy.deepcopy(r))
            return FakeResposta(alterados)

        if self.operacao == "delete":
            removidos = [r for r in linhas if self._casa(r)]
            self.banco.tabelas[self.tabela] = [r for r in linhas if not self._casa(r)]
            return FakeResposta(copy.deepcopy(removidos))

        resultado = [copy.deepcopy(r) for r in linhas if self._casa(r)]
        if self.ordem:
            campo, desc = self.ordem
            resultado.sort(key=lambda r: (r.get(campo) is None, r.get(campo) or ""), reverse=desc)
        if self.limite is not None:
            resultado = resultado[: self.limite]
        return FakeResposta(resultado)


class FakeFunctions:
    def __init__(self):
        self.respostas = {}
        self.chamadas = []

    def invoke(self, nome, invoke_options=None):
        corpo = (invoke_options or {}).get("body")
        self.chamadas.append((nome, copy.deepcopy(corpo)))
        resposta = self.respostas.get(nome, {})
        if isinstance(resposta, Exception):
            raise resposta
        if callable(resposta):
            return resposta(corpo)
        return copy.deepcopy(resposta)


class FakeBucket:
    def __init__(self, storage, bucket):
        self.storage = storage
        self.bucket = bucket

    def upload(self, path, file, file_options=None):
        if self.storage.erro is not None:
            raise self.storage.erro
        self.storage.enviados.append((self.bucket, path, file_options))
        return {"path": path}


class FakeStorage:
    def __init__(self):
        self.enviados = []
        self.erro = None

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self, tabelas=None):
        self.tabelas = copy.deepcopy(tabelas or {})
        self.chamadas = []
        self.falhas = []
        self.functions = FakeFunctions()
        self.storage = FakeStorage()

    def table(self, nome):
        return FakeConsulta(self, nome)

    def falhar(self, tabela, operacao, erro, quando=None):
        """Faz `execute()` levantar `erro` para a tabela/operação (opcionalmente filtrando o payload)."""
        self.falhas.append((tabela, operacao, erro, quando))

    def escritas(self, tabela, operacao):
        return [p for t, op, p in self.chamadas if t == tabela and op == operacao]


class FakeTimer:
    """threading.Timer manual: só dispara em `disparar()`."""

    def __init__(self, fabrica, atraso, funcao, args=(), kwargs=None):
        self.fabrica = fabrica
        self.atraso = atraso
        self.funcao = funcao
        self.args = args
        self.kwargs = kwargs or {}
        self.daemon = False
        self.iniciado = False
        self.cancelado = False

    def start(self):
        self.iniciado = True

    def cancel(self):
        self.cancelado = True

    def disparar(self):
        if not self.cancelado:
            self.funcao(*self.args, **self.kwargs)


class FabricaTimers:
    def __init__(self):
        self.timers = []

    def __call__(self, atraso, funcao, args=(), kwargs=None):
        timer = FakeTimer(self, atraso, funcao, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def ativos(self):
        return [t for t in self.timers if not t.cancelado]


class Relogio:
    def __init__(self, agora=1_700_000_000.0):
        self.agora = agora

    def __call__(self):
        return self.agora

    def avancar(self, segundos):
        self.agora += segundos


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def timers():
    return FabricaTimers()


@pytest.fixture
def relogio():
    return Relogio()


@pytest.fixture
def contexto(supabase):
    return ContextoAplicacao(
        supabase=supabase,
        usuario_id="u-admin",
        email="admin@vizio.com.br",
        nome="Admin Vizio",
        papel="admin_vizio",
        empresa_id="emp-1",
        empresas=[{"id": "emp-1", "nome": "Empresa Um", "cnpj": "11.222.333/0001-81"}],
        access_token="token-teste",
    )


@pytest.fixture
def erro_api():
    return FakeAPIError
