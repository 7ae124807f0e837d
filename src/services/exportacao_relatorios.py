"""
Exportações (CSV/XLSX)

Fornece para a UI:
- csv_exemplo_etapa / csv_exemplo_central: modelos para preencher e importar
- exportar_linhas_csv / exportar_linhas_xlsx: linhas de staging de um job
- backup_cadastros_xlsx: cadastros do setup numa planilha
- gerar_botoes_exportacao: botões de download (CSV + XLSX)

CSV sempre em UTF-8 com BOM e `;` (abre direto no Excel em pt-BR).
"""
from __future__ import annotations

from datetime import datetime
import io
import pandas as pd
import streamlit as st

from src.repositories.importacoes import linhas_para_dataframe

MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

CSV_EXEMPLO_BENEFICIARIOS = """nome_completo;cpf;data_nascimento;sexo;tipo;titular_cpf;grau_parentesco;email;telefone;matricula;cargo;departamento;plano_saude;plano_odonto;plano_vida;status;data_inclusao;observacoes
João da Silva;123.456.789-09;1985-03-15;M;titular;;;joao.silva@email.com;11999998888;001;Gerente;TI;true;true;true;ativo;2024-01-01;
Maria da Silva;987.654.321-00;1988-07-20;F;dependente;123.456.789-09;Cônjuge;maria.silva@email.com;11999997777;;;;false;true;false;ativo;2024-01-01;Esposa do João
Pedro da Silva;111.222.333-44;2010-11-10;M;dependente;123.456.789-09;Filho;;;;;;true;true;true;ativo;2024-01-01;Filho do João
Ana Santos;444.555.666-77;1990-05-25;F;titular;;;ana.santos@email.com;11988887777;002;Analista;RH;true;true;true;ativo;2024-02-15;
"""

TABELAS_BACKUP = {
    "Empresas": "empresas",
    "Perfis": "profiles",
    "Funcoes": "user_roles",
    "Importacoes": "import_jobs",
}


def _to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False, sep=";").encode("utf-8-sig")


def _to_xlsx_bytes(planilhas: dict[str, pd.DataFrame]) -> bytes:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        for nome, df in planilhas.items():
            df.to_excel(writer, sheet_name=nome[:31], index=False)
    return output.getvalue()


def _carimbo() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def csv_exemplo_etapa(etapa) -> bytes:
    df = pd.DataFrame(etapa.exemplo, columns=[c.chave for c in etapa.colunas])
    return _to_csv_bytes(df)


def csv_exemplo_central() -> bytes:
    return CSV_EXEMPLO_BENEFICIARIOS.encode("utf-8-sig")


def exportar_linhas_csv(linhas: list[dict]) -> bytes:
    return _to_csv_bytes(linhas_para_dataframe(linhas))


def exportar_linhas_xlsx(linhas: list[dict]) -> bytes:
    return _to_xlsx_bytes({"Linhas": linhas_para_dataframe(linhas)})


def backup_cadastros_xlsx(supabase) -> bytes:
    planilhas = {}
    for aba, tabela in TABELAS_BACKUP.items():
        res = supabase.table(tabela).select("*").execute()
        planilhas[aba] = pd.DataFrame(res.data) if res.data else pd.DataFrame()
    return _to_xlsx_bytes(planilhas)


def gerar_botoes_exportacao(df: pd.DataFrame, prefixo: str = "export") -> None:
    if df is None or df.empty:
        st.info("Nada para exportar.")
        return
    c1, c2 = st.columns(2)
    with c1:
        st.download_button(
            "📄 Baixar CSV",
            data=_to_csv_bytes(df),
            file_name=f"{prefixo}_{_carimbo()}.csv",
            mime="text/csv",
            use_container_width=True,
        )
    with c2:
        st.download_button(
            "📊 Baixar Excel",
            data=_to_xlsx_bytes({"Dados": df}),
            file_name=f"{prefixo}_{_carimbo()}.xlsx",
            mime=MIME_XLSX,
            use_container_width=True,
        )
