"""Renderização das páginas do PDF em PNG (data URL) para o agente de sinistralidade."""
from __future__ import annotations

import base64
import logging

import fitz

from src.core.config import PDF_ESCALA_RENDER, PDF_MAX_PAGINAS

logger = logging.getLogger(__name__)


class ErroRenderizacao(Exception):
    """PDF ilegível/corrompido ou falha do renderizador."""


def renderizar_paginas(conteudo: bytes, max_paginas: int = PDF_MAX_PAGINAS, escala: float = PDF_ESCALA_RENDER) -> list[dict]:
    """Devolve `[{"pageNumber": n, "imageBase64": "data:image/png;base64,..."}]` das primeiras páginas."""
    try:
        doc = fitz.open(stream=conteudo, filetype="pdf")
    except Exception as e:
        raise ErroRenderizacao(f"Não foi possível abrir o PDF: {e}") from e

    paginas = []
    try:
        total = min(len(doc), max_paginas)
        if total == 0:
            raise ErroRenderizacao("PDF sem páginas")
        matriz = fitz.Matrix(escala, escala)
        for i in range(total):
            try:
                pix = doc[i].get_pixmap(matrix=matriz)
                png = pix.tobytes("png")
            except Exception as e:
                raise ErroRenderizacao(f"Falha ao renderizar página {i + 1}: {e}") from e
            paginas.append(
                {
                    "pageNumber": i + 1,
                    "imageBase64": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
                }
            )
    finally:
        doc.close()

    logger.info("PDF renderizado: %s página(s)", len(paginas))
    return paginas
