"""Temporizador cancelável para autosave (debounce de borda final)."""
from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Arma no primeiro evento, cancela e rearma nos seguintes, dispara uma vez no timeout."""

    def __init__(self, atraso_s: float, callback: Callable, timer_factory=threading.Timer):
        self.atraso_s = atraso_s
        self.callback = callback
        self._timer_factory = timer_factory
        self._timer = None
        self._geracao = 0
        self._lock = threading.Lock()

    @property
    def pendente(self) -> bool:
        return self._timer is not None

    def agendar(self, *args, **kwargs) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._geracao += 1
            timer = self._timer_factory(self.atraso_s, self._disparar, args=(self._geracao, args, kwargs))
            # não segura o processo do Streamlit aberto
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancelar(self) -> None:
        with self._lock:
            self._geracao += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _disparar(self, geracao, args, kwargs) -> None:
        with self._lock:
            if geracao != self._geracao:
                # rearmado depois deste timer
                return
            self._timer = None
        try:
            self.callback(*args, **kwargs)
        except Exception:
            logger.exception("Erro no autosave")
