"""progress.py
User-facing surface for manual runs: the current selection, short notices and
a progress window.  :class:`ConsoleSurface` renders the window with *tqdm*.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, Sequence

from tqdm import tqdm

from src.autorelate.library import LibraryItem


class ProgressWindow(Protocol):
    def change_headline(self, text: str) -> None: ...

    def add_line(self, text: str, percent: int | None = None) -> None: ...

    def advance(self, n: int = 1, relations: int | None = None) -> None: ...

    def start_close_timer(self, delay: float) -> None: ...


class SelectionSurface(Protocol):
    def get_selected_documents(self) -> Sequence[LibraryItem]: ...

    def progress_window(self, total: int) -> ProgressWindow: ...

    def notice(self, text: str) -> None: ...


class TqdmProgressWindow:
    """Progress window drawn as a tqdm bar; extra lines go through ``tqdm.write``."""

    def __init__(self, total: int) -> None:
        self._bar = tqdm(total=total, unit="item")

    def change_headline(self, text: str) -> None:
        self._bar.set_description(text)

    def add_line(self, text: str, percent: int | None = None) -> None:
        suffix = f" [{percent}%]" if percent is not None else ""
        tqdm.write(f"{text}{suffix}")

    def advance(self, n: int = 1, relations: int | None = None) -> None:
        if relations is not None:
            self._bar.set_postfix(relations=relations)
        self._bar.update(n)

    def start_close_timer(self, delay: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._bar.close()
            return
        loop.call_later(delay, self._bar.close)

    def close(self) -> None:
        self._bar.close()


class ConsoleSurface:
    """Terminal selection surface used by the CLI."""

    def __init__(self, selected: Sequence[LibraryItem] = ()) -> None:
        self.selected = list(selected)

    def get_selected_documents(self) -> Sequence[LibraryItem]:
        return self.selected

    def progress_window(self, total: int) -> TqdmProgressWindow:
        return TqdmProgressWindow(total)

    def notice(self, text: str) -> None:
        tqdm.write(text)
