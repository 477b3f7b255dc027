"""
Character-cell drawing surfaces and the screen controller.

:class:`Surface` is the drawing primitive the host provides: resolution
control, offscreen buffers that are composited onto the visible screen, and
a full-surface fill.  Two implementations ship with the package:

- :class:`MemorySurface` -- keeps the screen as a grid of cells; used by
  tests and as the base of the terminal surface.
- :class:`AnsiSurface` -- additionally writes the screen to a text stream
  with 24-bit ANSI colour escapes on every flush.

:class:`ScreenController` lays out rendered blocks: one block in cycle and
summary modes, a grid of ``column_count`` columns in grid mode.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
import sys
from typing import Protocol, TextIO

from powermon.src.config import DisplayMode, TemplateConfig
from powermon.src.template import Cell, RenderedBlock

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESOLUTION: tuple[int, int] = (160, 50)


class CellGrid:
    """Rectangular grid of styled cells, addressed 0-based as ``(x, y)``."""

    def __init__(self, width: int, height: int, *, fg: int = 0xFFFFFF, bg: int = 0x000000) -> None:
        self.width = width
        self.height = height
        self.cells: list[list[Cell]] = [
            [Cell(" ", fg, bg) for _ in range(width)] for _ in range(height)
        ]

    def set(self, x: int, y: int, cell: Cell) -> None:
        """Write *cell* at ``(x, y)``; writes outside the grid are dropped."""
        if 0 <= x < self.width and 0 <= y < self.height:
            self.cells[y][x] = cell

    def fill(self, char: str = " ", *, fg: int = 0xFFFFFF, bg: int = 0x000000) -> None:
        """Overwrite every cell."""
        for row in self.cells:
            for x in range(self.width):
                row[x] = Cell(char, fg, bg)

    def row_text(self, y: int) -> str:
        """Characters of row *y*."""
        return "".join(cell.char for cell in self.cells[y])

    def text(self) -> list[str]:
        """Characters of every row."""
        return [self.row_text(y) for y in range(self.height)]


class Surface(Protocol):
    """Host-provided character-cell display."""

    def max_resolution(self) -> tuple[int, int]: ...

    def set_resolution(self, width: int, height: int) -> None: ...

    def max_depth(self) -> int: ...

    def allocate_buffer(self, width: int, height: int) -> CellGrid: ...

    def composite(self, buffer: CellGrid, x: int, y: int) -> None: ...

    def free_all_buffers(self) -> None: ...

    def fill(self, char: str = " ") -> None: ...

    def flush(self) -> None: ...


class MemorySurface:
    """In-memory :class:`Surface`.

    Args:
        max_resolution: Largest ``(width, height)`` the surface supports.
        depth: Colour depth in bits.
    """

    def __init__(
        self,
        max_resolution: tuple[int, int] = DEFAULT_MAX_RESOLUTION,
        *,
        depth: int = 8,
    ) -> None:
        self._max_resolution = max_resolution
        self._depth = depth
        self.screen = CellGrid(*max_resolution)
        self.buffers: list[CellGrid] = []

    @property
    def resolution(self) -> tuple[int, int]:
        return self.screen.width, self.screen.height

    def max_resolution(self) -> tuple[int, int]:
        return self._max_resolution

    def set_resolution(self, width: int, height: int) -> None:
        max_w, max_h = self._max_resolution
        width, height = min(width, max_w), min(height, max_h)
        if (width, height) != self.resolution:
            self.screen = CellGrid(width, height)

    def max_depth(self) -> int:
        return self._depth

    def allocate_buffer(self, width: int, height: int) -> CellGrid:
        buffer = CellGrid(width, height)
        self.buffers.append(buffer)
        return buffer

    def composite(self, buffer: CellGrid, x: int, y: int) -> None:
        for row in range(buffer.height):
            for col in range(buffer.width):
                self.screen.set(x + col, y + row, buffer.cells[row][col])

    def free_all_buffers(self) -> None:
        self.buffers.clear()

    def fill(self, char: str = " ") -> None:
        self.screen.fill(char)

    def flush(self) -> None:
        """Nothing to do; the screen grid is the output."""


class AnsiSurface(MemorySurface):
    """Terminal :class:`Surface` writing 24-bit ANSI colour escapes.

    Args:
        stream: Text stream to draw on (default ``sys.stdout``).
        max_resolution: Largest ``(width, height)`` to draw.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        max_resolution: tuple[int, int] = DEFAULT_MAX_RESOLUTION,
    ) -> None:
        super().__init__(max_resolution, depth=24)
        self._stream = stream if stream is not None else sys.stdout

    @staticmethod
    def _sgr(fg: int, bg: int) -> str:
        return (
            f"\x1b[38;2;{fg >> 16 & 0xFF};{fg >> 8 & 0xFF};{fg & 0xFF}m"
            f"\x1b[48;2;{bg >> 16 & 0xFF};{bg >> 8 & 0xFF};{bg & 0xFF}m"
        )

    def flush(self) -> None:
        out = ["\x1b[H"]
        for row in self.screen.cells:
            style: tuple[int, int] | None = None
            for cell in row:
                if (cell.fg, cell.bg) != style:
                    style = (cell.fg, cell.bg)
                    out.append(self._sgr(*style))
                out.append(cell.char)
            out.append("\x1b[0m\n")
        self._stream.write("".join(out))
        self._stream.flush()

    def fill(self, char: str = " ") -> None:
        super().fill(char)
        self._stream.write("\x1b[0m\x1b[2J\x1b[H")
        self._stream.flush()


class ScreenController:
    """Arrange rendered blocks on a :class:`Surface`.

    Args:
        surface: Drawing surface.
        template: Template configuration (block size, grid layout, colours).
        mode: Display mode.
        device_count: Number of devices, for the grid size.
        debug: Leave the surface resolution untouched.
    """

    def __init__(
        self,
        surface: Surface,
        template: TemplateConfig,
        *,
        mode: DisplayMode,
        device_count: int,
        debug: bool = False,
    ) -> None:
        self.surface = surface
        self.template = template
        self.mode = mode
        self.debug = debug
        self.width = template.width
        self.height = template.height
        if not debug:
            surface.set_resolution(*self.resolution_for(device_count))

    def resolution_for(self, device_count: int) -> tuple[int, int]:
        """Screen size needed for *device_count* devices in the current mode."""
        if self.mode is not DisplayMode.GRID:
            return self.width, self.height
        columns = self.template.column_count
        space = self.template.space
        shown = max(1, min(device_count, columns))
        rows = max(1, math.ceil(device_count / columns))
        return (
            shown * self.width + (shown - 1) * space,
            rows * self.height + (rows - 1) * space,
        )

    def position(self, slot: int) -> tuple[int, int]:
        """Top-left corner of grid *slot* (0-based)."""
        columns = self.template.column_count
        space = self.template.space
        column, row = slot % columns, slot // columns
        return column * (self.width + space), row * (self.height + space)

    def render(self, blocks: list[RenderedBlock]) -> None:
        """Draw one frame: every block into its own buffer, then composite."""
        for slot, block in enumerate(blocks):
            buffer = self.surface.allocate_buffer(self.width, self.height)
            buffer.fill(fg=self.template.foreground, bg=self.template.background)
            for y, line in enumerate(block[: self.height]):
                for x, cell in enumerate(line[: self.width]):
                    buffer.set(x, y, cell)
            self.surface.composite(buffer, *self.position(slot))
        self.surface.free_all_buffers()
        self.surface.flush()

    def reset(self) -> None:
        """Restore the full resolution and blank the surface."""
        if self.debug:
            return
        width, height = self.surface.max_resolution()
        self.surface.free_all_buffers()
        self.surface.set_resolution(width, height)
        self.surface.fill(" ")
        logger.info("Screen reset to %dx%d", width, height)


def error_block(message: str, template: TemplateConfig, *, color: int = 0xCC0000) -> RenderedBlock:
    """Wrap *message* into a block of the template's size, in *color*."""
    width = template.width
    chunks = [message[i : i + width] for i in range(0, len(message), width)]
    return [
        [Cell(char, color, template.background) for char in chunk]
        for chunk in chunks[: template.height]
    ]
