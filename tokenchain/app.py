"""Terminal front end: a menu, an input line and a message log for one node."""

from __future__ import annotations

import asyncio
import curses
import enum
import logging
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from tokenchain.blockchain import Block, Chain
from tokenchain.p2p import Message, MessageKind, P2p, P2pMessage

MENU_ITEMS = ("New Transaction", "Mine Block", "Create Account", "Check Balance")
LOCAL_SENDER = "0.0.0.0:0"
QUEUE_SIZE = 100
POLL_SECONDS = 0.05

_UNSIGNED = re.compile(r"\+?[0-9]+")


def _parse_unsigned(text: str, limit: int, what: str) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise ValueError(f"invalid {what} {text!r}")
    value = int(text)
    if value > limit:
        raise ValueError(f"{what} {text!r} is out of range")
    return value


@dataclass
class StatefulList:
    """Menu items with an optional selected position that wraps around."""

    items: list[str]
    selected: Optional[int] = None

    def next(self) -> None:
        if self.selected is None or self.selected >= len(self.items) - 1:
            self.selected = 0
        else:
            self.selected += 1

    def previous(self) -> None:
        if self.selected is None:
            self.selected = 0
        elif self.selected == 0:
            self.selected = len(self.items) - 1
        else:
            self.selected -= 1


class InputMode(enum.Enum):
    NORMAL = "normal"
    EDITING = "editing"


@dataclass
class App:
    """State of the interface and the node's chain.

    Keys are either a single character or one of the names
    ``"Up"``, ``"Down"``, ``"Enter"``, ``"Backspace"`` and ``"Esc"``.
    """

    chain: Chain
    p2p: Optional[P2p] = None
    input: str = ""
    input_mode: InputMode = InputMode.NORMAL
    messages: list[str] = field(default_factory=list)
    menu: StatefulList = field(default_factory=lambda: StatefulList(list(MENU_ITEMS)))

    def handle_key(self, key: str) -> bool:
        """Apply one key press; return True when the application should quit."""
        if self.input_mode is InputMode.NORMAL:
            if key == "q":
                return True
            if key == "Down":
                self.menu.next()
            elif key == "Up":
                self.menu.previous()
            elif key == "Enter":
                self.input_mode = InputMode.EDITING
            return False

        if key == "Enter":
            self._perform(self.menu.items[self.menu.selected or 0])
            self.input = ""
            self.input_mode = InputMode.NORMAL
        elif key == "Backspace":
            self.input = self.input[:-1]
        elif key == "Esc":
            self.input_mode = InputMode.NORMAL
        elif len(key) == 1:
            self.input += key
        return False

    def _perform(self, action: str) -> None:
        if action == "New Transaction":
            self.messages.append("New Transaction selected")
        elif action == "Mine Block":
            self.chain.generate_new_block()
            self.messages.append("New block mined")
        elif action == "Create Account":
            self.messages.append("Create Account selected")
        elif action == "Check Balance":
            self.messages.append("Check Balance selected")

    def receive(self, message: P2pMessage) -> None:
        """Log a message that arrived from the network side."""
        self.messages.append(repr(message))


def parse_setup(
    miner_address: str, difficulty: str, token_name: str, token_symbol: str
) -> tuple[str, int, str, str]:
    """Validate the answers of the initial setup; the difficulty must be a 32-bit unsigned."""
    level = _parse_unsigned(difficulty.strip(), 2**32 - 1, "difficulty")
    return miner_address, level, token_name, token_symbol


# ---------------------------------------------------------------- terminal


@dataclass
class _Palette:
    editing: int = 0
    highlight: int = curses.A_BOLD | curses.A_REVERSE


def _palette() -> _Palette:
    palette = _Palette()
    if not curses.has_colors():
        return palette
    try:
        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(1, curses.COLOR_YELLOW, -1)
        curses.init_pair(2, curses.COLOR_WHITE, curses.COLOR_BLUE)
    except curses.error:
        return palette
    return _Palette(editing=curses.color_pair(1), highlight=curses.color_pair(2) | curses.A_BOLD)


def _put(win: Any, y: int, x: int, text: str, attr: int = 0) -> None:
    height, width = win.getmaxyx()
    if y >= height or x >= width:
        return
    try:
        win.addnstr(y, x, text, width - x, attr)
    except curses.error:
        pass


def _frame(win: Any, y: int, x: int, height: int, width: int, title: str) -> Optional[Any]:
    if height < 3 or width < 3:
        return None
    try:
        sub = win.derwin(height, width, y, x)
    except curses.error:
        return None
    sub.box()
    _put(sub, 0, 1, title[: width - 2])
    return sub


def _write_lines(frame: Any, lines: Sequence[tuple[str, int]]) -> None:
    height, width = frame.getmaxyx()
    for row, (text, attr) in enumerate(lines[: height - 2], start=1):
        _put(frame, row, 1, text[: width - 2], attr)


def _draw(stdscr: Any, app: App, palette: _Palette) -> None:
    stdscr.erase()
    height, width = stdscr.getmaxyx()
    left_width = width // 2
    menu_height = height * 8 // 10

    menu = _frame(stdscr, 0, 0, menu_height, left_width, "Menu")
    if menu is not None:
        selected = app.menu.selected
        lines = []
        for index, item in enumerate(app.menu.items):
            if selected is None:
                lines.append((item, 0))
            elif index == selected:
                lines.append(("> " + item, palette.highlight))
            else:
                lines.append(("  " + item, 0))
        _write_lines(menu, lines)

    box = _frame(stdscr, menu_height, 0, height - menu_height, left_width, "Input")
    if box is not None:
        attr = palette.editing if app.input_mode is InputMode.EDITING else 0
        _write_lines(box, [(app.input, attr)])

    log = _frame(stdscr, 0, left_width, height, width - left_width, "Messages")
    if log is not None:
        _write_lines(log, [(f"{i}: {m}", 0) for i, m in enumerate(app.messages)])

    stdscr.refresh()


_SPECIAL_KEYS = {
    curses.KEY_UP: "Up",
    curses.KEY_DOWN: "Down",
    curses.KEY_ENTER: "Enter",
    curses.KEY_BACKSPACE: "Backspace",
    curses.KEY_RESIZE: "Resize",
}
_CONTROL_KEYS = {"\n": "Enter", "\r": "Enter", "\x1b": "Esc", "\x7f": "Backspace", "\b": "Backspace"}


def _read_key(stdscr: Any) -> Optional[str]:
    try:
        ch = stdscr.get_wch()
    except curses.error:
        return None
    if isinstance(ch, int):
        return _SPECIAL_KEYS.get(ch)
    if ch in _CONTROL_KEYS:
        return _CONTROL_KEYS[ch]
    if ord(ch) < 32:
        return None
    return ch


def _ask(stdscr: Any, prompt: str) -> str:
    answer = ""
    while True:
        stdscr.erase()
        height, width = stdscr.getmaxyx()
        panel = _frame(stdscr, 0, 0, height, width, "Initial Setup")
        if panel is not None:
            _write_lines(panel, [(prompt, 0), ("> " + answer, 0)])
        stdscr.refresh()
        key = _read_key(stdscr)
        if key == "Enter":
            return answer
        if key == "Backspace":
            answer = answer[:-1]
        elif key is not None and len(key) == 1:
            answer += key


def _initial_setup(stdscr: Any) -> tuple[str, int, str, str]:
    stdscr.nodelay(False)
    answers = [
        _ask(stdscr, prompt)
        for prompt in (
            "Enter miner address:",
            "Enter difficulty:",
            "Enter token name:",
            "Enter token symbol:",
        )
    ]
    return parse_setup(*answers)


def _publisher(queue: asyncio.Queue, tasks: set) -> Callable[[Any], None]:
    def publish(item: Any) -> None:
        kind = MessageKind.NEW_BLOCK if isinstance(item, Block) else MessageKind.NEW_TRANSACTION
        message = P2pMessage(LOCAL_SENDER, Message(kind, item))
        task = asyncio.get_running_loop().create_task(queue.put(message))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    return publish


async def _run_app(stdscr: Any, app: App, queue: asyncio.Queue, palette: _Palette) -> None:
    stdscr.nodelay(True)
    dirty = True
    while True:
        if dirty:
            _draw(stdscr, app, palette)
            dirty = False
        key = _read_key(stdscr)
        if key is not None:
            if app.handle_key(key):
                return
            dirty = True
            continue
        try:
            message = await asyncio.wait_for(queue.get(), POLL_SECONDS)
        except asyncio.TimeoutError:
            continue
        app.receive(message)
        dirty = True


async def _run(port: int) -> None:
    p2p = await P2p.create(port, [])
    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
    tasks: set = set()
    failure: Optional[BaseException] = None
    stdscr = curses.initscr()
    try:
        curses.noecho()
        curses.cbreak()
        stdscr.keypad(True)
        palette = _palette()
        miner, difficulty, name, symbol = _initial_setup(stdscr)
        chain = Chain(miner, difficulty, name, symbol, publish=_publisher(queue, tasks))
        app = App(chain, p2p)
        try:
            await _run_app(stdscr, app, queue, palette)
        except Exception as exc:  # reported after the terminal is restored
            failure = exc
    finally:
        stdscr.keypad(False)
        curses.nocbreak()
        curses.echo()
        curses.endwin()
        for task in list(tasks):
            task.cancel()
        await p2p.close()
    if failure is not None:
        print(repr(failure))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start a node listening on the given port and open its terminal interface."""
    args = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=logging.INFO)
    if len(args) != 1:
        print("Usage: tokenchain <port>", file=sys.stderr)
        return 0
    port = _parse_unsigned(args[0], 65535, "port")
    asyncio.run(_run(port))
    return 0


if __name__ == "__main__":
    sys.exit(main())