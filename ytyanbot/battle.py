"""Initiative tracker for tabletop battles: turn order, rounds and statuses."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

__all__ = ["BattleError", "Character", "BattleRound", "new_from_text"]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_HTML_ESCAPES = str.maketrans(
    {"&": "&amp;", "'": "&#39;", "<": "&lt;", ">": "&gt;", '"': "&#34;"}
)
_DEFAULT_STATUS = "正常"
_HELP = (
    "使用 add [名字] [顺序] [状态] 添加角色\n"
    "使用 chg [旧顺序] [新顺序] 修改顺序\n"
    "使用 del [名字/顺序] 删除角色\n"
    "使用 stat [名字/顺序] [状态] 修改状态\n"
)


class BattleError(ValueError):
    """A battle command could not be applied."""


def _escape(text: str) -> str:
    return text.translate(_HTML_ESCAPES)


def _atoi(text: str) -> Optional[int]:
    if _INT_RE.fullmatch(text) is None:
        return None
    return int(text)


@dataclass
class Character:
    name: str
    order: int
    status: str


@dataclass
class BattleRound:
    """Characters sorted by order, the round number and whose turn it is."""

    round: int = 1
    current: int = 0
    characters: List[Character] = field(default_factory=list)

    def current_character(self) -> Character:
        return self.characters[self.current]

    def __str__(self) -> str:
        lines = [f"第{self.round}回合\n\n"]
        for i, c in enumerate(self.characters):
            header = "&gt;" if i == self.current else " "
            lines.append(
                f"<code>{c.order} {header}</code>{_escape(c.name)}: [{_escape(c.status)}]\n"
            )
        lines.append(_HELP)
        return "".join(lines)

    def next_character(self) -> None:
        """Advance the turn, starting a new round after the last character."""
        self.current += 1
        if self.current >= len(self.characters):
            self.current = 0
            self.round += 1

    def _index_by_name(self, name: str) -> int:
        return next(
            (i for i, c in enumerate(self.characters) if c.name == name), -1
        )

    def _index_by_order(self, order: int) -> int:
        return next(
            (i for i, c in enumerate(self.characters) if c.order == order), -1
        )

    def _sort(self) -> None:
        self.characters.sort(key=lambda c: c.order)

    def add_character(self, name: str, order: int, status: str) -> None:
        for c in self.characters:
            if c.name == name:
                raise BattleError(f"角色 {name} 已经存在")
            if c.order == order:
                raise BattleError(f"顺序 {order} 已经存在")
        self.characters.append(Character(name, order, status))
        self._sort()
        idx = self._index_by_order(order)
        if idx != -1 and idx <= self.current:
            self.current += 1

    def _delete_at(self, idx: int) -> None:
        del self.characters[idx]
        if self.current > idx:
            self.current -= 1
        if self.current >= len(self.characters) or self.current < 0:
            self.current = 0

    def delete_character(self, order: int) -> None:
        idx = self._index_by_order(order)
        if idx == -1:
            raise BattleError(f"找不到顺序 {order}")
        self._delete_at(idx)

    def delete_character_by_name(self, name: str) -> None:
        idx = self._index_by_name(name)
        if idx == -1:
            raise BattleError(f"找不到名字 {name}")
        self._delete_at(idx)

    def set_character_status_by_order(self, order: int, status: str) -> None:
        idx = self._index_by_order(order)
        if idx == -1:
            raise BattleError(f"找不到顺序 {order}")
        self.characters[idx].status = status

    def set_character_status_by_name(self, name: str, status: str) -> None:
        idx = self._index_by_name(name)
        if idx == -1:
            raise BattleError(f"找不到名字 {name}")
        self.characters[idx].status = status

    def change_character_order(self, old_order: int, new_order: int) -> None:
        idx = self._index_by_order(old_order)
        if idx == -1:
            raise BattleError(f"找不到顺序 {old_order}")
        if self._index_by_order(new_order) != -1:
            raise BattleError(f"顺序 {new_order} 已经存在")
        self.characters[idx].order = new_order
        self._sort()

    def parse_command(self, command: str) -> None:
        """Apply one text command: add, chg/change, del or stat."""
        parts = command.split()
        if not parts:
            raise BattleError("空命令")
        verb = parts[0].lower()
        if verb == "add":
            if len(parts) < 4:
                raise BattleError("用法: add [名字] [顺序] [状态]")
            order = _atoi(parts[2])
            self.add_character(parts[1], order if order is not None else 0, parts[3])
        elif verb in ("chg", "change"):
            if len(parts) < 3:
                raise BattleError("用法: change [旧顺序] [新顺序]")
            old_order, new_order = _atoi(parts[1]), _atoi(parts[2])
            if old_order is None or new_order is None:
                raise BattleError(
                    f"顺序必须是数字，但是你输入了 {parts[1]} {parts[2]}"
                )
            self.change_character_order(old_order, new_order)
        elif verb == "del":
            if len(parts) < 2:
                raise BattleError("用法: del [名字/顺序]")
            order = _atoi(parts[1])
            if order is not None:
                self.delete_character(order)
            else:
                self.delete_character_by_name(parts[1])
        elif verb == "stat":
            if len(parts) < 3:
                raise BattleError("用法: stat [名字/顺序] [状态]")
            order = _atoi(parts[1])
            if order is not None:
                self.set_character_status_by_order(order, parts[2])
            else:
                self.set_character_status_by_name(parts[1], parts[2])
        else:
            raise BattleError(f"未知命令 {parts[0]}")


def new_from_text(text: str) -> BattleRound:
    """Build a battle from one character name per line.

    Blank lines and lines starting with "/" are skipped; the order of each
    character is its line number times 1000.
    """
    battle = BattleRound(round=1)
    for i, line in enumerate(text.split("\n")):
        line = line.strip()
        if not line or line.startswith("/"):
            continue
        try:
            battle.add_character(line, (i + 1) * 1000, _DEFAULT_STATUS)
        except BattleError:
            pass
    battle.current = 0
    return battle