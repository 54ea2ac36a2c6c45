"""Call of Cthulhu style dice: normal, bonus and penalty rolls."""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass, field
from typing import Callable, List

__all__ = ["DiceType", "DiceCommand"]

_MAX_DICE = 100


class DiceType(enum.IntEnum):
    NORMAL = 0
    BONUS = 1
    PENALTY = 2


def _min_index(values: List[int]) -> int:
    return min(range(len(values)), key=values.__getitem__)


def _max_index(values: List[int]) -> int:
    return max(range(len(values)), key=values.__getitem__)


def _format_tens(tens: List[int], chosen: int) -> str:
    return ", ".join(
        f"<b><u>[{v}]</u></b>" if i == chosen else f"<del>{v}</del>"
        for i, v in enumerate(tens)
    )


@dataclass
class DiceCommand:
    """A parsed roll: ``arg1`` dice of ``arg2`` sides, or ``arg1`` bonus/penalty dice."""

    type: DiceType = DiceType.NORMAL
    arg1: int = 0
    arg2: int = 0
    modifier: int = 0
    ability: int = 0
    rng: random.Random = field(
        default_factory=random.Random, repr=False, compare=False
    )

    def format_ability(self, points: int) -> str:
        """Show the full/half/fifth ability thresholds, underlining the one reached."""
        if self.ability == 0:
            return ""
        full = self.ability
        half = int(self.ability * 0.5)
        fifth = int(self.ability * 0.2)
        if points < fifth:
            return f"\n ({full} / {half} / <b><u>{fifth}</u></b>)"
        if points < half:
            return f"\n ({full} / <b><u>{half}</u></b> / {fifth})"
        if points < full:
            return f"\n (<b><u>{full}</u></b> / {half} / {fifth})"
        return f"\n ({full} / {half} / {fifth})"

    def _modifier_text(self) -> str:
        return f" ({self.modifier:+d})" if self.modifier != 0 else ""

    def _normal(self) -> str:
        if self.arg1 > _MAX_DICE:
            return "骰子数量太多了"
        dice = [self.rng.randint(1, self.arg2) for _ in range(self.arg1)]
        total = sum(dice) + self.modifier
        text = f"骰子点数: {total}" + self._modifier_text() + self.format_ability(total)
        if self.arg1 > 1:
            text += "\n" + " + ".join(map(str, dice))
        return text

    def _bonus_or_penalty(
        self, name: str, pick: Callable[[List[int]], int]
    ) -> str:
        tens = [self.rng.randrange(10) for _ in range(self.arg1 + 1)]
        ones = self.rng.randrange(10) + 1
        chosen = pick(tens)
        total = tens[chosen] * 10 + ones + self.modifier
        return (
            f"{name}点数: {total}"
            + self._modifier_text()
            + self.format_ability(total)
            + f"\n个位骰：{ones}\n十位骰：{_format_tens(tens, chosen)}"
        )

    def roll(self) -> str:
        """Roll the dice and return the result as HTML text."""
        if self.type == DiceType.NORMAL:
            return self._normal()
        if self.type == DiceType.BONUS:
            if self.arg1 > _MAX_DICE:
                return "奖励骰子数量太多了"
            return self._bonus_or_penalty("奖励骰", _min_index)
        if self.type == DiceType.PENALTY:
            if self.arg1 > _MAX_DICE:
                return "惩罚骰子数量太多了"
            return self._bonus_or_penalty("惩罚骰", _max_index)
        return "出现错误"