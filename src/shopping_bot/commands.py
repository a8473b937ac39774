"""
Command classification and reply rendering.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .line import MAX_TEXT_CHARS

HOW_TO_USE = """
☆☆☆☆☆☆☆
    使い方
☆☆☆☆☆☆☆
1.買うものを送信して下さい
2.「見せて」と送信すると現在のリストを返します
3.「○○を消して」と送信すると○○をリストから消します
4.「消して」と送信するとリストを空にします
5.「教えて」と送信するとこのメッセージを再度表示します
使い方のご意見募集中です。
よろしくお願いします！"""

SHOW_RE = re.compile(r"(?:[見み]せて|\bshow me(?: the list)?)$", re.IGNORECASE)
HELP_RE = re.compile(r"(?:(?:教|おし)えて|\bhelp|\bteach me)$", re.IGNORECASE)
# Needs at least one character before the bare trigger. Whitespace and を right
# before it belong to the trigger, not to the item.
DELETE_ONE_RE = re.compile(r"^(?=.+[消け]して$)(?P<item>.*?)\s*を?[消け]して$", re.DOTALL)
DELETE_ALL_RE = re.compile(r"^[消け]して$")


@dataclass(frozen=True)
class Rule:
    cmd: str
    pattern: re.Pattern[str]
    needs_item: bool = False


# Evaluated top to bottom, first match wins. delete_one and delete_all share a
# trigger, so delete_one (anything before the trigger) must come first.
RULES: tuple[Rule, ...] = (
    Rule("show", SHOW_RE),
    Rule("help", HELP_RE),
    Rule("delete_one", DELETE_ONE_RE, needs_item=True),
    Rule("delete_all", DELETE_ALL_RE),
)


def classify(text: str) -> dict[str, Any]:
    """Map message text to `{"cmd": ...}`; item commands also carry `"item"`."""
    for rule in RULES:
        m = rule.pattern.search(text)
        if not m:
            continue
        if rule.needs_item:
            return {"cmd": rule.cmd, "item": m.group("item")}
        return {"cmd": rule.cmd}
    return {"cmd": "add", "item": text}


def render_list(items: list[str]) -> str:
    if not items:
        return "リストは空っぽだよ"
    return shorten("・" + "\n・".join(items))


def shorten(s: str, n: int = MAX_TEXT_CHARS) -> str:
    return s if len(s) <= n else s[: n - 1] + "…"
