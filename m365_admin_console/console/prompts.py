"""
Operator prompts — free-text input with validate-and-re-prompt loops,
y/n confirmations, numbered menus and status lines.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ..compliance.query import parse_yes_no
from ..errors import ValidationError

T = TypeVar("T")
InputFn = Callable[[str], str]


def ok(message: str):
    print(f"  ✅ {message}")


def fail(message: str):
    print(f"  ❌ {message}")


def warn(message: str):
    print(f"  ⚠  {message}")


def info(message: str):
    print(f"  {message}")


class Prompter:
    """Wraps an input function so menus can be driven by tests."""

    def __init__(self, input_fn: Optional[InputFn] = None):
        self.input_fn = input_fn or input

    def ask(self, prompt: str) -> str:
        return self.input_fn(f"  {prompt}: ").strip()

    def ask_until_valid(self, prompt: str, parse: Callable[[str], T]) -> T:
        """Re-prompt until `parse` stops raising ValidationError."""
        while True:
            try:
                return parse(self.ask(prompt))
            except ValidationError as e:
                fail(str(e))

    async def ask_until_valid_async(self, prompt: str, parse: Callable[[str], Awaitable[T]]) -> T:
        while True:
            try:
                return await parse(self.ask(prompt))
            except ValidationError as e:
                fail(str(e))

    def ask_yes_no(self, prompt: str) -> bool:
        return self.ask_until_valid(f"{prompt} (y/n)", parse_yes_no)

    def ask_non_empty(self, prompt: str) -> str:
        def _parse(value: str) -> str:
            if not value:
                raise ValidationError("A value is required.")
            return value
        return self.ask_until_valid(prompt, _parse)

    def choose(self, title: str, options: Sequence[str]) -> int:
        """Show a numbered menu and return the 1-based choice."""
        print(f"\n{'=' * 70}")
        print(f" {title}")
        print("=" * 70)
        for number, option in enumerate(options, start=1):
            print(f"  {number}. {option}")
        print()
        return self.ask_until_valid("Select an option", lambda v: parse_choice(v, len(options)))

    def pause(self):
        self.input_fn("\n  Press Enter to return to the menu...")


def parse_choice(value: str, count: int) -> int:
    if not value.isdigit() or not 1 <= int(value) <= count:
        raise ValidationError(f"Enter a number between 1 and {count}.")
    return int(value)
