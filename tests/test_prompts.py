from datetime import date

from streamrelay.prompts import chat_system_prompt, format_today, sse_system_prompt, tools_system_prompt


def test_format_today() -> None:
    assert format_today(date(2026, 10, 18)) == "Sunday, October 18, 2026"
    assert format_today(date(2025, 1, 5)) == "Sunday, January 5, 2025"


def test_prompts_carry_the_date() -> None:
    today = date(2026, 10, 18)
    for prompt in (chat_system_prompt(today), tools_system_prompt(today), sse_system_prompt(today)):
        assert "Today's date is Sunday, October 18, 2026" in prompt


def test_chat_prompt_mentions_suggestions() -> None:
    assert "suggest_actions" in chat_system_prompt(date(2026, 1, 1))
