import pytest

from aham.runtime.prompting import (
    bullet_line,
    compose_answer_prompt,
    compose_chat_prompt,
    compose_cluster_prompt,
    render_bullets,
)


def test_chat_prompt_without_context_has_no_system_segment():
    assert compose_chat_prompt("hi") == "<|user|>\nhi\n<|assistant|>\n"


def test_chat_prompt_with_custom_system():
    prompt = compose_chat_prompt("hi", context="ctx", system="Be brief.")
    assert prompt.startswith("<|system|>\nBe brief.\n\nContext: ctx\n<|user|>\n")


def test_answer_prompt_embeds_question():
    assert "  what is due?" not in compose_answer_prompt("  what is due?")
    assert "what is due?" in compose_answer_prompt("  what is due?")


def test_cluster_prompt_lists_full_texts():
    prompt = compose_cluster_prompt(["buy milk", "call mom"])
    assert '- "buy milk"\n\n- "call mom"' in prompt
    assert '"messages"' in prompt


@pytest.mark.parametrize("text,expected", [("milk", "• milk"), (" • milk ", "• milk"), ("* milk", "* milk")])
def test_bullet_line(text, expected):
    assert bullet_line(text) == expected


def test_render_bullets_separates_with_blank_line():
    assert render_bullets(["a", "b"]) == "• a\n\n• b"
