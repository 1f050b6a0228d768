"""
Tests for persona resolution and prompt building.
"""
from agent_engine.services.persona_service import (
    AGENT_PERSONAS,
    Persona,
    TaskContext,
    build_system_prompt,
    build_user_message,
    get_persona,
    get_repo_context,
)


def make_task(**overrides):
    values = dict(id="AGT-42", title="Add endpoint", description="Expose GET /health.")
    values.update(overrides)
    return TaskContext(**values)


def test_get_persona_is_case_insensitive():
    assert get_persona("SAM") is AGENT_PERSONAS["sam"]
    assert get_persona(" leo ") is AGENT_PERSONAS["leo"]
    assert get_persona("unknown") is None


def test_system_prompt_sections():
    prompt = build_system_prompt(
        get_persona("sam"),
        make_task(priority="High", labels=["backend", "api"]),
        get_repo_context("acme", "web", "develop"),
    )

    assert prompt.index("=== IDENTITY ===") < prompt.index("=== TERRITORY ===") < prompt.index("=== TASK ===")
    assert "You are SAM" in prompt
    assert "Repository: acme/web" in prompt
    assert "Branch: develop" in prompt
    assert "Ticket: AGT-42" in prompt
    assert "Priority: High" in prompt
    assert "Labels: backend, api" in prompt
    assert "task_complete" in prompt


def test_soul_replaces_base_prompt():
    prompt = build_system_prompt(
        get_persona("sam"), make_task(), get_repo_context("acme", "web", "main"), soul="You are a careful engineer.",
    )
    assert "You are a careful engineer." in prompt
    assert AGENT_PERSONAS["sam"].base_prompt not in prompt


def test_persona_without_territory_omits_section():
    persona = Persona(name="X", role="r", base_prompt="You are X.")
    prompt = build_system_prompt(persona, make_task(), get_repo_context("a", "b", "main"))
    assert "=== TERRITORY ===" not in prompt


def test_empty_description_and_labels():
    prompt = build_system_prompt(get_persona("max"), make_task(description=""), get_repo_context("a", "b", "main"))
    assert "(no description)" in prompt
    assert "Labels:" not in prompt


def test_user_message_mentions_task():
    message = build_user_message(make_task())
    assert message.startswith("Task AGT-42: Add endpoint")
    assert "Expose GET /health." in message
