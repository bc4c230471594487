from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import Settings
from translation.protocol import LANGUAGE_PLACEHOLDER


def test_shipped_prompt_templates_are_used_by_default() -> None:
    settings = Settings(_env_file=None)

    caller = settings.caller_prompt_template()
    agent = settings.agent_prompt_template()

    assert LANGUAGE_PLACEHOLDER in caller
    assert LANGUAGE_PLACEHOLDER in agent
    assert caller != agent


def test_configured_prompts_override_shipped_templates() -> None:
    settings = Settings(_env_file=None, ai_prompt_caller="C [CALLER_LANGUAGE]", ai_prompt_agent="A")

    assert settings.caller_prompt_template() == "C [CALLER_LANGUAGE]"
    assert settings.agent_prompt_template() == "A"


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.translation_ws_url == "wss://api.openai.com/v1/realtime"
    assert settings.agent_audio_guard_ms == 1000


def test_negative_guard_window_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, agent_audio_guard_ms=-1)


def test_server_binding_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.host == "0.0.0.0"
    assert settings.port == 8000


def test_run_serves_app_with_configured_binding(app, monkeypatch) -> None:
    import main

    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))

    main.run()

    expected = {"host": main.settings.host, "port": main.settings.port, "log_level": main.settings.log_level.lower()}
    assert calls == [("main:app", expected)]
