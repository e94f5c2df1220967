import pytest

from observer.config import DEFAULT_SYSTEM_PROMPT, Settings


class TestSettings:
  def test_defaults(self):
    settings = Settings()

    assert settings.context_capacity == 2000
    assert settings.max_steps == 5
    assert settings.rate_window_size == 16200
    assert settings.rate_cost_per_unit == 900
    assert settings.default_model == "gpt-5-mini"
    assert settings.system_prompt == DEFAULT_SYSTEM_PROMPT

  def test_from_env(self):
    settings = Settings.from_env(
      {
        "OPENAI_API_KEY": "sk-test",
        "GEMINI_BASE_URL": "http://localhost:9000/v1beta/",
        "OBSERVER_MAX_STEPS": "3",
        "OBSERVER_TURN_TIMEOUT": "30.5",
        "OBSERVER_DEFAULT_MODEL": "auto",
        "OBSERVER_DISABLED_TOOLS": "get_time, ,text_length",
        "OBSERVER_ADMIN_USERS": "42",
      }
    )

    assert settings.openai_api_key == "sk-test"
    assert settings.gemini_base_url == "http://localhost:9000/v1beta"
    assert settings.max_steps == 3
    assert settings.turn_timeout == 30.5
    assert settings.default_model == "auto"
    assert settings.disabled_tools == frozenset({"get_time", "text_length"})
    assert settings.admin_users == frozenset({"42"})

  def test_empty_values_fall_back_to_defaults(self):
    settings = Settings.from_env({"OBSERVER_MAX_STEPS": "", "OPENAI_API_KEY": ""})

    assert settings.max_steps == 5
    assert settings.openai_api_key is None

  def test_bad_number_names_the_variable(self):
    with pytest.raises(ValueError, match="OBSERVER_CONTEXT_CAPACITY"):
      Settings.from_env({"OBSERVER_CONTEXT_CAPACITY": "lots"})

  def test_invalid_values(self):
    with pytest.raises(ValueError):
      Settings(max_steps=0)
    with pytest.raises(ValueError):
      Settings(context_capacity=0)
