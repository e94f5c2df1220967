import pytest

from observer.config import Settings
from observer.models.clients import GeminiClient, ResponsesClient, create_adapter
from observer.models.model import AUTO, AUTO_CANDIDATES, CATALOG, lookup, model_names, resolve_candidates


class TestCatalog:
  def test_auto_is_selectable(self):
    names = model_names()

    assert names[0] == AUTO
    assert set(CATALOG) <= set(names)

  def test_auto_resolves_to_priority_list(self):
    assert [c.name for c in resolve_candidates(AUTO)] == AUTO_CANDIDATES

  def test_single_model(self):
    assert resolve_candidates("o3") == [CATALOG["o3"]]

  def test_unknown_model(self):
    with pytest.raises(ValueError):
      resolve_candidates("gpt-2")
    with pytest.raises(ValueError):
      lookup("gpt-2")

  def test_costs_are_positive(self):
    assert all(candidate.cost_units > 0 for candidate in CATALOG.values())

  def test_adapter_by_protocol_family(self):
    assert isinstance(create_adapter(lookup("gpt-5-mini"), Settings()), ResponsesClient)
    assert isinstance(create_adapter(lookup("gemini-2.5-pro"), Settings()), GeminiClient)
