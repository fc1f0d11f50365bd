import json

from node_catalog import DEFAULT_CATALOG, NodeCatalog
from repair_rules import RULES_ENV_VAR, RepairRules, load_rules


class TestLoadRules:
    def test_defaults_without_override(self, monkeypatch):
        monkeypatch.delenv(RULES_ENV_VAR, raising=False)
        assert load_rules() == RepairRules()

    def test_override_file_from_env(self, monkeypatch, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"false_keywords": ["deny"], "layout": {"node_width": 100}}))
        monkeypatch.setenv(RULES_ENV_VAR, str(path))

        rules = load_rules()

        assert rules.false_keywords == ["deny"]
        assert rules.true_keywords == RepairRules().true_keywords
        assert rules.layout.node_width == 100


class TestNodeCatalog:
    def test_default_catalog_lookups(self):
        assert "google_sheets" in DEFAULT_CATALOG
        assert DEFAULT_CATALOG.get("log_output").category == "output"
        assert DEFAULT_CATALOG.get(None) is None
        assert DEFAULT_CATALOG.get("nope") is None

    def test_first_definition_wins(self):
        catalog = NodeCatalog.from_dicts([
            {"type": "a", "label": "First", "category": "x"},
            {"type": "a", "label": "Second", "category": "x"},
        ])

        assert len(catalog) == 1
        assert catalog.get("a").label == "First"
        assert catalog.get("a").icon == "Box"
