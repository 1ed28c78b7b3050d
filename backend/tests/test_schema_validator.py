"""
Tests for crudforge.schema.validator

Covers:
  - SchemaValidator.collect_issues()  — structural (JSON Schema) and semantic checks
  - SchemaValidator.validate()        — raises InvalidSchemaError with every error
  - validate_schema_file() / validate_schema_dir()
  - CLI: crudforge schema validate
"""
from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from crudforge.cli.main import cli
from crudforge.errors import InvalidSchemaError
from crudforge.schema.validator import (
    SchemaValidator,
    ValidationIssue,
    validate_schema_dir,
    validate_schema_file,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _minimal(**overrides) -> dict:
    schema = {
        "model": "things",
        "table": "things",
        "fields": {"id": {"type": "integer"}, "name": {"type": "string"}},
    }
    schema.update(overrides)
    return schema


def _messages(issues: list[ValidationIssue]) -> str:
    return "\n".join(str(i) for i in issues)


def _write_json(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def validator():
    return SchemaValidator()


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------

class TestStructural:
    def test_minimal_schema_is_valid(self, validator):
        assert validator.collect_issues(_minimal(), "things") == []

    @pytest.mark.parametrize("key", ["model", "table", "fields"])
    def test_required_keys(self, validator, key):
        schema = _minimal()
        del schema[key]
        issues = validator.collect_issues(schema, "things")
        assert any(key in i.message for i in issues)

    def test_empty_fields_rejected(self, validator):
        issues = validator.collect_issues(_minimal(fields={}), "things")
        assert issues

    def test_table_must_be_identifier(self, validator):
        issues = validator.collect_issues(_minimal(table="things; DROP TABLE x"), "things")
        assert any(i.path == "table" for i in issues)

    def test_field_names_must_be_identifiers(self, validator):
        schema = _minimal(fields={"id": {"type": "integer"}, "bad name": {"type": "string"}})
        assert validator.collect_issues(schema, "things")

    def test_permission_values_must_be_non_empty(self, validator):
        issues = validator.collect_issues(_minimal(permissions={"create": ""}), "things")
        assert any(i.path == "permissions/create" for i in issues)


# ---------------------------------------------------------------------------
# Semantic checks
# ---------------------------------------------------------------------------

class TestSemantic:
    def test_model_name_must_match(self, validator):
        issues = validator.collect_issues(_minimal(model="other"), "things")
        assert any(i.path == "model" for i in issues)

    def test_unknown_field_type(self, validator):
        schema = _minimal(fields={"id": {"type": "integer"}, "x": {"type": "blob"}})
        issues = validator.collect_issues(schema, "things")
        assert [i.path for i in issues] == ["fields/x/type"]

    @pytest.mark.parametrize("legacy", ["boolean-tgl", "boolean-yn", "int", "timestamp"])
    def test_legacy_and_alias_types_accepted(self, validator, legacy):
        schema = _minimal(fields={"id": {"type": "integer"}, "x": {"type": legacy}})
        assert validator.collect_issues(schema, "things") == []

    def test_action_without_scope(self, validator):
        schema = _minimal(actions=[{"key": "archive", "type": "api_call"}])
        issues = validator.collect_issues(schema, "things")
        assert any(i.path == "actions[0]/scope" for i in issues)

    def test_action_with_empty_scope_list(self, validator):
        schema = _minimal(actions=[{"key": "archive", "scope": []}])
        issues = validator.collect_issues(schema, "things")
        assert any(i.path == "actions[0]/scope" for i in issues)

    def test_duplicate_action_keys(self, validator):
        schema = _minimal(
            actions=[{"key": "a", "scope": "list"}, {"key": "a", "scope": "detail"}]
        )
        issues = validator.collect_issues(schema, "things")
        assert any("Duplicate action key" in i.message for i in issues)

    def test_field_update_must_name_existing_field(self, validator):
        schema = _minimal(actions=[{"key": "t", "type": "field_update", "field": "nope", "scope": "list"}])
        issues = validator.collect_issues(schema, "things")
        assert any(i.path == "actions[0]/field" for i in issues)

    def test_many_to_many_requires_all_keys(self, validator):
        schema = _minimal(relationships=[{"name": "tags", "type": "many_to_many", "pivot_table": "thing_tags"}])
        paths = {i.path for i in validator.collect_issues(schema, "things")}
        assert "relationships[0]/foreign_key" in paths
        assert "relationships[0]/related_key" in paths

    def test_through_must_name_another_relationship(self, validator):
        schema = _minimal(
            relationships=[{"name": "permissions", "type": "belongs_to_many_through", "through": "roles"}]
        )
        issues = validator.collect_issues(schema, "things")
        assert any(i.path == "relationships[0]/through" for i in issues)

    def test_through_with_explicit_keys_is_valid(self, validator):
        schema = _minimal(
            relationships=[
                {
                    "name": "permissions",
                    "type": "belongs_to_many_through",
                    "first_pivot_table": "role_users",
                    "first_foreign_key": "user_id",
                    "first_related_key": "role_id",
                    "second_pivot_table": "permission_roles",
                    "second_foreign_key": "role_id",
                    "second_related_key": "permission_id",
                }
            ]
        )
        assert validator.collect_issues(schema, "things") == []

    def test_detail_foreign_key_may_not_be_empty(self, validator):
        schema = _minimal(details=[{"model": "children", "foreign_key": ""}])
        issues = validator.collect_issues(schema, "things")
        assert any(i.path == "details[0]/foreign_key" for i in issues)

    def test_detail_without_relationship_is_a_warning(self, validator):
        schema = _minimal(details=[{"model": "children", "list_fields": ["name"]}])
        issues = validator.collect_issues(schema, "things")
        assert [i.severity for i in issues] == ["warning"]

    @pytest.mark.parametrize("rel_type", ["many_to_many", "belongs_to_many_through"])
    def test_detail_foreign_key_conflicts_with_pivot_relationship(self, validator, rel_type):
        relationship = {
            "name": "children",
            "type": rel_type,
            "pivot_table": "thing_children",
            "foreign_key": "thing_id",
            "related_key": "child_id",
            "first_pivot_table": "a",
            "first_foreign_key": "b",
            "first_related_key": "c",
            "second_pivot_table": "d",
            "second_foreign_key": "e",
            "second_related_key": "f",
        }
        schema = _minimal(
            details=[{"model": "children", "foreign_key": "thing_id"}],
            relationships=[relationship],
        )
        issues = validator.collect_issues(schema, "things")
        assert [(i.path, i.severity) for i in issues] == [("details[0]/foreign_key", "error")]

    def test_detail_without_foreign_key_over_direct_relationship(self, validator):
        schema = _minimal(
            details=[{"model": "children"}],
            relationships=[{"name": "children", "type": "direct", "foreign_key": "thing_id"}],
        )
        issues = validator.collect_issues(schema, "things")
        assert [(i.path, i.severity) for i in issues] == [("details[0]", "error")]

    def test_detail_foreign_key_with_direct_relationship_is_valid(self, validator):
        schema = _minimal(
            details=[{"model": "children", "foreign_key": "thing_id"}],
            relationships=[{"name": "children", "type": "direct", "foreign_key": "thing_id"}],
        )
        assert validator.collect_issues(schema, "things") == []

    def test_default_sort_must_reference_fields(self, validator):
        issues = validator.collect_issues(_minimal(default_sort={"missing": "asc"}), "things")
        assert any(i.path == "default_sort/missing" for i in issues)

    def test_has_permission(self, validator):
        schema = _minimal(permissions={"create": "create_thing"})
        assert validator.has_permission(schema, "create") is True
        assert validator.has_permission(schema, "delete") is False


class TestValidate:
    def test_raises_with_every_error(self, validator):
        schema = _minimal(
            model="other",
            actions=[{"key": "a"}],
        )
        with pytest.raises(InvalidSchemaError) as exc_info:
            validator.validate(schema, "things")
        err = exc_info.value
        assert err.model == "things"
        assert len(err.issues) == 2
        assert "things" in str(err)

    def test_warnings_do_not_raise(self, validator):
        validator.validate(_minimal(details=[{"model": "children"}]), "things")


# ---------------------------------------------------------------------------
# Files and directories
# ---------------------------------------------------------------------------

class TestFiles:
    def test_sample_schemas_are_valid(self, schema_dir):
        issues = validate_schema_dir(schema_dir)
        assert [i for i in issues if i.severity == "error"] == [], _messages(issues)

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "things.yaml"
        path.write_text(yaml.dump(_minimal()))
        assert validate_schema_file(path) == []

    def test_model_name_comes_from_file_stem(self, tmp_path):
        path = _write_json(tmp_path / "widgets.json", _minimal())
        issues = validate_schema_file(path)
        assert any(i.path == "model" for i in issues)
        assert all(i.source == str(path) for i in issues)

    def test_tab_indented_json_file(self, tmp_path):
        path = tmp_path / "things.json"
        path.write_text(json.dumps(_minimal(), indent="\t"))
        assert validate_schema_file(path) == []

    def test_parse_error_is_reported(self, tmp_path):
        path = tmp_path / "things.json"
        path.write_text("{not json")
        issues = validate_schema_file(path)
        assert len(issues) == 1
        assert "Parse error" in issues[0].message

    def test_dir_includes_namespace_subdirectories(self, tmp_path):
        _write_json(tmp_path / "things.json", _minimal())
        _write_json(tmp_path / "db2" / "things.json", _minimal(table=""))
        issues = validate_schema_dir(tmp_path)
        assert issues
        assert all("db2" in i.source for i in issues)

    def test_strict_escalates_warnings(self, tmp_path):
        _write_json(tmp_path / "things.json", _minimal(details=[{"model": "children"}]))
        assert {i.severity for i in validate_schema_dir(tmp_path)} == {"warning"}
        assert {i.severity for i in validate_schema_dir(tmp_path, strict=True)} == {"error"}

    def test_missing_dir(self, tmp_path):
        issues = validate_schema_dir(tmp_path / "nope")
        assert len(issues) == 1
        assert "does not exist" in issues[0].message


class TestValidateCli:
    def test_sample_schemas_pass(self, schema_dir):
        result = CliRunner().invoke(cli, ["--schema-path", str(schema_dir), "schema", "validate"])
        assert result.exit_code == 0, result.output
        assert "All schemas are valid" in result.output
        assert "users" in result.output

    def test_invalid_schema_fails(self, tmp_path):
        _write_json(tmp_path / "things.json", _minimal(actions=[{"key": "a"}]))
        result = CliRunner().invoke(cli, ["--schema-path", str(tmp_path), "schema", "validate"])
        assert result.exit_code == 1
        assert "actions[0]/scope" in result.output

    def test_single_file(self, tmp_path):
        path = _write_json(tmp_path / "things.json", _minimal())
        result = CliRunner().invoke(cli, ["schema", "validate", "--path", str(path)])
        assert result.exit_code == 0
