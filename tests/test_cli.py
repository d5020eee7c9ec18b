"""Tests for the bookops CLI that need no database."""

import uuid

from rich.console import Console
from typer.testing import CliRunner

from bookops.cli import app
from bookops.cli.clashes import render_clash_table
from bookops.clash.classifier import detect_clashes
from bookops.clash.types import AssignmentView

runner = CliRunner()


def test_unknown_role_rejected() -> None:
    result = runner.invoke(app, ["clashes", "--user-id", "x", "--role", "CEO"])
    assert result.exit_code == 2


def test_malformed_build_id_rejected() -> None:
    for command in (["clashes"], ["resolve", "001A", "--rationale", "x"]):
        result = runner.invoke(
            app, [*command, "--user-id", "x", "--role", "SLM", "--build", "not-a-uuid"]
        )
        assert result.exit_code == 2
        assert not isinstance(result.exception, ValueError)


def test_caller_without_region_has_nothing_to_compare() -> None:
    result = runner.invoke(app, ["clashes", "--user-id", "olga", "--role", "FLM"])
    assert result.exit_code == 0
    assert "at least 2 builds" in result.output


def test_render_clash_table_lists_every_member_build() -> None:
    def view(name, owner, new_owner=None):
        return AssignmentView(
            build_id=uuid.uuid4(),
            build_name=name,
            region="EMEA",
            current_owner_id=owner,
            current_owner_name=owner.title(),
            new_owner_id=new_owner,
            new_owner_name=new_owner and new_owner.title(),
            effective_owner_id=new_owner or owner,
            effective_owner_name=(new_owner or owner).title(),
            arr=125_000,
            account_name="Acme",
        )

    clashes = detect_clashes({"001A": [view("Draft", "uma", "uri"), view("Alt", "uma")]})
    console = Console(record=True, width=200)
    console.print(render_clash_table(clashes))
    text = console.export_text()

    assert "HIGH" in text
    assert "Acme" in text
    assert "$125,000" in text
    assert "Draft: NEW Uri (uri)" in text
    assert "Alt: CURRENT Uma (uma)" in text
