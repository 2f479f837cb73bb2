"""Tests for the terminal prompt source."""
import io

import pytest
from rich.console import Console
from typer.testing import CliRunner

from pveprov.config import TALOS, ParameterResolver
from pveprov.core.errors import UserCancelled
from pveprov.prompts import TyperPrompts

runner = CliRunner()


@pytest.fixture
def prompts():
    return TyperPrompts(Console(file=io.StringIO()))


def field(name):
    return next(spec for spec in TALOS.fields if spec.name == name)


class TestTyperPrompts:
    def test_blank_answer_takes_default(self, prompts):
        with runner.isolation(input="\n"):
            assert prompts.text("Hostname", "talos") == "talos"

    def test_end_of_input_cancels(self, prompts):
        with runner.isolation(input=""):
            with pytest.raises(UserCancelled):
                prompts.text("Hostname", "talos")

    def test_select_returns_answer_unchecked(self, prompts):
        with runner.isolation(input="bogus\n"):
            assert prompts.select("Machine type", ("i440fx", "q35"), "i440fx") == "bogus"

    def test_select_end_of_input_cancels(self, prompts):
        with runner.isolation(input=""):
            with pytest.raises(UserCancelled):
                prompts.select("Machine type", ("i440fx", "q35"), "i440fx")

    def test_mistyped_choice_reasked_by_resolver(self, prompts):
        resolver = ParameterResolver(TALOS, source=prompts)

        with runner.isolation(input="bogus\nq35\n"):
            assert resolver.resolve_field(field('machine')) == 'q35'

        assert "expected one of i440fx, q35" in prompts.console.file.getvalue()
