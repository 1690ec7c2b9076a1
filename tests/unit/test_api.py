"""Unit tests for the public sdkquery entry points."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest
import structlog

import sdkquery
from sdkquery import (
    CompiledExpression,
    EvaluationErrorKind,
    ExpressionError,
    ExpressionEvaluationError,
    FunctionSpec,
    IncompleteExpressionError,
    ParamType,
    ParseError,
    check,
    compile_expression,
    configure_from,
    default_function_table,
    search,
    validate_definitions,
)
from sdkquery.config import SdkQueryConfig
from sdkquery.expressions.config import DEFAULTS


class TestSearch:
    """Test one-shot parse and evaluate."""

    def test_search(self) -> None:
        document = {"Reservations": [{"Instances": [{"InstanceId": "i-1"}]}]}
        assert search("Reservations[].Instances[].InstanceId", document) == ["i-1"]

    def test_search_raises_parse_errors(self) -> None:
        with pytest.raises(IncompleteExpressionError) as exc_info:
            search("foo[", {})
        assert exc_info.value.offset == 3

    def test_search_with_custom_depth(self) -> None:
        with pytest.raises(ParseError):
            search("a.b.c.d", {}, max_depth=2)

    @pytest.mark.parametrize(("opener", "closer"), [("{a:", "}"), ("[", "]")])
    def test_deep_nesting_at_maximum_accepted_depth(
        self, opener: str, closer: str, shallow_stack: None
    ) -> None:
        """Nesting the config accepts never escapes as a RecursionError."""
        depth = DEFAULTS.MAX_DEPTH_LIMIT - 1
        expression = opener * depth + "a" + closer * depth
        with pytest.raises(ExpressionError, match="maximum"):
            search(expression, {"a": 1}, max_depth=DEFAULTS.MAX_DEPTH_LIMIT)

    def test_unconfigured_logging_writes_nothing(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Without configure_logging() the engine produces no output."""
        structlog.reset_defaults()
        spec = FunctionSpec("double", ((ParamType.NUMBER,),), lambda n: n * 2)
        table = default_function_table().extend(spec)

        assert search("double(length(items))", {"items": [1, 2]}, table) == 4
        assert search("a[?b]", {"a": []}) == []

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""


class TestCompileExpression:
    """Test CompiledExpression reuse."""

    def test_compiled_expression(self) -> None:
        compiled = compile_expression("length(items)")

        assert isinstance(compiled, CompiledExpression)
        assert compiled.expression == "length(items)"
        assert compiled.ast == sdkquery.parse("length(items)")
        assert compiled.search({"items": [1, 2]}) == 2
        assert compiled.search({"items": "abc"}) == 3

    def test_custom_functions(self) -> None:
        spec = sdkquery.FunctionSpec(
            "double", ((sdkquery.ParamType.NUMBER,),), lambda n: n * 2
        )
        compiled = compile_expression(
            "double(n)", functions=default_function_table().extend(spec)
        )
        assert compiled.search({"n": 4}) == 8

    def test_literal_results_are_independent(self) -> None:
        compiled = compile_expression("`[1, 2]`")
        compiled.search({}).append(3)
        assert compiled.search({}) == [1, 2]

    def test_evaluation_error_carries_expression(self) -> None:
        compiled = compile_expression("abs(name)")
        with pytest.raises(ExpressionEvaluationError) as exc_info:
            compiled.search({"name": "x"})
        assert exc_info.value.kind is EvaluationErrorKind.TYPE_MISMATCH
        assert exc_info.value.expression == "abs(name)"


class TestCheck:
    """Test the check() re-export."""

    def test_check(self) -> None:
        assert check("a.b") is None
        assert check("a.").position == 2


class TestValidateDefinitions:
    """Test validation driven by configuration."""

    def test_uses_configured_keys(self) -> None:
        config = SdkQueryConfig(validation={"expression_keys": ["query"]})
        definitions: dict[str, Any] = {"query": "bad[", "argument": "also bad["}

        issues = validate_definitions(definitions, config)

        assert [issue.location for issue in issues] == ["query"]

    def test_uses_configured_depth(self) -> None:
        config = SdkQueryConfig(engine={"max_depth": 2})
        issues = validate_definitions({"argument": "a.b.c"}, config)
        assert len(issues) == 1

    def test_binds_source_to_log_events(
        self, waiters_model: dict[str, Any], caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            validate_definitions(
                waiters_model, SdkQueryConfig(), source="ec2/waiters-2.json"
            )

        events = [r.msg for r in caplog.records if isinstance(r.msg, dict)]
        invalid = [e for e in events if e["event"] == "invalid_expression"]
        assert len(invalid) == 1
        assert invalid[0]["source"] == "ec2/waiters-2.json"
        assert invalid[0]["location"] == (
            "waiters.InstanceRunning.acceptors[1].argument"
        )

    def test_loads_config_when_omitted(
        self, clean_env: None, temp_dir: Path, waiters_model: dict[str, Any]
    ) -> None:
        import os

        os.chdir(temp_dir)
        issues = validate_definitions(waiters_model)
        assert len(issues) == 1


class TestConfigureFrom:
    """Test logging configuration from settings."""

    def test_sets_level_from_verbosity(self) -> None:
        configure_from(SdkQueryConfig(verbosity="debug"))
        assert logging.getLogger().level == logging.DEBUG


def test_version() -> None:
    assert sdkquery.__version__ == "0.1.0"
