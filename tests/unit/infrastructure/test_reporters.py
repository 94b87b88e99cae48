import json

import pytest

from contraband_linter.domain.entities import AnalysisReport, FixResult
from contraband_linter.domain.registry import RuleRegistry
from contraband_linter.domain.rules.query_shape import AnyOverCountRule
from contraband_linter.infrastructure.reporters import JsonReporter, TerminalReporter
from tests.linter_test_utils import ShopModel, run_rule


@pytest.fixture
def analysis(shop: ShopModel) -> AnalysisReport:
    method = shop.method(shop.service, "HasUsers", "bool")
    exists = shop.binary(shop.linq(shop.users(), "Count"), ">", shop.lit("0"))
    tree = shop.build(shop.service_unit(shop.method_decl(method, shop.ret(exists))))
    return AnalysisReport(path=tree.path, diagnostics=tuple(run_rule(AnyOverCountRule(), tree)))


class TestTerminalReporter:
    def test_lines_and_summary(self, analysis: AnalysisReport, capsys: pytest.CaptureFixture[str]) -> None:
        TerminalReporter().report([analysis])

        out = capsys.readouterr().out
        first = out.splitlines()[0]
        assert first.startswith("Shop/UserService.cs:")
        assert ": LC003 [warn] Use 'Any()' instead of comparing 'Count()'" in first
        assert "    1  LC003 any-over-count" in out
        assert "    1  total in 1 unit(s)" in out

    def test_clean_run(self, capsys: pytest.CaptureFixture[str]) -> None:
        TerminalReporter().report([AnalysisReport(path="a.yaml"), AnalysisReport(path="b.yaml")])

        assert capsys.readouterr().out.strip() == "No issues found in 2 unit(s)."

    def test_failed_rules_go_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        TerminalReporter().report([AnalysisReport(path="a.yaml", failed_rules=("sync-blocker",))])

        assert "rule 'sync-blocker' failed and was skipped" in capsys.readouterr().err

    def test_fix_summary(self, analysis: AnalysisReport, capsys: pytest.CaptureFixture[str], shop: ShopModel) -> None:
        tree = shop.build(shop.service_unit())
        TerminalReporter().report_fix(FixResult(tree=tree, applied=analysis.diagnostics), output=None)

        captured = capsys.readouterr()
        assert "public class UserService" in captured.out
        assert "Applied 1 fix(es) in 1 pass(es); 0 deferred." in captured.err

    def test_rule_listing(self, capsys: pytest.CaptureFixture[str]) -> None:
        TerminalReporter().report_rules(RuleRegistry.from_rules([AnyOverCountRule()]))

        line = capsys.readouterr().out.strip()
        assert line.startswith("LC003  any-over-count")
        assert "fix" in line


class TestJsonReporter:
    def test_report_document(self, analysis: AnalysisReport, capsys: pytest.CaptureFixture[str]) -> None:
        JsonReporter().report([analysis])

        document = json.loads(capsys.readouterr().out)
        row = document["units"][0]["diagnostics"][0]
        assert document["total"] == 1
        assert row["rule_id"] == "LC003"
        assert row["symbol"] == "any-over-count"
        assert row["severity"] == "warn"
        assert row["fixable"] is True
        assert row["path"] == "Shop/UserService.cs"

    def test_fix_document_written_to_file(self, shop: ShopModel, capsys: pytest.CaptureFixture[str]) -> None:
        tree = shop.build(shop.service_unit())
        JsonReporter().report_fix(FixResult(tree=tree, passes=2), output="out.yaml")

        document = json.loads(capsys.readouterr().out)
        assert document["passes"] == 2
        assert document["source"] is None
        assert document["output"] == "out.yaml"

    def test_rule_listing(self, capsys: pytest.CaptureFixture[str]) -> None:
        JsonReporter().report_rules(RuleRegistry.default())

        rules = json.loads(capsys.readouterr().out)
        assert rules[0]["rule_id"] == "LC001"
        assert {rule["symbol"] for rule in rules} >= {"any-over-count", "db-context-in-singleton"}
