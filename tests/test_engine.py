import unittest

import lintcheck


CLEAN_SOURCE = '''package com.example

import java.time.Instant

import scala.util.Try

/** Greets people. */
class Greeter(name: String) {

  /** Builds a greeting. */
  def greet(prefix: String, times: Int): String = {
    val parts = List.fill(times)(prefix)
    parts.mkString(", ") + name
  }

  /** Parses a count. */
  def parse(value: String): Option[Int] = value.toIntOption match {
    case Some(n) if n > 0 => Some(n)
    case _ => None
  }
}
'''

MESSY_SOURCE = '''import scala.util.Try
import java.io.File

class messy(A: Int,b: Int) {
  def Run(): Int = {
    return null
  }
}
'''


def raising_check(ctx, params):
    raise RuntimeError("boom")


def partially_raising_check(ctx, params):
    yield lintcheck.Finding(ctx.source.span(0, 1), "first")
    raise KeyError("later")


def out_of_bounds_check(ctx, params):
    yield lintcheck.Finding(lintcheck.Span(1, 1, 1, 1, 0, len(ctx.source) + 5), "too far")


class RuleEngineTests(unittest.TestCase):
    def test_clean_file_yields_no_violations(self) -> None:
        engine = lintcheck.RuleEngine()
        self.assertEqual(engine.check_text(CLEAN_SOURCE, "Greeter.scala"), [])

    def test_active_rules_are_ordered_by_id(self) -> None:
        engine = lintcheck.RuleEngine()
        ids = [rule.id for rule in engine.active_rules]
        self.assertEqual(ids, sorted(lintcheck.BUILTIN_RULES))

    def test_unterminated_string_gives_one_lex_error_and_other_rules_run(self) -> None:
        engine = lintcheck.RuleEngine()
        text = 'object A {\n  val s = "abc\n  val t = null\n}\n'
        violations = engine.check_text(text, "A.scala")
        rule_ids = [v.rule_id for v in violations]
        self.assertEqual(rule_ids.count("lex-error"), 1)
        self.assertIn("no-null", rule_ids)

    def test_failing_rule_is_isolated(self) -> None:
        rules = [
            lintcheck.BUILTIN_RULES["no-null"],
            lintcheck.Rule("broken", "always fails", "warning", raising_check),
        ]
        engine = lintcheck.RuleEngine(rules=rules)
        violations = engine.check_text("val x = null\n", "X.scala")
        broken = [v for v in violations if v.rule_id == "broken"]
        self.assertEqual(len(broken), 1)
        self.assertEqual(broken[0].message, "rule failed: RuntimeError: boom")
        self.assertEqual(broken[0].severity, "error")
        self.assertEqual(broken[0].span.start_offset, 0)
        self.assertEqual([v.rule_id for v in violations if v.rule_id == "no-null"], ["no-null"])

    def test_findings_of_a_failing_rule_are_discarded(self) -> None:
        rule = lintcheck.Rule("half", "fails midway", "warning", partially_raising_check)
        violations = lintcheck.RuleEngine(rules=[rule]).check_text("val x = 1\n")
        self.assertEqual(len(violations), 1)
        self.assertTrue(violations[0].message.startswith("rule failed: KeyError"))

    def test_span_outside_source_is_a_rule_fault(self) -> None:
        rule = lintcheck.Rule("far", "bad span", "warning", out_of_bounds_check)
        violations = lintcheck.RuleEngine(rules=[rule]).check_text("val x = 1\n")
        self.assertEqual(len(violations), 1)
        self.assertTrue(violations[0].message.startswith("rule failed: ValueError"))

    def test_every_violation_span_lies_within_source(self) -> None:
        violations = lintcheck.RuleEngine().check_text(MESSY_SOURCE, "Messy.scala")
        self.assertTrue(violations)
        for violation in violations:
            self.assertLessEqual(violation.span.end_offset, len(MESSY_SOURCE))
            self.assertLessEqual(violation.span.start_offset, violation.span.end_offset)

    def test_rule_order_does_not_change_violations(self) -> None:
        all_rules = list(lintcheck.BUILTIN_RULES.values())
        combined = set(lintcheck.RuleEngine(rules=all_rules).check_text(MESSY_SOURCE, "Messy.scala"))
        one_by_one = set()
        for rule in reversed(all_rules):
            one_by_one.update(lintcheck.RuleEngine(rules=[rule]).check_text(MESSY_SOURCE, "Messy.scala"))
        self.assertEqual(combined, one_by_one)

    def test_configured_severity_and_disabled_rules(self) -> None:
        config = lintcheck.parse_config("rules:\n  no-null: error\n  no-return: off\n")
        engine = lintcheck.RuleEngine(config)
        active = {rule.id: rule for rule in engine.active_rules}
        self.assertNotIn("no-return", active)
        self.assertEqual(active["no-null"].severity, "error")
        violations = engine.check_text(MESSY_SOURCE, "Messy.scala")
        self.assertNotIn("no-return", [v.rule_id for v in violations])
        self.assertEqual([v.severity for v in violations if v.rule_id == "no-null"], ["error"])

    def test_configured_parameters_are_merged_with_defaults(self) -> None:
        config = lintcheck.parse_config("rules:\n  line-length:\n    max: 20\n")
        active = {rule.id: rule for rule in lintcheck.RuleEngine(config).active_rules}
        self.assertEqual(active["line-length"].params["max"], 20)
        self.assertTrue(active["line-length"].params["ignore_imports"])


class SuppressionTests(unittest.TestCase):
    def test_ignore_and_regions(self) -> None:
        text = (
            "val a = null // lintcheck:ignore no-null\n"
            "// lintcheck:off\n"
            "val b = null\n"
            "// lintcheck:on\n"
            "val c = null\n"
        )
        engine = lintcheck.RuleEngine(rules=[lintcheck.BUILTIN_RULES["no-null"]])
        violations = engine.check_text(text)
        self.assertEqual([v.span.start_line for v in violations], [5])

    def test_region_for_one_rule_only(self) -> None:
        text = (
            "// lintcheck:off no-null -- legacy API\n"
            "def f(): String = return null\n"
        )
        rules = [lintcheck.BUILTIN_RULES["no-null"], lintcheck.BUILTIN_RULES["no-return"]]
        violations = lintcheck.RuleEngine(rules=rules).check_text(text)
        self.assertEqual([v.rule_id for v in violations], ["no-return"])

    def test_suppressions_from_tokens(self) -> None:
        source = lintcheck.SourceText("/* lintcheck:off a, b */\nx\n// lintcheck:on a\ny\n")
        tokens, _ = lintcheck.TokenStream(source).scan()
        suppressions = lintcheck.Suppressions.from_tokens(tokens)
        self.assertTrue(suppressions.is_suppressed("a", 2))
        self.assertFalse(suppressions.is_suppressed("a", 4))
        self.assertTrue(suppressions.is_suppressed("b", 4))
        self.assertFalse(suppressions.is_suppressed("c", 2))


class RunTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sources = [
            lintcheck.SourceFile("b/Messy.scala", MESSY_SOURCE),
            lintcheck.SourceFile("a/Greeter.scala", CLEAN_SOURCE),
            lintcheck.SourceFile("c/Other.scala", "object other {\n\tval x = null\n}"),
        ]

    def test_parallel_and_sequential_runs_agree(self) -> None:
        engine = lintcheck.RuleEngine()
        sequential = engine.run(self.sources, jobs=1)
        parallel = engine.run(self.sources, jobs=4)
        self.assertEqual(sequential.render_json(), parallel.render_json())
        self.assertEqual(parallel.files_checked, 3)

    def test_output_is_deterministic(self) -> None:
        engine = lintcheck.RuleEngine()
        first = engine.run(self.sources, jobs=3).render_text()
        second = engine.run(list(reversed(self.sources)), jobs=2).render_text()
        self.assertEqual(first, second)

    def test_cancelled_before_start(self) -> None:
        token = lintcheck.CancellationToken()
        token.cancel()
        report = lintcheck.RuleEngine().run(self.sources, jobs=2, cancel=token)
        self.assertTrue(report.cancelled)
        self.assertEqual(report.files_checked, 0)
        self.assertEqual(report.violations, [])


if __name__ == "__main__":
    unittest.main()
