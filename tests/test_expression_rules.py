import unittest

import lintcheck


OBJECTS = "object Big {\n  val a = 1\n  val b = 2\n}\n\nobject Small\n"

METHODS = "object A {\n  def f = 1\n  def g: Int = 2\n  def getName: String = \"a\"\n}\n"


def run(rule, text):
    ctx = lintcheck.build_file_context("Sample.scala", text)
    return list(rule.check(ctx, rule.defaults))


class ExpressionInterpreterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.interpreter = lintcheck._SafeExpressionInterpreter()
        self.env = dict(lintcheck._SAFE_BASE_CALLABLES)
        self.env.update({"name": "getValue", "children": (1, 2, 3), "attrs": {"member": True}})

    def evaluate(self, expr):
        return self.interpreter.evaluate(self.interpreter.compile(expr), self.env)

    def test_boolean_and_comparison(self) -> None:
        self.assertTrue(self.evaluate("len(children) == 3 and attrs['member']"))
        self.assertTrue(self.evaluate("1 < len(children) <= 3"))
        self.assertFalse(self.evaluate("not attrs['member'] or len(children) > 5"))

    def test_helpers_and_string_methods(self) -> None:
        self.assertTrue(self.evaluate("matches('^get[A-Z]', name)"))
        self.assertTrue(self.evaluate("startswith(name, 'get') and endswith(name, 'Value')"))
        self.assertEqual(self.evaluate("name.lower()"), "getvalue")
        self.assertEqual(self.evaluate("[c * 2 for c in children if c > 1]"), [4, 6])
        self.assertEqual(self.evaluate("'big' if len(children) > 2 else 'small'"), "big")

    def test_rejects_unsafe_constructs_at_compile_time(self) -> None:
        for expr in (
            "__import__('os')",
            "name.__class__",
            "lambda x: x",
            "name.format()",
            "open('x')",
            "",
            "name ==",
        ):
            with self.subTest(expr=expr):
                with self.assertRaises(lintcheck.ExpressionEvalError):
                    self.interpreter.compile(expr)

    def test_rejects_calls_to_unsafe_methods_at_evaluation(self) -> None:
        class Holder:
            def run(self):
                return "ran"

        self.env["node"] = Holder()
        with self.assertRaises(lintcheck.ExpressionEvalError):
            self.evaluate("node.run()")


class ExpressionRuleTests(unittest.TestCase):
    def test_assertion_and_message_template(self) -> None:
        rule = lintcheck.build_expression_rule(
            "object-size",
            scope="object_decl",
            assertion="line_count <= 2",
            message="object {{ name }} is {{ line_count }} lines long",
        )
        findings = run(rule, OBJECTS)
        self.assertEqual([f.message for f in findings], ["object Big is 4 lines long"])
        self.assertEqual(findings[0].span.start_line, 1)

    def test_select_filters_nodes(self) -> None:
        rule = lintcheck.build_expression_rule(
            "explicit-return-type",
            scope="method_decl",
            select="attrs['member'] and not startswith(name, 'get')",
            assertion="attrs['has_return_type']",
            description="Members declare their result type",
        )
        findings = run(rule, METHODS)
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0].message, "Members declare their result type (method_decl 'f')")

    def test_params_are_bound(self) -> None:
        rule = lintcheck.build_expression_rule(
            "object-size",
            scope="object_decl",
            assertion="line_count <= params['max_lines']",
            params={"max_lines": 10},
        )
        self.assertEqual(run(rule, OBJECTS), [])

    def test_unknown_scope(self) -> None:
        with self.assertRaises(lintcheck.ExpressionEvalError):
            lintcheck.build_expression_rule("x", scope="function", assertion="True")

    def test_evaluation_error_becomes_rule_fault(self) -> None:
        rule = lintcheck.build_expression_rule(
            "walks",
            scope="object_decl",
            assertion="len(node.walk()) > 0",
        )
        violations = lintcheck.RuleEngine(rules=[rule]).check_text(OBJECTS)
        self.assertEqual(len(violations), 1)
        self.assertTrue(violations[0].message.startswith("rule failed: ExpressionEvalError"))

    def test_configured_custom_rule_runs_with_builtins(self) -> None:
        config = lintcheck.parse_config(
            "custom_rules:\n"
            "  - id: object-size\n"
            "    scope: object_decl\n"
            "    severity: error\n"
            "    assert: \"line_count <= 2\"\n"
            "    message: \"object {{ name }} is too long\"\n"
        )
        engine = lintcheck.RuleEngine(config)
        self.assertIn("object-size", [rule.id for rule in engine.active_rules])
        violations = [v for v in engine.check_text(OBJECTS) if v.rule_id == "object-size"]
        self.assertEqual([(v.severity, v.message) for v in violations], [("error", "object Big is too long")])


if __name__ == "__main__":
    unittest.main()
