import json
import unittest

import lintcheck


def violation(rule_id, path, line, col, severity="warning", message="msg"):
    span = lintcheck.Span(line, col, line, col + 1, 0, 1)
    return lintcheck.Violation(rule_id, message, path, span, severity)


class ReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.report = lintcheck.Report()
        self.report.extend([
            violation("no-null", "b.scala", 1, 1, "warning"),
            violation("type-name-case", "a.scala", 3, 7, "error", "class name 'foo' does not match"),
            violation("line-length", "a.scala", 3, 7),
            violation("no-return", "a.scala", 1, 9),
        ])
        self.report.files_checked = 2

    def test_violations_are_sorted_by_path_line_column_rule(self) -> None:
        order = [(v.path, v.span.start_line, v.span.start_col, v.rule_id) for v in self.report.violations]
        self.assertEqual(order, [
            ("a.scala", 1, 9, "no-return"),
            ("a.scala", 3, 7, "line-length"),
            ("a.scala", 3, 7, "type-name-case"),
            ("b.scala", 1, 1, "no-null"),
        ])

    def test_exact_duplicates_are_dropped(self) -> None:
        self.assertFalse(self.report.add(violation("no-null", "b.scala", 1, 1, "warning")))
        self.assertTrue(self.report.add(violation("no-null", "b.scala", 2, 1, "warning")))
        self.assertEqual(len(self.report.violations), 5)

    def test_counts(self) -> None:
        self.assertEqual(self.report.counts, {"error": 1, "warning": 3})
        self.assertTrue(self.report.has_errors)
        self.assertFalse(lintcheck.Report().has_errors)

    def test_render_text(self) -> None:
        self.assertEqual(
            self.report.render_text(),
            "a.scala:1:9: [warning] no-return: msg\n"
            "a.scala:3:7: [warning] line-length: msg\n"
            "a.scala:3:7: [error] type-name-case: class name 'foo' does not match\n"
            "b.scala:1:1: [warning] no-null: msg\n"
            "2 files checked: 1 error, 3 warnings\n",
        )

    def test_render_text_without_violations(self) -> None:
        report = lintcheck.Report()
        report.files_checked = 1
        self.assertEqual(report.render_text(), "1 file checked: no violations\n")

    def test_render_json(self) -> None:
        report = lintcheck.Report(["lint.yaml:3: unknown rule id 'x'"])
        report.add(violation("no-null", "b.scala", 1, 1))
        report.files_checked = 1
        payload = json.loads(report.render_json())
        self.assertEqual(list(payload), ["tool", "version", "files_checked", "summary", "warnings", "violations"])
        self.assertEqual(payload["tool"], "lintcheck")
        self.assertEqual(payload["version"], lintcheck.__version__)
        self.assertEqual(payload["summary"], {"error": 0, "warning": 1})
        self.assertEqual(payload["warnings"], ["lint.yaml:3: unknown rule id 'x'"])
        self.assertEqual(payload["violations"], [{
            "rule_id": "no-null",
            "severity": "warning",
            "message": "msg",
            "location": {"file": "b.scala", "line_start": 1, "col_start": 1, "line_end": 1, "col_end": 2},
        }])

    def test_render_is_byte_identical_across_insertion_orders(self) -> None:
        reversed_report = lintcheck.Report()
        reversed_report.extend(reversed(self.report.violations))
        reversed_report.files_checked = 2
        self.assertEqual(reversed_report.render_json(), self.report.render_json())
        self.assertEqual(reversed_report.render("text"), self.report.render("text"))


if __name__ == "__main__":
    unittest.main()
